from __future__ import annotations

VERSION = "1.0.0"

DEFAULT_PIN = 4
DEFAULT_EDGE = "both"
EDGE_MODES = ("both", "rising", "falling")
PIN_FACTORIES = ("lgpio", "mock")
DEFAULT_OPEN_VALUE = 1

DEFAULT_WEBHOOK_URL = "http://localhost:3000/webhook"
DEFAULT_SIGN_KEY = "default-sign-key"
DEFAULT_RETRY_COUNT = 3
DEFAULT_HTTP_TIMEOUT_S = 5.0
DEFAULT_DRAIN_TIMEOUT_S = 5.0

# Backoff doubles after every failed attempt: 0.5s, 1s, 2s, ...
INITIAL_BACKOFF_S = 0.5

HEADER_SIGNATURE = "X-Signature"
HEADER_TIMESTAMP = "X-Timestamp"
SIGNATURE_PREFIX = "sha256="

SCOPE_SYSTEM = "SYSTEM"
SCOPE_SENSOR = "SENSOR"
SCOPE_NETWORK = "NETWORK"


USAGE_EXAMPLES = """\
Usage examples:
  # Watch the reed switch on BCM GPIO 4 and post changes to a local receiver
  WEBHOOK_URL=http://localhost:3000/webhook SIGN_KEY=s3cret door-monitor --pin 4

  # Debounce the open direction for 200ms (closing is always immediate)
  door-monitor --pin 4 --open-delay-ms 200 --json

  # Switch wired active-low (open reads as 0)
  door-monitor --pin 17 --open-value 0 --edge both

  # Send a single signed notification and exit
  door-monitor --test-notify open

  # On-hardware diagnostic (prints raw levels, sends nothing)
  door-monitor --doctor --pin 4
"""

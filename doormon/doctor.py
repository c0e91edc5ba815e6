from __future__ import annotations

import argparse
import time
from argparse import RawDescriptionHelpFormatter

try:
    import tomllib  # py3.11+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib

from .config import get_bool_env, parse_retry_count, validate_url
from .constants import (
    DEFAULT_DRAIN_TIMEOUT_S,
    DEFAULT_EDGE,
    DEFAULT_HTTP_TIMEOUT_S,
    DEFAULT_OPEN_VALUE,
    DEFAULT_PIN,
    EDGE_MODES,
    PIN_FACTORIES,
    USAGE_EXAMPLES,
)
from .errors import ConfigurationError, DeliveryError
from .gpio import GpioLine
from .notify import WebhookNotifier, payload_for
from .signing import canonical_json
from .state import DoorState
from .util import utc_timestamp


def run_doctor(args):
    """Watch the configured pin and print raw levels and the derived door state.

    Nothing is sent to the webhook. Ctrl+C to exit."""
    print("Doctor Mode (safe):")
    print("  - No webhook notifications are sent.")
    print("  - Open and close the door to see raw levels.")
    print("  Ctrl+C to exit.")
    print()

    line = GpioLine(args.pin, edge="both", pull_up=args.pull_up)
    edges = 0

    def on_edge(err, level):
        """Print each raw edge as it arrives."""
        nonlocal edges
        edges += 1
        if err is not None:
            print(f"  READ ERROR: {err}")
            return
        state = DoorState.from_level(level, args.open_value)
        print(f"  edge #{edges}: level={level} => {state.value}")

    try:
        level = line.read_sync()
        print(f"  GPIO{args.pin} initial level={level} => {DoorState.from_level(level, args.open_value).value}")
        line.watch(on_edge)
        last_print = time.monotonic()
        while True:
            if time.monotonic() - last_print >= 5.0:
                level = line.read_sync()
                print(f"  level={level} edges={edges}")
                last_print = time.monotonic()
            time.sleep(0.05)
    except KeyboardInterrupt:
        pass
    finally:
        line.release()


def run_test_notify(args, webhook_cfg, logger) -> int:
    """Send one signed notification synchronously and report the outcome."""
    state = DoorState.OPEN if args.test_notify == "open" else DoorState.CLOSED
    notifier = WebhookNotifier.from_config(webhook_cfg, logger, timeout_s=args.timeout)
    timestamp = utc_timestamp()
    print("Test notification")
    print("  URL:", webhook_cfg.url)
    print("  Signed material:", canonical_json(payload_for(state), timestamp))
    if webhook_cfg.insecure_key:
        print("  WARN: SIGN_KEY is the built-in default; set SIGN_KEY for production.")
    try:
        notifier.deliver(state, timestamp=timestamp)
    except DeliveryError as e:
        print(f"  FAILED: {e}")
        return 1
    print("  OK: delivered")
    return 0


def load_toml_config(path: str) -> dict:
    """Load TOML configuration from path."""
    with open(path, "rb") as f:
        return tomllib.load(f)


def _get_cfg(cfg: dict, section: str, key: str, default=None):
    sec = cfg.get(section, {})
    if not isinstance(sec, dict):
        return default
    return sec.get(key, default)


def config_defaults_from(cfg: dict) -> dict:
    """Map TOML config into argparse defaults.

    Webhook values default to None so the environment (WEBHOOK_URL, RETRY_COUNT)
    can fill them when neither the CLI nor the file sets them."""
    return {
        "pin": _get_cfg(cfg, "gpio", "pin", DEFAULT_PIN),
        "edge": _get_cfg(cfg, "gpio", "edge", DEFAULT_EDGE),
        "open_delay_ms": _get_cfg(cfg, "gpio", "open_delay_ms", 0),
        "open_value": _get_cfg(cfg, "gpio", "open_value", DEFAULT_OPEN_VALUE),
        "pull_up": _get_cfg(cfg, "gpio", "pull_up", True),
        "pin_factory": _get_cfg(cfg, "gpio", "pin_factory", None),
        "webhook_url": _get_cfg(cfg, "webhook", "url", None),
        "retry_count": _get_cfg(cfg, "webhook", "retry_count", None),
        "timeout": _get_cfg(cfg, "webhook", "timeout", DEFAULT_HTTP_TIMEOUT_S),
        "drain_timeout": _get_cfg(cfg, "shutdown", "drain_timeout", DEFAULT_DRAIN_TIMEOUT_S),
        "json": _get_cfg(cfg, "logging", "json", get_bool_env("DOORMON_JSON")),
        "verbose": _get_cfg(cfg, "logging", "verbose", False),
        "no_banner": _get_cfg(cfg, "logging", "no_banner", False),
    }


def validate_args(args):
    """Reject settings the monitor cannot run with. Raises ConfigurationError."""
    if args.edge not in EDGE_MODES:
        raise ConfigurationError(f"edge must be one of {', '.join(EDGE_MODES)}, got {args.edge!r}")
    if args.open_delay_ms is None or args.open_delay_ms < 0:
        raise ConfigurationError(f"open_delay_ms must be >= 0, got {args.open_delay_ms!r}")
    if args.open_value not in (0, 1):
        raise ConfigurationError(f"open_value must be 0 or 1, got {args.open_value!r}")
    if args.timeout is None or args.timeout <= 0:
        raise ConfigurationError(f"timeout must be > 0, got {args.timeout!r}")
    if args.webhook_url is not None:
        validate_url(args.webhook_url)
    if args.retry_count is not None:
        parse_retry_count(args.retry_count)
    if args.pin_factory is not None and args.pin_factory not in PIN_FACTORIES:
        raise ConfigurationError(f"pin_factory must be one of {', '.join(PIN_FACTORIES)}, got {args.pin_factory!r}")


def resolved_config_dict(args, webhook_cfg) -> dict:
    return {
        "gpio": {
            "pin": args.pin,
            "edge": args.edge,
            "open_delay_ms": args.open_delay_ms,
            "open_value": args.open_value,
            "pull_up": args.pull_up,
            "pin_factory": args.pin_factory,
        },
        "webhook": {
            "url": webhook_cfg.url,
            "retry_count": webhook_cfg.retry_count,
            "timeout": args.timeout,
            "sign_key": "<default>" if webhook_cfg.insecure_key else "<set>",
        },
        "logging": {
            "json": bool(args.json),
            "verbose": args.verbose,
            "no_banner": args.no_banner,
        },
        "shutdown": {
            "drain_timeout": args.drain_timeout,
        },
    }


def build_arg_parser(defaults=None):
    """Construct the CLI argument parser for the daemon."""
    ap = argparse.ArgumentParser(
        prog="door-monitor",
        description="Watch a door reed switch and post signed state changes to a webhook.",
        epilog=USAGE_EXAMPLES,
        formatter_class=RawDescriptionHelpFormatter,
    )
    # Defaults come from the built-in defaults, optionally overridden by TOML config
    # (unset CLI args are backfilled after parsing).
    if defaults is None:
        defaults = config_defaults_from({})
    ap.set_defaults(**defaults)
    ap.add_argument("--pin", type=int, help="BCM GPIO pin number of the reed switch input.")
    ap.add_argument("--edge", choices=EDGE_MODES, help="Which raw transitions trigger a read (default: both).")
    ap.add_argument("--open-delay-ms", type=int,
                    help="How long an open reading must hold before it is reported. 0 reports immediately.")
    ap.add_argument("--open-value", type=int, choices=(0, 1), help="Raw level that means the door is open (default: 1).")
    ap.add_argument("--pull-up", dest="pull_up", action="store_true", help="Enable the internal pull-up (default).")
    ap.add_argument("--no-pull-up", dest="pull_up", action="store_false", help="Enable the internal pull-down instead.")
    ap.add_argument("--pin-factory", choices=PIN_FACTORIES,
                    help="gpiozero pin backend (default: gpiozero autodetect / GPIOZERO_PIN_FACTORY).")

    ap.add_argument("--webhook-url", help="Webhook endpoint (overrides WEBHOOK_URL).")
    ap.add_argument("--retry-count", type=int, help="Retries after the first failed delivery (overrides RETRY_COUNT).")
    ap.add_argument("--timeout", type=float, help="Per-attempt HTTP timeout in seconds (default: 5).")
    ap.add_argument("--drain-timeout", type=float,
                    help="Seconds to wait for in-flight deliveries on shutdown (default: 5).")

    ap.add_argument("--verbose", dest="verbose", action="store_true", help="Also print debug events.")
    ap.add_argument("--no-verbose", dest="verbose", action="store_false", help="Disable debug events.")
    json_group = ap.add_mutually_exclusive_group()
    json_group.add_argument("--json", dest="json", action="store_true", help="Emit JSON log events.")
    json_group.add_argument("--no-json", dest="json", action="store_false", help="Disable JSON log output.")
    ap.add_argument("--no-banner", dest="no_banner", action="store_true", help="Disable the startup banner.")
    ap.add_argument("--banner", dest="no_banner", action="store_false", help="Enable the startup banner.")

    ap.add_argument("--doctor", action="store_true", help="Print raw levels from the pin and exit on Ctrl+C. Sends nothing.")
    ap.add_argument("--test-notify", choices=("open", "closed"),
                    help="Send one signed notification with the given state and exit.")
    ap.add_argument("--config", help="Path to a TOML config file. CLI args override config values.")
    ap.add_argument("--print-config", action="store_true", help="Print the resolved configuration and exit.")
    ap.add_argument("--version", action="store_true", help="Print version and exit.")
    return ap

#!/usr/bin/env python3
#
# Door sensor monitor
#
# Watches a reed switch on a Raspberry Pi GPIO input, debounces the open
# direction, and posts every confirmed OPEN/CLOSED change to a webhook as an
# HMAC-signed JSON request (retried with exponential backoff).
#
# Equivalent to the `door-monitor` console script installed by pip.
#

from __future__ import annotations

from doormon.cli import main

if __name__ == "__main__":
    raise SystemExit(main())

from __future__ import annotations

import json
import sys
import time

LEVELS = ("debug", "info", "warning", "error")


class JsonLogger:
    """Minimal structured logger.

    Emits single-line events for sensor transitions, webhook deliveries and
    lifecycle changes so logs are easy to grep and machine-parse. Warnings and
    errors go to stderr, everything else to stdout."""
    def __init__(self, enable_json: bool = False, verbose: bool = False, stream=None, err_stream=None):
        """Create a logger.

        Args:
            enable_json: Emit one sorted-key JSON object per line instead of text.
            verbose: Also print ``debug`` events.
            stream: File-like object for debug/info events (defaults to stdout).
            err_stream: File-like object for warning/error events (defaults to stderr).
        """
        self.enable_json = enable_json
        self.verbose = verbose
        self._stream = stream
        self._err_stream = err_stream

    def emit(self, event: str, level: str = "info", scope: str | None = None, **fields):
        """Emit an event with a name, a level, an optional scope and key/value fields."""
        if level not in LEVELS:
            level = "info"
        if level == "debug" and not self.verbose:
            return
        t = time.time()
        # ts: float seconds since epoch. ts_iso is a human-friendly local timestamp with milliseconds.
        ts_iso = time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(t)) + f'.{int((t - int(t))*1000):03d}'
        out = self._target(level)
        if self.enable_json:
            payload = {"ts": t, "ts_iso": ts_iso, "event": event, "level": level, "scope": scope, **fields}
            print(json.dumps(payload, sort_keys=True, default=str), file=out, flush=True)
        else:
            msg = f"[{ts_iso}] {level.upper()}"
            if scope:
                msg += f" {scope}"
            msg += f" {event}"
            if fields:
                msg += " " + " ".join(f"{k}={v}" for k, v in fields.items())
            print(msg, file=out, flush=True)

    def _target(self, level: str):
        if level in ("warning", "error"):
            return self._err_stream if self._err_stream is not None else sys.stderr
        return self._stream if self._stream is not None else sys.stdout

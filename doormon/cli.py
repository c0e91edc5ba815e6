from __future__ import annotations

import dataclasses
import json
import signal
import sys
import threading
import time

from .config import get_webhook_config, parse_retry_count, validate_url
from .constants import SCOPE_NETWORK, SCOPE_SENSOR, SCOPE_SYSTEM, VERSION
from .doctor import (
    build_arg_parser,
    config_defaults_from,
    load_toml_config,
    resolved_config_dict,
    run_doctor,
    run_test_notify,
    validate_args,
)
from .errors import ConfigurationError
from .gpio import set_pin_factory
from .logging import JsonLogger
from .monitor import SensorMonitor
from .notify import WebhookNotifier


def parse_args(argv=None):
    """Parse CLI args with TOML values (from --config) as defaults."""
    pre, _ = build_arg_parser().parse_known_args(argv)
    defaults = None
    if getattr(pre, "config", None):
        try:
            defaults = config_defaults_from(load_toml_config(pre.config))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"cannot load config {pre.config}: {e}") from e
    return build_arg_parser(defaults).parse_args(argv)


def resolve_webhook_config(args, environ=None):
    """Environment config with CLI/TOML overrides applied."""
    cfg = get_webhook_config(environ)
    overrides = {}
    if args.webhook_url:
        overrides["url"] = validate_url(args.webhook_url)
    if args.retry_count is not None:
        overrides["retry_count"] = parse_retry_count(args.retry_count)
    return dataclasses.replace(cfg, **overrides) if overrides else cfg


def wire(monitor: SensorMonitor, notifier: WebhookNotifier, logger: JsonLogger):
    """Forward every confirmed state change to the notifier.

    Delivery failures are logged and never stop the monitor."""
    def on_change(state):
        logger.emit("door_state_changed", scope=SCOPE_SENSOR, state=state.value)
        fut = notifier.notify(state)
        fut.add_done_callback(_report_delivery)

    def _report_delivery(fut):
        exc = fut.exception()
        if exc is not None:
            logger.emit("notify_failed", level="error", scope=SCOPE_NETWORK, error=str(exc))

    monitor.on_change(on_change)


def install_shutdown_hooks(stop: threading.Event, logger: JsonLogger):
    """Stop on SIGINT/SIGTERM and on uncaught exceptions in any thread."""
    def on_signal(signum, _frame):
        logger.emit("signal_received", scope=SCOPE_SYSTEM, signal=signal.Signals(signum).name)
        stop.set()

    def on_uncaught(exc_type, exc, _tb):
        logger.emit("uncaught_exception", level="error", scope=SCOPE_SYSTEM, error=f"{exc_type.__name__}: {exc}")
        stop.set()

    def on_thread_uncaught(hook_args):
        on_uncaught(hook_args.exc_type, hook_args.exc_value, hook_args.exc_traceback)

    signal.signal(signal.SIGINT, on_signal)
    signal.signal(signal.SIGTERM, on_signal)
    sys.excepthook = on_uncaught
    threading.excepthook = on_thread_uncaught


def main(argv=None):
    """CLI entry point. Parses args, configures the monitor and notifier, and runs the daemon."""
    try:
        args = parse_args(argv)
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    if args.version:
        print(VERSION)
        return 0

    try:
        validate_args(args)
        webhook_cfg = resolve_webhook_config(args)
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    if args.print_config:
        print(json.dumps(resolved_config_dict(args, webhook_cfg), indent=2, sort_keys=True))
        return 0

    logger = JsonLogger(enable_json=bool(args.json), verbose=bool(args.verbose))
    set_pin_factory(args.pin_factory)

    if args.doctor:
        run_doctor(args)
        return 0

    if args.test_notify:
        return run_test_notify(args, webhook_cfg, logger)

    if webhook_cfg.insecure_key:
        logger.emit("insecure_sign_key", level="warning", scope=SCOPE_SYSTEM,
                    hint="SIGN_KEY is the built-in default; set it for production")

    if not args.no_banner:
        print(f"door-monitor {VERSION}")
        logger.emit(
            "startup",
            scope=SCOPE_SYSTEM,
            version=VERSION,
            pin=args.pin,
            edge=args.edge,
            open_delay_ms=args.open_delay_ms,
            open_value=args.open_value,
            webhook_url=webhook_cfg.url,
            retry_count=webhook_cfg.retry_count,
        )

    stop = threading.Event()
    install_shutdown_hooks(stop, logger)

    notifier = WebhookNotifier.from_config(webhook_cfg, logger, timeout_s=args.timeout)
    monitor = SensorMonitor(
        pin=args.pin,
        logger=logger,
        edge=args.edge,
        open_delay_s=args.open_delay_ms / 1000.0,
        open_value=args.open_value,
        pull_up=args.pull_up,
    )
    try:
        wire(monitor, notifier, logger)
        logger.emit("monitoring_started", scope=SCOPE_SYSTEM, pin=args.pin)
        while not stop.is_set():
            time.sleep(0.2)
    finally:
        monitor.shutdown()
        logger.emit("shutdown", scope=SCOPE_SYSTEM, pending_deliveries=notifier.pending())
        # In-flight deliveries are not cancelled; give them a bounded grace period.
        notifier.drain(args.drain_timeout)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

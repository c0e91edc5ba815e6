from __future__ import annotations

import threading
from typing import Callable, List, Optional

from .constants import DEFAULT_EDGE, DEFAULT_OPEN_VALUE, EDGE_MODES, SCOPE_SENSOR, SCOPE_SYSTEM
from .errors import SensorReadError
from .gpio import GpioLine
from .logging import JsonLogger
from .state import DoorState, MonitorPhase
from .util import now_s


class SensorMonitor:
    """Debounced door sensor on a single digital input.

    Turns raw edge notifications from a GpioLine into confirmed OPEN/CLOSED
    events. Closing is reported immediately. Opening is reported immediately
    when open_delay_s is 0; otherwise the line must still read open when the
    confirmation timer fires, and any newer edge restarts or cancels the
    timer. At most one confirmation timer exists at a time."""
    def __init__(
        self,
        pin: int,
        logger: JsonLogger,
        edge: str = DEFAULT_EDGE,
        open_delay_s: float = 0.0,
        open_value: int = DEFAULT_OPEN_VALUE,
        pull_up: bool = True,
        line=None,
        timer_factory=threading.Timer,
    ):
        """
        Initialize the monitor and start watching the line.

        Args:
            pin: BCM pin number of the reed switch.
            logger: Structured logger (JsonLogger or anything with the same emit()).
            edge: "both", "rising" or "falling".
            open_delay_s: How long an open reading must hold before it is reported.
            open_value: Raw level that means the door is open.
            pull_up: Pull resistor setting used when the line is created here.
            line: Pre-built line with watch/read_sync/release. Built from pin/edge when omitted.
            timer_factory: Called as ``timer_factory(delay, fn, args=...)``; must return an
                object with start() and cancel(). Defaults to threading.Timer.
        """
        if edge not in EDGE_MODES:
            raise ValueError(f"edge must be one of {', '.join(EDGE_MODES)}")
        if open_delay_s < 0:
            raise ValueError("open_delay_s must be >= 0")

        self._pin = pin
        self._edge = edge
        self._open_delay_s = float(open_delay_s)
        self._open_value = open_value
        self.logger = logger

        self._change_listeners: List[Callable[[DoorState], None]] = []
        self._open_listeners: List[Callable[[], None]] = []
        self._close_listeners: List[Callable[[], None]] = []

        # Guards the timer slot and serializes edge handling with timer firing,
        # so a confirmed OPEN can never be emitted after a later CLOSED.
        self._lock = threading.RLock()
        self._timer_factory = timer_factory
        self._timer = None
        self._timer_gen = 0
        self._pending_since: Optional[float] = None
        self._state: Optional[DoorState] = None
        self._closed = False

        self.logger.emit(
            "sensor_init",
            scope=SCOPE_SYSTEM,
            pin=pin,
            edge=edge,
            open_delay_ms=int(round(self._open_delay_s * 1000)),
            open_value=open_value,
        )

        self._line = line if line is not None else GpioLine(pin, edge=edge, pull_up=pull_up)
        self._line.watch(self._on_edge)
        self.logger.emit("sensor_started", scope=SCOPE_SYSTEM, pin=pin)

    @property
    def pin(self) -> int:
        return self._pin

    @property
    def edge(self) -> str:
        return self._edge

    @property
    def open_delay_s(self) -> float:
        return self._open_delay_s

    @property
    def open_value(self) -> int:
        return self._open_value

    @property
    def state(self) -> Optional[DoorState]:
        """Last state emitted to listeners (None until the first event)."""
        return self._state

    @property
    def phase(self) -> MonitorPhase:
        with self._lock:
            return MonitorPhase.AWAITING_CONFIRMATION if self._timer is not None else MonitorPhase.IDLE

    @property
    def closed(self) -> bool:
        return self._closed

    def on_change(self, listener: Callable[[DoorState], None]) -> "SensorMonitor":
        self._change_listeners.append(listener)
        return self

    def on_open(self, listener: Callable[[], None]) -> "SensorMonitor":
        self._open_listeners.append(listener)
        return self

    def on_close(self, listener: Callable[[], None]) -> "SensorMonitor":
        self._close_listeners.append(listener)
        return self

    def shutdown(self) -> None:
        """Cancel any pending confirmation and release the line.

        Safe to call more than once; release failures are logged, not raised."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._cancel_timer()
        self.logger.emit("sensor_shutdown", scope=SCOPE_SYSTEM, pin=self._pin)
        try:
            self._line.release()
        except Exception as e:
            self.logger.emit("sensor_release_error", level="error", scope=SCOPE_SYSTEM, pin=self._pin, error=str(e))

    # ---------------- Edge handling ----------------

    def _on_edge(self, err, value):
        """Line callback: (error, raw level)."""
        with self._lock:
            if self._closed:
                return

            if err is not None:
                self._log_read_error(SensorReadError(self._pin, f"read error: {err}"))
                return
            if not isinstance(value, (int, float)):
                self.logger.emit(
                    "sensor_invalid_value",
                    level="warning",
                    scope=SCOPE_SENSOR,
                    pin=self._pin,
                    value=repr(value),
                )
                return

            observed = DoorState.from_level(value, self._open_value)
            self.logger.emit("door_state_detected", scope=SCOPE_SENSOR, pin=self._pin, state=observed.value, value=value)

            if observed is DoorState.CLOSED:
                self._cancel_timer()
                self._emit(DoorState.CLOSED)
                return

            if self._open_delay_s <= 0:
                self._emit(DoorState.OPEN)
                return

            # Repeated open edges restart the confirmation window.
            self._cancel_timer()
            self._start_timer()

    def _start_timer(self):
        self._timer_gen += 1
        t = self._timer_factory(self._open_delay_s, self._confirm_open, args=(self._timer_gen,))
        t.daemon = True
        self._timer = t
        self._pending_since = now_s()
        self.logger.emit(
            "door_open_pending",
            level="debug",
            scope=SCOPE_SENSOR,
            pin=self._pin,
            delay_ms=int(round(self._open_delay_s * 1000)),
        )
        t.start()

    def _cancel_timer(self):
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None
        self._pending_since = None

    def _confirm_open(self, gen: int):
        """Timer callback: re-read the line and confirm or discard the open."""
        with self._lock:
            # A newer edge or shutdown superseded this timer while it was firing.
            if self._closed or gen != self._timer_gen or self._timer is None:
                return
            self._timer = None
            held_s = now_s() - self._pending_since if self._pending_since is not None else None
            self._pending_since = None

            try:
                level = self._line.read_sync()
            except Exception as e:
                self._log_read_error(SensorReadError(self._pin, f"confirmation read failed: {e}"))
                return

            if level == self._open_value:
                self.logger.emit(
                    "door_open_confirmed",
                    scope=SCOPE_SENSOR,
                    pin=self._pin,
                    held_s=(round(held_s, 3) if held_s is not None else None),
                )
                self._emit(DoorState.OPEN)
            else:
                self.logger.emit("door_open_discarded", scope=SCOPE_SENSOR, pin=self._pin, value=level)

    def _log_read_error(self, exc: SensorReadError):
        self.logger.emit("sensor_read_error", level="error", scope=SCOPE_SENSOR, pin=exc.pin, error=str(exc))

    def _emit(self, state: DoorState):
        self._state = state
        self.logger.emit("door_open" if state.is_open else "door_closed", scope=SCOPE_SENSOR, pin=self._pin)
        for listener in list(self._open_listeners if state.is_open else self._close_listeners):
            self._call(listener)
        for listener in list(self._change_listeners):
            self._call(listener, state)

    def _call(self, listener, *args):
        try:
            listener(*args)
        except Exception as e:
            self.logger.emit(
                "listener_error",
                level="error",
                scope=SCOPE_SENSOR,
                pin=self._pin,
                listener=getattr(listener, "__name__", repr(listener)),
                error=str(e),
            )

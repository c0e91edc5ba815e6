from __future__ import annotations

from typing import Callable, Optional

from gpiozero import Device, DigitalInputDevice

from .constants import DEFAULT_EDGE, EDGE_MODES

# callback(error, level): exactly one of the two is None.
EdgeCallback = Callable[[Optional[BaseException], Optional[int]], None]


def set_pin_factory(name: Optional[str]) -> None:
    """Select a gpiozero pin backend by name (e.g. "lgpio" on a Pi 5).

    With no name the gpiozero default applies (GPIOZERO_PIN_FACTORY or autodetect).
    """
    if not name:
        return
    if name == "lgpio":
        from gpiozero.pins.lgpio import LGPIOFactory
        Device.pin_factory = LGPIOFactory()
    elif name == "mock":
        from gpiozero.pins.mock import MockFactory
        Device.pin_factory = MockFactory()
    else:
        raise ValueError(f"unsupported pin factory: {name}")


class GpioLine:
    """One digital input with edge notifications and raw level reads.

    Levels are raw pin states (0/1) regardless of pull-up polarity, so the
    caller's open-level comparison does not depend on wiring. The edge mode is
    applied to the raw level: "rising" reports only transitions to 1,
    "falling" only transitions to 0, "both" reports all of them.
    """
    def __init__(self, pin: int, edge: str = DEFAULT_EDGE, pull_up: bool = True):
        if edge not in EDGE_MODES:
            raise ValueError(f"edge must be one of {', '.join(EDGE_MODES)}")
        self.pin = pin
        self.edge = edge
        self._device = DigitalInputDevice(pin, pull_up=pull_up)
        self._callback: Optional[EdgeCallback] = None

    def watch(self, callback: EdgeCallback) -> None:
        """Register the edge callback. Replaces any previous callback."""
        self._callback = callback
        self._device.when_activated = self._on_edge
        self._device.when_deactivated = self._on_edge

    def read_sync(self) -> int:
        """Return the instantaneous raw level of the pin."""
        return int(self._device.pin.state)

    def release(self) -> None:
        """Stop notifications and free the pin."""
        self._callback = None
        self._device.when_activated = None
        self._device.when_deactivated = None
        self._device.close()

    def _on_edge(self):
        cb = self._callback
        if cb is None:
            return
        try:
            level = self.read_sync()
        except Exception as e:
            cb(e, None)
            return
        if self.edge == "rising" and level != 1:
            return
        if self.edge == "falling" and level != 0:
            return
        cb(None, level)

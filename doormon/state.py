from __future__ import annotations

import enum


class DoorState(str, enum.Enum):
    """Confirmed state of the door as reported to listeners."""
    OPEN = "OPEN"
    CLOSED = "CLOSED"

    @classmethod
    def from_level(cls, level, open_level) -> "DoorState":
        return cls.OPEN if level == open_level else cls.CLOSED

    @property
    def is_open(self) -> bool:
        return self is DoorState.OPEN


class MonitorPhase(str, enum.Enum):
    """Debounce phase of a SensorMonitor.

    IDLE means no delayed-open confirmation is pending. AWAITING_CONFIRMATION
    means an open edge was seen and the confirmation timer is running."""
    IDLE = "IDLE"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"

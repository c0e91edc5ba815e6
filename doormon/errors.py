from __future__ import annotations

from typing import Optional


class DoorMonitorError(Exception):
    """Base class for door-monitor errors."""


class ConfigurationError(DoorMonitorError):
    """Invalid or missing configuration detected at startup."""


class SensorReadError(DoorMonitorError):
    """The input line reported an error or a value that is not a level."""

    def __init__(self, pin, message: str):
        super().__init__(f"GPIO{pin}: {message}")
        self.pin = pin


class DeliveryError(DoorMonitorError):
    """A webhook delivery attempt failed.

    Raised per attempt (and retried) for transport errors and non-2xx
    responses. The error raised to the caller after the last attempt carries
    the total number of attempts made.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, attempts: int = 0):
        super().__init__(message)
        self.status_code = status_code
        self.attempts = attempts

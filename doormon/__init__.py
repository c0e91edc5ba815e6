"""doormon package for door-monitor."""

from .state import DoorState, MonitorPhase
from .monitor import SensorMonitor
from .notify import WebhookNotifier
from .signing import sign_payload

__all__ = ["DoorState", "MonitorPhase", "SensorMonitor", "WebhookNotifier", "sign_payload"]

import pytest


class CapturingLogger:
    """Minimal logger that matches the JsonLogger .emit(event, level=, scope=, **fields) contract."""
    def __init__(self):
        self.events = []
        self.levels = {}

    def emit(self, event: str, level: str = "info", scope=None, **fields):
        self.events.append((event, fields))
        self.levels[event] = level

    def names(self):
        return [e for e, _ in self.events]


class FakeLine:
    """Stand-in for GpioLine: tests push edges and set the level read at confirmation time."""
    def __init__(self, level=0):
        self.level = level
        self.callback = None
        self.released = 0
        self.release_error = None
        self.read_error = None

    def watch(self, callback):
        self.callback = callback

    def read_sync(self):
        if self.read_error is not None:
            raise self.read_error
        return self.level

    def release(self):
        self.released += 1
        if self.release_error is not None:
            raise self.release_error

    def edge(self, level):
        self.level = level
        self.callback(None, level)

    def fail(self, err):
        self.callback(err, None)


class ManualTimer:
    """threading.Timer look-alike that only fires when the test says so."""
    created = []

    def __init__(self, interval, function, args=None, kwargs=None):
        self.interval = interval
        self.function = function
        self.args = args or ()
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False
        ManualTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        # Like threading.Timer, a cancelled timer never runs its function.
        if not self.cancelled:
            self.function(*self.args, **self.kwargs)

    def fire_anyway(self):
        """Simulate a timer whose callback was already running when it was cancelled."""
        self.function(*self.args, **self.kwargs)


@pytest.fixture
def logger():
    return CapturingLogger()


@pytest.fixture
def line():
    return FakeLine()


@pytest.fixture
def timers():
    ManualTimer.created = []
    yield ManualTimer.created
    ManualTimer.created = []


@pytest.fixture
def make_monitor(logger, line, timers):
    from doormon.monitor import SensorMonitor

    def _make(**kwargs):
        kwargs.setdefault("open_value", 1)
        mon = SensorMonitor(pin=4, logger=logger, line=line, timer_factory=ManualTimer, **kwargs)
        changes = []
        mon.on_change(changes.append)
        mon.changes = changes
        return mon

    return _make

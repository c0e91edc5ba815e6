import io
import json
from types import SimpleNamespace

from doormon.config import WebhookConfig
from doormon.doctor import run_test_notify
from doormon.logging import JsonLogger


def test_json_events_are_single_sorted_lines():
    out, err = io.StringIO(), io.StringIO()
    log = JsonLogger(enable_json=True, stream=out, err_stream=err)

    log.emit("door_open", scope="SENSOR", pin=4)
    log.emit("webhook_failed", level="error", scope="NETWORK", attempts=4)

    rec = json.loads(out.getvalue())
    assert rec["event"] == "door_open"
    assert rec["level"] == "info"
    assert rec["scope"] == "SENSOR"
    assert rec["pin"] == 4
    assert json.loads(err.getvalue())["attempts"] == 4


def test_text_mode_and_debug_filtering():
    out, err = io.StringIO(), io.StringIO()
    log = JsonLogger(enable_json=False, stream=out, err_stream=err)

    log.emit("door_open_pending", level="debug", scope="SENSOR")
    assert out.getvalue() == ""

    log.emit("door_closed", scope="SENSOR", pin=4)
    line = out.getvalue().strip()
    assert line.endswith("INFO SENSOR door_closed pin=4")

    verbose = JsonLogger(verbose=True, stream=out, err_stream=err)
    verbose.emit("door_open_pending", level="debug")
    assert "DEBUG door_open_pending" in out.getvalue()


def test_run_test_notify_reports_outcome(monkeypatch, capsys, logger):
    class Resp:
        status_code = 200

    calls = []

    def fake_post(url, data=None, headers=None, timeout=None):
        calls.append(data)
        return Resp()

    monkeypatch.setattr("requests.post", fake_post)
    args = SimpleNamespace(test_notify="closed", timeout=1.0)
    cfg = WebhookConfig(url="http://hooks.local/door", sign_key="k", retry_count=0)

    assert run_test_notify(args, cfg, logger) == 0
    assert calls == [b'{"open":false}']
    assert "OK: delivered" in capsys.readouterr().out


def test_run_test_notify_failure_exit_code(monkeypatch, capsys, logger):
    class Resp:
        status_code = 401

    monkeypatch.setattr("requests.post", lambda *a, **k: Resp())
    args = SimpleNamespace(test_notify="open", timeout=1.0)
    cfg = WebhookConfig(url="http://hooks.local/door", retry_count=0)

    assert run_test_notify(args, cfg, logger) == 1
    out = capsys.readouterr().out
    assert "FAILED" in out
    assert "WARN: SIGN_KEY" in out


def test_run_test_notify_prints_the_material_it_signs(monkeypatch, capsys, logger):
    import itertools

    from doormon.signing import verify_signature

    class Resp:
        status_code = 200

    ticks = itertools.count(1)

    def stepping_clock():
        return "2024-01-01T00:00:00.%03dZ" % next(ticks)

    monkeypatch.setattr("doormon.doctor.utc_timestamp", stepping_clock)
    monkeypatch.setattr("doormon.notify.utc_timestamp", stepping_clock)
    sent = []
    monkeypatch.setattr("requests.post", lambda url, data=None, headers=None, timeout=None: sent.append(headers) or Resp())
    args = SimpleNamespace(test_notify="open", timeout=1.0)
    cfg = WebhookConfig(url="http://hooks.local/door", sign_key="k", retry_count=0)

    assert run_test_notify(args, cfg, logger) == 0
    headers = sent[0]
    out = capsys.readouterr().out
    assert '{"open":true,"timestamp":"%s"}' % headers["X-Timestamp"] in out
    assert verify_signature({"open": True}, headers["X-Timestamp"], "k", headers["X-Signature"])

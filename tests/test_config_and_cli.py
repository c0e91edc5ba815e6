import json

import pytest

from doormon.cli import main, parse_args, resolve_webhook_config, wire
from doormon.config import get_bool_env, get_webhook_config
from doormon.constants import DEFAULT_SIGN_KEY, DEFAULT_WEBHOOK_URL
from doormon.doctor import validate_args
from doormon.errors import ConfigurationError
from doormon.state import DoorState


def test_env_defaults():
    cfg = get_webhook_config({})
    assert cfg.url == DEFAULT_WEBHOOK_URL
    assert cfg.sign_key == DEFAULT_SIGN_KEY
    assert cfg.retry_count == 3
    assert cfg.insecure_key is True


def test_env_values_and_empty_fallback():
    cfg = get_webhook_config({"WEBHOOK_URL": "https://example.org/hook", "SIGN_KEY": "k", "RETRY_COUNT": "5"})
    assert (cfg.url, cfg.sign_key, cfg.retry_count) == ("https://example.org/hook", "k", 5)
    assert cfg.insecure_key is False

    cfg = get_webhook_config({"SIGN_KEY": "", "RETRY_COUNT": ""})
    assert cfg.sign_key == DEFAULT_SIGN_KEY
    assert cfg.retry_count == 3


@pytest.mark.parametrize("env", [
    {"RETRY_COUNT": "three"},
    {"RETRY_COUNT": "-1"},
    {"WEBHOOK_URL": "ftp://example.org"},
    {"WEBHOOK_URL": "not a url"},
])
def test_env_validation(env):
    with pytest.raises(ConfigurationError):
        get_webhook_config(env)


def test_get_bool_env():
    assert get_bool_env("X", environ={"X": "yes"}) is True
    assert get_bool_env("X", environ={"X": "off"}) is False
    assert get_bool_env("X", default=True, environ={}) is True


def test_parser_defaults():
    args = parse_args([])
    assert args.pin == 4
    assert args.edge == "both"
    assert args.open_delay_ms == 0
    assert args.open_value == 1
    assert args.pull_up is True
    assert args.webhook_url is None
    assert args.retry_count is None
    validate_args(args)


def test_toml_values_are_defaults_and_cli_wins(tmp_path):
    cfg = tmp_path / "door.toml"
    cfg.write_text(
        "[gpio]\npin = 17\nopen_delay_ms = 200\nopen_value = 0\n"
        "[webhook]\nurl = \"https://hooks.example.org/door\"\nretry_count = 1\n"
    )
    args = parse_args(["--config", str(cfg), "--pin", "22"])
    assert args.pin == 22
    assert args.open_delay_ms == 200
    assert args.open_value == 0

    wh = resolve_webhook_config(args, environ={"WEBHOOK_URL": "http://env.local/hook", "RETRY_COUNT": "7"})
    assert wh.url == "https://hooks.example.org/door"
    assert wh.retry_count == 1


def test_environment_used_when_cli_and_file_silent():
    args = parse_args([])
    wh = resolve_webhook_config(args, environ={"WEBHOOK_URL": "http://env.local/hook", "RETRY_COUNT": "7"})
    assert wh.url == "http://env.local/hook"
    assert wh.retry_count == 7


def test_validate_args_rejects_negative_delay():
    args = parse_args(["--open-delay-ms", "-5"])
    with pytest.raises(ConfigurationError):
        validate_args(args)


def test_main_print_config(capsys, monkeypatch):
    monkeypatch.delenv("SIGN_KEY", raising=False)
    monkeypatch.delenv("WEBHOOK_URL", raising=False)
    monkeypatch.delenv("RETRY_COUNT", raising=False)
    assert main(["--print-config", "--open-delay-ms", "150"]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["gpio"]["open_delay_ms"] == 150
    assert out["webhook"]["url"] == DEFAULT_WEBHOOK_URL
    assert out["webhook"]["sign_key"] == "<default>"


def test_main_reports_configuration_errors(capsys, monkeypatch):
    monkeypatch.setenv("RETRY_COUNT", "lots")
    assert main(["--print-config"]) == 2
    assert "RETRY_COUNT" in capsys.readouterr().err


def test_wire_forwards_changes_and_logs_delivery_failure(make_monitor, line, logger):
    from concurrent.futures import Future

    from doormon.errors import DeliveryError

    class DummyNotifier:
        def __init__(self):
            self.calls = []

        def notify(self, state):
            self.calls.append(state)
            fut = Future()
            fut.set_exception(DeliveryError("HTTP 500", status_code=500, attempts=4))
            return fut

    mon = make_monitor()
    notifier = DummyNotifier()
    wire(mon, notifier, logger)

    line.edge(1)
    line.edge(0)
    assert notifier.calls == [DoorState.OPEN, DoorState.CLOSED]
    assert logger.names().count("notify_failed") == 2
    assert logger.levels["notify_failed"] == "error"


def test_unknown_pin_factory_in_config_file_exits_cleanly(tmp_path, capsys):
    cfg = tmp_path / "door.toml"
    cfg.write_text("[gpio]\npin_factory = \"rpigpio\"\n")

    assert main(["--config", str(cfg)]) == 2
    assert "pin_factory" in capsys.readouterr().err


def test_known_pin_factory_in_config_file_is_accepted(tmp_path):
    cfg = tmp_path / "door.toml"
    cfg.write_text("[gpio]\npin_factory = \"mock\"\n")

    args = parse_args(["--config", str(cfg)])
    assert args.pin_factory == "mock"
    validate_args(args)

import logging

import pytest

from rts_core import config
from rts_core.config import Settings, configure_logging, load_settings


ENV_VARS = ["RTS_SHEET_ID", "RTS_TAB_NAME", "RTS_REFRESH_SECONDS", "RTS_PROXY_URL", "RTS_REQUEST_TIMEOUT", "RTS_LOG_LEVEL"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.setattr(config, "load_dotenv", lambda: False)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    settings = load_settings()
    assert settings == Settings()
    assert settings.tab_name == "RTS Total Open"
    assert settings.refresh_seconds == 300
    assert settings.request_timeout == 30.0
    assert settings.proxy_url is None


def test_overrides(monkeypatch):
    monkeypatch.setenv("RTS_SHEET_ID", " sheet-123 ")
    monkeypatch.setenv("RTS_TAB_NAME", "Other Tab")
    monkeypatch.setenv("RTS_REFRESH_SECONDS", "60")
    monkeypatch.setenv("RTS_PROXY_URL", "http://localhost:3001/")
    monkeypatch.setenv("RTS_REQUEST_TIMEOUT", "12.5")
    monkeypatch.setenv("RTS_LOG_LEVEL", "debug")

    settings = load_settings()
    assert settings.sheet_id == "sheet-123"
    assert settings.tab_name == "Other Tab"
    assert settings.refresh_seconds == 60
    assert settings.proxy_url == "http://localhost:3001"
    assert settings.request_timeout == 12.5
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize("raw", ["abc", "0", "-5", "  "])
def test_invalid_refresh_falls_back(monkeypatch, raw):
    monkeypatch.setenv("RTS_REFRESH_SECONDS", raw)
    assert load_settings().refresh_seconds == 300


@pytest.mark.parametrize("raw, expected", [("none", None), ("OFF", None), ("0", None), ("soon", 30.0)])
def test_request_timeout(monkeypatch, raw, expected):
    monkeypatch.setenv("RTS_REQUEST_TIMEOUT", raw)
    assert load_settings().request_timeout == expected


def test_configure_logging_accepts_unknown_level(monkeypatch):
    seen = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kw: seen.update(kw))
    configure_logging("chatty")
    assert seen["level"] == logging.INFO

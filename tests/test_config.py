from __future__ import annotations

from pathlib import Path

import allure
import pytest

from taskd.config import Settings

pytestmark = [
    allure.epic("Configuration"),
    allure.feature("Settings"),
]

_ENV_NAMES = (
    "TASKD_NAME",
    "TASKD_MAX_CONCURRENCY",
    "TASKD_QUIET_TIME_SECONDS",
    "TASKD_MAX_CHILD_RUNTIME_SECONDS",
    "TASKD_DAEMONIZE",
    "TASKD_STOP_WHEN_PRODUCERS_EMPTY",
    "TASKD_PIDFILE",
    "TASKD_LOG_LEVEL",
    "TASKD_SYSLOG",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_environment() -> None:
    settings = Settings.from_env()

    assert settings == Settings()
    assert settings.max_concurrency == 100
    assert settings.quiet_time_seconds == 1.0
    assert settings.daemonize is True
    assert settings.pidfile is None
    settings.validate()


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("TASKD_NAME", "mailer")
    monkeypatch.setenv("TASKD_MAX_CONCURRENCY", "8")
    monkeypatch.setenv("TASKD_QUIET_TIME_SECONDS", "0.25")
    monkeypatch.setenv("TASKD_MAX_CHILD_RUNTIME_SECONDS", "30")
    monkeypatch.setenv("TASKD_DAEMONIZE", "off")
    monkeypatch.setenv("TASKD_STOP_WHEN_PRODUCERS_EMPTY", "yes")
    monkeypatch.setenv("TASKD_PIDFILE", "/tmp/mailer.pid")
    monkeypatch.setenv("TASKD_LOG_LEVEL", "debug")
    monkeypatch.setenv("TASKD_SYSLOG", "1")

    settings = Settings.from_env()

    assert settings.name == "mailer"
    assert settings.max_concurrency == 8
    assert settings.quiet_time_seconds == 0.25
    assert settings.max_child_runtime_seconds == 30.0
    assert settings.daemonize is False
    assert settings.stop_when_producers_empty is True
    assert settings.pidfile == Path("/tmp/mailer.pid")
    assert settings.log_level == "DEBUG"
    assert settings.syslog is True
    settings.validate()


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("TASKD_MAX_CONCURRENCY", "many", "Invalid integer value for TASKD_MAX_CONCURRENCY"),
        ("TASKD_QUIET_TIME_SECONDS", "soon", "Invalid number for TASKD_QUIET_TIME_SECONDS"),
        ("TASKD_DAEMONIZE", "maybe", "Invalid boolean value for TASKD_DAEMONIZE"),
    ],
)
def test_malformed_environment_values_raise(monkeypatch, name, value, message) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValueError, match=message):
        Settings.from_env()


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"name": " "}, "TASKD_NAME"),
        ({"max_concurrency": 0}, "TASKD_MAX_CONCURRENCY"),
        ({"quiet_time_seconds": -1.0}, "TASKD_QUIET_TIME_SECONDS"),
        ({"max_child_runtime_seconds": -0.1}, "TASKD_MAX_CHILD_RUNTIME_SECONDS"),
        ({"log_level": "LOUD"}, "TASKD_LOG_LEVEL"),
    ],
)
def test_validate_rejects_out_of_range_values(overrides, message) -> None:
    with pytest.raises(ValueError, match=message):
        Settings(**overrides).validate()


@pytest.mark.parametrize(
    ("env", "expected"),
    [
        ({}, True),
        ({"TASKD_DAEMONIZE": "0"}, False),
        ({"TASKD_SYSLOG": "0"}, False),
        ({"TASKD_DAEMONIZE": "0", "TASKD_SYSLOG": "1"}, True),
    ],
)
def test_syslog_follows_daemonize_unless_chosen(monkeypatch, env, expected) -> None:
    for name, value in env.items():
        monkeypatch.setenv(name, value)

    assert Settings.from_env().use_syslog is expected

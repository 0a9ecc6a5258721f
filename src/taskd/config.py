"""Runtime configuration for the supervisor."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(slots=True)
class Settings:
    """Supervisor settings; environment values can be overridden by the CLI."""

    name: str = "taskd"
    max_concurrency: int = 100
    quiet_time_seconds: float = 1.0
    max_child_runtime_seconds: float = 0.0
    daemonize: bool = True
    stop_when_producers_empty: bool = False
    pidfile: Path | None = None
    log_level: str = "INFO"
    syslog: bool | None = None

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from ``TASKD_*`` environment variables."""

        pidfile_raw = os.getenv("TASKD_PIDFILE", "").strip()
        return cls(
            name=os.getenv("TASKD_NAME", "taskd").strip() or "taskd",
            max_concurrency=_env_int("TASKD_MAX_CONCURRENCY", 100),
            quiet_time_seconds=_env_float("TASKD_QUIET_TIME_SECONDS", 1.0),
            max_child_runtime_seconds=_env_float("TASKD_MAX_CHILD_RUNTIME_SECONDS", 0.0),
            daemonize=_env_bool("TASKD_DAEMONIZE", default=True),
            stop_when_producers_empty=_env_bool(
                "TASKD_STOP_WHEN_PRODUCERS_EMPTY",
                default=False,
            ),
            pidfile=Path(pidfile_raw) if pidfile_raw else None,
            log_level=os.getenv("TASKD_LOG_LEVEL", "INFO").strip().upper() or "INFO",
            syslog=_env_optional_bool("TASKD_SYSLOG"),
        )

    @property
    def use_syslog(self) -> bool:
        """Syslog unless a sink was chosen; stderr is gone once daemonized."""

        return self.daemonize if self.syslog is None else self.syslog

    def validate(self) -> None:
        """Raise ``ValueError`` describing the first invalid setting."""

        if not self.name.strip():
            raise ValueError("TASKD_NAME must not be empty.")
        if self.max_concurrency <= 0:
            raise ValueError("TASKD_MAX_CONCURRENCY must be a positive integer.")
        if self.quiet_time_seconds < 0:
            raise ValueError("TASKD_QUIET_TIME_SECONDS must be >= 0.")
        if self.max_child_runtime_seconds < 0:
            raise ValueError("TASKD_MAX_CHILD_RUNTIME_SECONDS must be >= 0 (0 = unbounded).")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown TASKD_LOG_LEVEL: {self.log_level!r}")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid number for {name}: {value!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    parsed = _env_optional_bool(name)
    return default if parsed is None else parsed


def _env_optional_bool(name: str) -> bool | None:
    value = os.getenv(name)
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")

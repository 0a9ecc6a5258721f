"""Logging levels and handler setup for the supervisor."""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path

NOTICE = 25
logging.addLevelName(NOTICE, "NOTICE")

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s[%(process)d]: %(message)s"
_SYSLOG_SOCKETS = ("/dev/log", "/var/run/syslog")


def configure_logging(
    name: str,
    *,
    level: str | int = logging.INFO,
    verbose: bool = False,
    use_syslog: bool = False,
) -> logging.Logger:
    """Attach a stderr or syslog handler to the ``taskd`` logger tree.

    Returns the logger named after the daemon, which is what the supervisor
    uses as its sink.
    """

    root = logging.getLogger("taskd")
    for handler in list(root.handlers):
        if not isinstance(handler, logging.NullHandler):
            root.removeHandler(handler)

    handler: logging.Handler
    if use_syslog:
        syslog_handler = logging.handlers.SysLogHandler(
            address=_syslog_address(),
            facility=logging.handlers.SysLogHandler.LOG_LOCAL0,
        )
        syslog_handler.ident = f"{name}: "
        syslog_handler.setFormatter(logging.Formatter("%(name)s[%(process)d]: %(message)s"))
        handler = syslog_handler
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else _resolve_level(level))
    return logging.getLogger(f"taskd.{name}")


def _resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def _syslog_address() -> str | tuple[str, int]:
    for candidate in _SYSLOG_SOCKETS:
        if Path(candidate).exists():
            return candidate
    return ("localhost", logging.handlers.SYSLOG_UDP_PORT)

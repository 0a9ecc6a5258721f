"""Process-level collaborators: background detachment and PID files."""

from taskd.runtime.daemonize import DaemonizeError, daemonize
from taskd.runtime.pidfile import read_pidfile, remove_pidfile, write_pidfile

__all__ = [
    "DaemonizeError",
    "daemonize",
    "read_pidfile",
    "remove_pidfile",
    "write_pidfile",
]

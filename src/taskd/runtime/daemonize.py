"""Detach the current process into a background session."""

from __future__ import annotations

import logging
import os
import sys

logger = logging.getLogger(__name__)


class DaemonizeError(RuntimeError):
    """The process could not be detached."""


def daemonize(*, workdir: str = "/", umask: int = 0o022) -> int:
    """Double-fork into a new session and return the daemon's pid.

    Only the final grandchild returns; both intermediate processes exit.
    Standard streams are redirected to ``/dev/null``.
    """

    _fork_and_exit_parent()
    try:
        os.setsid()
    except OSError as error:
        raise DaemonizeError(f"setsid() failed: {error}") from error
    _fork_and_exit_parent()

    os.chdir(workdir)
    os.umask(umask)
    _redirect_std_streams()
    pid = os.getpid()
    logger.info("Became daemon with PID %d", pid)
    return pid


def _fork_and_exit_parent() -> None:
    for stream in (sys.stdout, sys.stderr):
        if stream is not None:
            stream.flush()
    try:
        pid = os.fork()
    except OSError as error:
        raise DaemonizeError(f"Failed to fork to a daemon: {error}") from error
    if pid > 0:
        os._exit(0)


def _redirect_std_streams() -> None:
    devnull = os.open(os.devnull, os.O_RDWR)
    try:
        for stream in (sys.stdin, sys.stdout, sys.stderr):
            if stream is None:
                continue
            try:
                fileno = stream.fileno()
            except (AttributeError, OSError, ValueError):
                continue
            os.dup2(devnull, fileno)
    finally:
        os.close(devnull)

"""Shared test fixtures."""

from __future__ import annotations

import logging
import os
import signal

import pytest

from taskd.supervisor import Daemon, EventDispatcher, SignalRegistry

_GUARDED_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGUSR1, signal.SIGUSR2)


@pytest.fixture(autouse=True)
def _restore_signal_handlers():
    saved = {signum: signal.getsignal(signum) for signum in _GUARDED_SIGNALS}
    yield
    for signum, handler in saved.items():
        signal.signal(signum, handler)


@pytest.fixture(autouse=True)
def _reset_taskd_logging():
    yield
    root = logging.getLogger("taskd")
    for handler in list(root.handlers):
        if not isinstance(handler, logging.NullHandler):
            root.removeHandler(handler)
    root.setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def _reap_leftover_children():
    yield
    while True:
        try:
            pid, _ = os.waitpid(-1, os.WNOHANG)
        except ChildProcessError:
            return
        if pid == 0:
            return


@pytest.fixture()
def dispatcher() -> EventDispatcher:
    return EventDispatcher()


@pytest.fixture()
def signals():
    registry = SignalRegistry()
    yield registry
    registry.reset()


@pytest.fixture()
def make_daemon(signals, dispatcher):
    """Foreground daemon factory with a short quiet time."""

    def _make(**overrides) -> Daemon:
        options = {
            "quiet_time": 0.01,
            "daemonize": False,
            "signals": signals,
            "dispatcher": dispatcher,
        }
        options.update(overrides)
        return Daemon(**options)

    return _make

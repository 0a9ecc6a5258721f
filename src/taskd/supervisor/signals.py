"""OS signal fan-out to ordered listener lists."""

from __future__ import annotations

import logging
import signal
from collections.abc import Callable
from types import FrameType
from typing import TypeAlias

logger = logging.getLogger(__name__)

SignalListener: TypeAlias = Callable[[int], None]


class SignalRegistry:
    """Own the OS handler for every signal that has at least one listener.

    The handler is installed when the first listener for a signal is added and
    the default disposition comes back when the last one is removed. Delivery
    iterates over a snapshot, so listeners may add or remove listeners.
    """

    def __init__(self) -> None:
        self._listeners: dict[int, tuple[SignalListener, ...]] = {}

    def add(self, signum: int, listener: SignalListener) -> None:
        signum = int(signum)
        current = self._listeners.get(signum)
        if current is None:
            signal.signal(signum, self.call)
            self._listeners[signum] = (listener,)
            return
        if listener in current:
            return
        self._listeners[signum] = (*current, listener)

    def remove(self, signum: int, listener: SignalListener) -> None:
        signum = int(signum)
        current = self._listeners.get(signum)
        if not current or listener not in current:
            return
        remaining = tuple(item for item in current if item != listener)
        if remaining:
            self._listeners[signum] = remaining
            return
        del self._listeners[signum]
        signal.signal(signum, signal.SIG_DFL)

    def call(self, signum: int, frame: FrameType | None = None) -> None:
        """Installed OS handler: run listeners in registration order."""

        for listener in self._listeners.get(int(signum), ()):
            try:
                listener(signum)
            except Exception:
                logger.exception("Signal listener %r failed for signal %s", listener, signum)

    def listeners(self, signum: int) -> list[SignalListener]:
        return list(self._listeners.get(int(signum), ()))

    def signals(self) -> list[int]:
        return sorted(self._listeners)

    def reset(self) -> None:
        """Drop every listener and restore default dispositions.

        Forked children call this so signals sent to them by the supervisor
        take their default effect instead of running the parent's listeners.
        """

        for signum in list(self._listeners):
            signal.signal(signum, signal.SIG_DFL)
        self._listeners.clear()

"""Messenger interface shared by both sides of a fork."""

from __future__ import annotations

from enum import Enum
from typing import Protocol, runtime_checkable


class MessengerError(RuntimeError):
    """Messenger used out of order or on a released channel."""


class Role(str, Enum):
    """Which side of the fork is talking."""

    PARENT = "parent"
    CHILD = "child"


@runtime_checkable
class Messenger(Protocol):
    """Byte channel created before a fork and used by both processes after it."""

    def init(self) -> None:
        """Allocate the channel. Must run in the creating process, before the fork."""
        raise NotImplementedError

    def after_fork(self) -> None:
        """Drop the other role's end. Runs on both sides right after the fork."""
        raise NotImplementedError

    def send(self, message: bytes) -> bool:
        """Send bytes to the other role, returning whether the write completed."""
        raise NotImplementedError

    def receive(self) -> bytes:
        """Drain everything currently pending, without blocking."""
        raise NotImplementedError

    def has_message(self) -> bool:
        """Return whether data is waiting to be received."""
        raise NotImplementedError

    def close(self) -> None:
        """Release this role's end of the channel."""
        raise NotImplementedError

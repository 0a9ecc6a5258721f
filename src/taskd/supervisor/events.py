"""Synchronous lifecycle events and their priority-ordered dispatcher."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias, runtime_checkable

if TYPE_CHECKING:
    from taskd.supervisor.daemon import Daemon
    from taskd.supervisor.process import Process
    from taskd.tasks.task import Task

logger = logging.getLogger(__name__)

Listener: TypeAlias = Callable[[Any], None]


class EventName(str, Enum):
    """Names of every event the supervisor dispatches."""

    DAEMON_START = "daemon.start"
    DAEMON_STOP = "daemon.stop"
    DAEMON_DAEMONIZED = "daemon.daemonized"
    DAEMON_ITERATION = "daemon.iteration"
    PROCESS_START = "process.start"
    PROCESS_EXIT = "process.exit"
    PROCESS_ITERATION = "process.iteration"
    TASK_START = "task.start"
    TASK_END = "task.end"


@dataclass(frozen=True, slots=True)
class DaemonEvent:
    """Subject is the daemon; ``pid`` is set for ``daemon.daemonized``."""

    daemon: Daemon
    pid: int | None = None


@dataclass(frozen=True, slots=True)
class ProcessEvent:
    process: Process


@dataclass(frozen=True, slots=True)
class TaskEvent:
    task: Task
    pid: int
    exit_status: int | None = None


@runtime_checkable
class EventSubscriber(Protocol):
    """Object that declares its own listeners, e.g. a producer watching exits."""

    def subscribed_events(self) -> Mapping[str, Listener | tuple[Listener, int]]:
        """Map event names to a listener or a ``(listener, priority)`` pair."""
        raise NotImplementedError


@dataclass(slots=True)
class _Registration:
    listener: Listener
    priority: int
    sequence: int


class EventDispatcher:
    """In-process publish/subscribe bus.

    Higher priority runs first; equal priorities run in registration order.
    A listener that raises is logged and does not stop the remaining ones.
    """

    def __init__(self) -> None:
        self._registrations: dict[str, list[_Registration]] = {}
        self._sequence = itertools.count()

    def add_listener(self, name: str, listener: Listener, priority: int = 0) -> None:
        self._registrations.setdefault(_key(name), []).append(
            _Registration(listener=listener, priority=priority, sequence=next(self._sequence)),
        )

    def remove_listener(self, name: str, listener: Listener) -> None:
        key = _key(name)
        registrations = self._registrations.get(key)
        if not registrations:
            return
        remaining = [item for item in registrations if item.listener != listener]
        if remaining:
            self._registrations[key] = remaining
        else:
            del self._registrations[key]

    def add_subscriber(self, subscriber: EventSubscriber) -> None:
        for name, entry in subscriber.subscribed_events().items():
            listener, priority = _unpack(entry)
            self.add_listener(name, listener, priority)

    def remove_subscriber(self, subscriber: EventSubscriber) -> None:
        for name, entry in subscriber.subscribed_events().items():
            listener, _ = _unpack(entry)
            self.remove_listener(name, listener)

    def listeners(self, name: str) -> list[Listener]:
        """Listeners for ``name`` in call order."""

        registrations = self._registrations.get(_key(name), [])
        ordered = sorted(registrations, key=lambda item: (-item.priority, item.sequence))
        return [item.listener for item in ordered]

    def has_listeners(self, name: str) -> bool:
        return bool(self._registrations.get(_key(name)))

    def dispatch(self, name: str, event: Any) -> Any:
        """Call every listener for ``name`` with ``event`` and return the event."""

        key = _key(name)
        for listener in self.listeners(key):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener %r failed while handling %s", listener, key)
        return event


def _key(name: str) -> str:
    if isinstance(name, Enum):
        return str(name.value)
    return str(name)


def _unpack(entry: Listener | tuple[Listener, int]) -> tuple[Listener, int]:
    if isinstance(entry, tuple):
        listener, priority = entry
        return listener, int(priority)
    return entry, 0

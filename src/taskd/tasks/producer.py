"""Producer contract and the tagged result a producer returns."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeAlias, runtime_checkable

from taskd.tasks.task import Task, as_task


class ProducerContractError(TypeError):
    """Producer returned something that is not a task, a batch, or nothing."""


@dataclass(frozen=True, slots=True)
class Empty:
    """No work this time."""

    @property
    def tasks(self) -> tuple[Task, ...]:
        return ()


@dataclass(frozen=True, slots=True)
class Single:
    """Exactly one task."""

    task: Task

    @property
    def tasks(self) -> tuple[Task, ...]:
        return (self.task,)


@dataclass(frozen=True, slots=True)
class Many:
    """A batch of tasks, enqueued together."""

    tasks: tuple[Task, ...]


Produced: TypeAlias = Empty | Single | Many

EMPTY = Empty()


@runtime_checkable
class Producer(Protocol):
    """Pollable source of tasks."""

    def produce(self) -> Any:
        """Return ``Empty``, ``Single`` or ``Many`` (or a plain task, callable, list or None)."""
        raise NotImplementedError


class CallableProducer:
    """Adapter for a producer given as a bare function."""

    def __init__(self, func: Callable[[], Any]) -> None:
        self.func = func

    def produce(self) -> Any:
        return self.func()

    def __repr__(self) -> str:
        name = getattr(self.func, "__qualname__", repr(self.func))
        return f"CallableProducer({name})"


def as_producer(value: Producer | Callable[[], Any]) -> Producer:
    """Return ``value`` as a Producer, wrapping bare callables once."""

    if isinstance(value, Producer):
        return value
    if callable(value):
        return CallableProducer(value)
    raise TypeError(f"Expected a producer or a callable, got {type(value).__name__}.")


def normalize_produced(value: Any) -> Produced:
    """Map whatever a producer returned onto the tagged result.

    Strings and bytes are rejected even though they are iterable.
    """

    if value is None:
        return EMPTY
    if isinstance(value, Empty):
        return value
    if isinstance(value, Single):
        return Single(_coerce_task(value.task))
    if isinstance(value, Many):
        return _batch(value.tasks)
    if isinstance(value, Task):
        return Single(value)
    if isinstance(value, (str, bytes, bytearray)):
        raise ProducerContractError(f"Producer returned a {type(value).__name__}: {value!r}")
    if callable(value):
        return Single(as_task(value))
    if isinstance(value, (list, tuple)):
        return _batch(value)
    raise ProducerContractError(
        f"Producer returned unsupported value of type {type(value).__name__}.",
    )


def _batch(values: tuple[Any, ...] | list[Any]) -> Produced:
    tasks = tuple(_coerce_task(item) for item in values)
    if not tasks:
        return EMPTY
    return Many(tasks)


def _coerce_task(value: Any) -> Task:
    if isinstance(value, Task):
        return value
    if callable(value) and not isinstance(value, (str, bytes, bytearray)):
        return as_task(value)
    raise ProducerContractError(
        f"Producer batch contains a {type(value).__name__}, expected a Task or callable.",
    )

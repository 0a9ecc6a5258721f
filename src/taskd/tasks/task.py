"""Three-phase task contract split across the fork boundary."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from taskd.ipc.messenger import Messenger


@runtime_checkable
class TaskListener(Protocol):
    """Optional per-task observer called from the supervisor."""

    def on_task_start(self, task: Task, pid: int) -> None:
        """Called right after the task's process was forked."""
        raise NotImplementedError

    def on_task_exit(self, task: Task, status: int) -> None:
        """Called once the task's process has been reaped."""
        raise NotImplementedError


class Task(ABC):
    """Unit of work.

    ``init`` runs in the supervisor just before the fork, ``run`` runs once in
    the child and its return value becomes the exit code, ``finish`` runs in
    the supervisor after the child was reaped. The child works on the copy of
    ``context`` that existed at the fork instant.
    """

    def __init__(
        self,
        context: Any = None,
        *,
        listener: TaskListener | None = None,
        messenger: Messenger | None = None,
    ) -> None:
        self.context = context
        self.listener = listener
        self.messenger = messenger
        self.exit_status: int | None = None
        self.output = b""

    def init(self) -> None:
        """Prepare supervisor-side state before the fork."""

        if self.messenger is not None:
            self.messenger.init()

    def after_fork(self) -> None:
        """Called on both sides of the fork before anything else happens there."""

        if self.messenger is not None:
            self.messenger.after_fork()

    @abstractmethod
    def run(self) -> int:
        """Do the work inside the child process."""

    def collect(self) -> None:
        """Append pending messenger bytes to ``output`` while the child runs.

        The supervisor calls this on every reap poll, so a child can send more
        than the socket buffer holds without blocking until it is killed.
        """

        if self.messenger is not None and self.messenger.has_message():
            self.output += self.messenger.receive()

    def finish(self, exit_status: int) -> None:
        """Collect results after the child terminated."""

        self.exit_status = exit_status
        if self.messenger is None:
            return
        try:
            self.output += self.messenger.receive()
        finally:
            self.messenger.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(context={self.context!r})"


class CallableTask(Task):
    """Adapts a zero-argument callable returning an exit code."""

    def __init__(
        self,
        func: Callable[[], int | None],
        context: Any = None,
        *,
        listener: TaskListener | None = None,
    ) -> None:
        super().__init__(context, listener=listener)
        self.func = func

    def init(self) -> None:
        return None

    def run(self) -> int:
        result = self.func()
        return 0 if result is None else int(result)

    def finish(self, exit_status: int) -> None:
        self.exit_status = exit_status

    def __repr__(self) -> str:
        name = getattr(self.func, "__qualname__", repr(self.func))
        return f"CallableTask({name})"


def as_task(value: Task | Callable[[], int | None]) -> Task:
    """Return ``value`` as a Task, wrapping bare callables."""

    if isinstance(value, Task):
        return value
    if callable(value):
        return CallableTask(value)
    raise TypeError(f"Expected a Task or a callable, got {type(value).__name__}.")

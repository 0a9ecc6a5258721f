"""Shell-command tasks used by the CLI."""

from __future__ import annotations

import shlex
import subprocess
from collections import deque
from collections.abc import Iterable

from taskd.tasks.producer import EMPTY, Produced, Single
from taskd.tasks.task import Task


class CommandTask(Task):
    """Run one command line in the child and exit with its return code."""

    def __init__(self, command: str | list[str], **kwargs) -> None:
        if isinstance(command, str) and not command.strip():
            raise ValueError("Command must not be empty.")
        if isinstance(command, list) and not command:
            raise ValueError("Command must not be empty.")
        super().__init__(command, **kwargs)

    def run(self) -> int:
        command = self.context
        completed = subprocess.run(  # noqa: S603
            command,
            shell=isinstance(command, str),  # noqa: S602
            check=False,
        )
        if completed.returncode < 0:
            # Killed by a signal: report it the way a shell does.
            return 128 - completed.returncode
        return completed.returncode

    def __repr__(self) -> str:
        command = self.context
        text = command if isinstance(command, str) else shlex.join(command)
        return f"CommandTask({text!r})"


class CommandProducer:
    """Yield one CommandTask per call until the commands run out."""

    def __init__(self, commands: Iterable[str | list[str]]) -> None:
        self._pending: deque[str | list[str]] = deque(commands)

    @property
    def remaining(self) -> int:
        return len(self._pending)

    def produce(self) -> Produced:
        if not self._pending:
            return EMPTY
        return Single(CommandTask(self._pending.popleft()))

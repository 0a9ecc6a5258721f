"""One task's forked OS process: fork, non-blocking reap and timeout kill."""

from __future__ import annotations

import logging
import os
import signal
import sys
import time
from collections.abc import Callable
from enum import Enum
from typing import TYPE_CHECKING, Any, NoReturn

from taskd.supervisor.events import EventDispatcher, EventName, ProcessEvent, TaskEvent

if TYPE_CHECKING:
    from taskd.supervisor.signals import SignalRegistry
    from taskd.tasks.task import Task

logger = logging.getLogger(__name__)

_FORK_BLOCKED_SIGNALS = {signal.SIGINT, signal.SIGTERM}


class ProcessState(str, Enum):
    """Lifecycle of a supervised process."""

    QUEUED = "queued"
    RUNNING = "running"
    EXITED = "exited"


class ProcessError(RuntimeError):
    """Base error for process lifecycle operations."""


class ForkError(ProcessError):
    """The process could not be started; it is dropped."""


class ReapError(ProcessError):
    """The non-blocking wait failed; the process stays tracked."""


class LostChildError(ReapError):
    """``waitpid`` reports ECHILD: the pid is no longer ours to reap."""


class RuntimeExceededError(ProcessError):
    """The process ran past its deadline and was sent SIGKILL."""

    def __init__(self, message: str, *, pid: int, elapsed: float, max_runtime: float) -> None:
        super().__init__(message)
        self.pid = pid
        self.elapsed = elapsed
        self.max_runtime = max_runtime


class Process:
    """Supervisor-side wrapper around one forked child running one Task."""

    def __init__(  # noqa: PLR0913
        self,
        task: Task,
        dispatcher: EventDispatcher | None = None,
        *,
        producer: Any = None,
        max_runtime: float = 0.0,
        signals: SignalRegistry | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_runtime < 0:
            raise ValueError("max_runtime must be >= 0.")
        self.task = task
        self.producer = producer
        self.max_runtime = max_runtime
        self.dispatcher = dispatcher or EventDispatcher()
        self.pid: int | None = None
        self.start_time: float | None = None
        self.end_time: float | None = None
        self.exit_status: int | None = None
        self._signals = signals
        self._clock = clock
        self._state = ProcessState.QUEUED
        self._kill_sent = False

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def timed_out(self) -> bool:
        """Whether SIGKILL was sent for exceeding ``max_runtime``."""

        return self._kill_sent

    def fork(self) -> int:
        """Run ``task.init()``, fork, and return the child pid in the parent.

        The child never returns from this call: it runs the task and exits
        with the task's return value.
        """

        if self._state is not ProcessState.QUEUED:
            raise ProcessError(f"Process for {self.task!r} was already forked.")
        if not hasattr(os, "fork"):
            raise ForkError("os.fork() is not available on this platform.")

        self.start_time = self._clock()
        try:
            self.task.init()
        except Exception as error:
            raise ForkError(f"Task {self.task!r} failed to initialize: {error}") from error

        _flush_std_streams()
        saved_mask = _block_signals()
        try:
            pid = os.fork()
        except OSError as error:
            _restore_signals(saved_mask)
            raise ForkError(f"Failed to fork child for {self.task!r}: {error}") from error

        if pid == 0:
            self._run_child(saved_mask)

        _restore_signals(saved_mask)
        self.pid = pid
        self._state = ProcessState.RUNNING
        try:
            self.task.after_fork()
        except Exception:
            logger.exception("Task %r after_fork() failed for PID %d", self.task, pid)
        self._notify_started(pid)
        return pid

    def reap(self) -> bool:
        """Collect the child if it terminated; return True once it has.

        A still-running child past its deadline is killed and
        ``RuntimeExceededError`` is raised; a later call sees it exit.
        """

        if self._state is not ProcessState.RUNNING or self.pid is None:
            raise ProcessError(f"Cannot reap {self!r} in state {self._state.value}.")

        try:
            waited_pid, status = os.waitpid(self.pid, os.WNOHANG)
        except ChildProcessError as error:
            raise LostChildError(
                f"waitpid() lost PID {self.pid}: it is no longer a child of this process "
                f"(SIGCHLD ignored or already reaped elsewhere): {error}",
            ) from error
        except OSError as error:
            raise ReapError(f"waitpid() failed for PID {self.pid}: {error}") from error

        if waited_pid == 0:
            try:
                self.task.collect()
            except Exception:
                logger.exception("Task %r collect() failed for PID %d", self.task, self.pid)
            self._enforce_deadline()
            return False

        self._mark_exited(status)
        return True

    def send_signal(self, signum: int) -> bool:
        if self.pid is None or self._state is not ProcessState.RUNNING:
            return False
        try:
            os.kill(self.pid, signum)
        except ProcessLookupError:
            return False
        return True

    def runtime(self) -> float:
        """Seconds between fork and confirmed exit."""

        if self.start_time is None or self.end_time is None:
            raise ProcessError("Runtime is only known after the process was reaped.")
        return self.end_time - self.start_time

    def elapsed(self) -> float:
        if self.start_time is None:
            raise ProcessError("Process has not been forked.")
        end = self.end_time if self.end_time is not None else self._clock()
        return end - self.start_time

    def _run_child(self, saved_mask: set[signal.Signals] | None) -> NoReturn:
        exit_code = 1
        try:
            if self._signals is not None:
                self._signals.reset()
            _restore_signals(saved_mask)
            self.task.after_fork()
            exit_code = _exit_code(self.task.run())
        except KeyboardInterrupt:
            exit_code = 130
        except SystemExit as error:
            exit_code = _exit_code(error.code)
        except BaseException:
            logger.exception("Task %r raised in child PID %d", self.task, os.getpid())
            exit_code = 1
        finally:
            _flush_std_streams()
            os._exit(exit_code)

    def _enforce_deadline(self) -> None:
        if self.max_runtime <= 0 or self._kill_sent:
            return
        elapsed = self.elapsed()
        if elapsed <= self.max_runtime:
            return
        assert self.pid is not None
        self._kill_sent = True
        self.send_signal(signal.SIGKILL)
        raise RuntimeExceededError(
            f"PID {self.pid} exceeded max runtime of {self.max_runtime:g}s "
            f"(ran {elapsed:.3f}s); sent SIGKILL",
            pid=self.pid,
            elapsed=elapsed,
            max_runtime=self.max_runtime,
        )

    def _mark_exited(self, status: int) -> None:
        assert self.pid is not None
        self.end_time = self._clock()
        self.exit_status = os.waitstatus_to_exitcode(status)
        self._state = ProcessState.EXITED

        try:
            self.task.finish(self.exit_status)
        except Exception:
            logger.exception("Task %r finish() failed for PID %d", self.task, self.pid)

        listener = self.task.listener
        if listener is not None:
            try:
                listener.on_task_exit(self.task, self.exit_status)
            except Exception:
                logger.exception("Task listener failed on exit of PID %d", self.pid)

        self.dispatcher.dispatch(EventName.PROCESS_EXIT, ProcessEvent(self))
        self.dispatcher.dispatch(
            EventName.TASK_END,
            TaskEvent(task=self.task, pid=self.pid, exit_status=self.exit_status),
        )

    def _notify_started(self, pid: int) -> None:
        listener = self.task.listener
        if listener is not None:
            try:
                listener.on_task_start(self.task, pid)
            except Exception:
                logger.exception("Task listener failed on start of PID %d", pid)

        self.dispatcher.dispatch(EventName.PROCESS_START, ProcessEvent(self))
        self.dispatcher.dispatch(EventName.TASK_START, TaskEvent(task=self.task, pid=pid))

    def __repr__(self) -> str:
        return f"Process(pid={self.pid}, state={self._state.value}, task={self.task!r})"


def _block_signals() -> set[signal.Signals] | None:
    # Keep SIGINT/SIGTERM pending until the child has dropped the parent's handlers.
    if not hasattr(signal, "pthread_sigmask"):
        return None
    return signal.pthread_sigmask(signal.SIG_BLOCK, _FORK_BLOCKED_SIGNALS)


def _restore_signals(saved_mask: set[signal.Signals] | None) -> None:
    if saved_mask is None:
        return
    signal.pthread_sigmask(signal.SIG_SETMASK, saved_mask)


def _exit_code(value: object) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        return 1
    return value & 0xFF


def _flush_std_streams() -> None:
    for stream in (sys.stdout, sys.stderr):
        if stream is None:
            continue
        try:
            stream.flush()
        except (OSError, ValueError):
            continue

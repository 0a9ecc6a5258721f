"""Supervisor loop: fair fill from producers, fork, reap, sleep."""

from __future__ import annotations

import logging
import os
import signal
import time
from collections import deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from taskd import runtime
from taskd.config import Settings
from taskd.logs import NOTICE
from taskd.supervisor.events import (
    DaemonEvent,
    EventDispatcher,
    EventName,
    EventSubscriber,
    ProcessEvent,
)
from taskd.supervisor.process import (
    ForkError,
    LostChildError,
    Process,
    ReapError,
    RuntimeExceededError,
)
from taskd.supervisor.signals import SignalRegistry
from taskd.tasks.producer import Producer, ProducerContractError, as_producer, normalize_produced
from taskd.tasks.task import Task

_SLEEP_SLICE_SECONDS = 0.1


@dataclass(slots=True)
class DaemonRunSummary:
    """Aggregate loop counters for CLI reporting."""

    iterations: int = 0
    started: int = 0
    exited: int = 0
    failed: int = 0
    timeouts: int = 0
    fork_errors: int = 0
    reap_errors: int = 0
    producers_removed: int = 0


@dataclass(slots=True, eq=False)
class _ProducerSlot:
    source: Any
    producer: Producer


class Daemon:
    """Pull tasks from producers and run each one in its own forked process.

    The loop is single-threaded: per iteration it fills the pending queue,
    forks while capacity remains, reaps (or times out) every live child,
    dispatches ``daemon.iteration`` and sleeps for ``quiet_time`` seconds.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        name: str = "taskd",
        max_concurrency: int = 100,
        quiet_time: float = 1.0,
        max_child_runtime: float = 0.0,
        daemonize: bool = True,
        stop_when_producers_empty: bool = False,
        pidfile: Path | None = None,
        dispatcher: EventDispatcher | None = None,
        signals: SignalRegistry | None = None,
        logger: logging.Logger | None = None,
        daemonizer: Callable[[], int] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_concurrency <= 0:
            raise ValueError("max_concurrency must be a positive integer.")
        if quiet_time < 0:
            raise ValueError("quiet_time must be >= 0.")
        if max_child_runtime < 0:
            raise ValueError("max_child_runtime must be >= 0.")
        self.name = name
        self.max_concurrency = max_concurrency
        self.quiet_time = quiet_time
        self.max_child_runtime = max_child_runtime
        self.daemonize = daemonize
        self.stop_when_producers_empty = stop_when_producers_empty
        # Daemonizing changes directory, so relative paths are pinned here.
        self.pidfile = Path(pidfile).expanduser().resolve() if pidfile is not None else None
        self.dispatcher = dispatcher or EventDispatcher()
        self.signals = signals or SignalRegistry()
        self.logger = logger or logging.getLogger(__name__)
        self.pid: int | None = None
        self.processes: dict[int, Process] = {}
        self.queue: deque[Process] = deque()
        self.summary = DaemonRunSummary()
        self._daemonizer = daemonizer or runtime.daemonize
        self._clock = clock
        self._producers: list[_ProducerSlot] = []
        self._next_slot: _ProducerSlot | None = None
        self._producers_drained = False
        self._stop_requested = False
        self._running = False

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> Daemon:
        """Build a daemon from validated settings; ``kwargs`` inject collaborators."""

        settings.validate()
        return cls(
            name=settings.name,
            max_concurrency=settings.max_concurrency,
            quiet_time=settings.quiet_time_seconds,
            max_child_runtime=settings.max_child_runtime_seconds,
            daemonize=settings.daemonize,
            stop_when_producers_empty=settings.stop_when_producers_empty,
            pidfile=settings.pidfile,
            **kwargs,
        )

    @property
    def producers(self) -> list[Any]:
        return [slot.source for slot in self._producers]

    @property
    def running(self) -> bool:
        return self._running

    def add_producer(self, producer: Producer | Callable[[], Any]) -> None:
        """Register a producer; bare callables are wrapped once here."""

        if self._find_slot(producer) is not None:
            return
        self._producers.append(_ProducerSlot(source=producer, producer=as_producer(producer)))
        if isinstance(producer, EventSubscriber):
            self.dispatcher.add_subscriber(producer)

    def remove_producer(self, producer: Any) -> bool:
        slot = self._find_slot(producer)
        if slot is None:
            return False
        index = self._producers.index(slot)
        self._producers.remove(slot)
        if self._next_slot is slot:
            self._next_slot = self._producers[index % len(self._producers)] if self._producers else None
        if isinstance(slot.source, EventSubscriber):
            self.dispatcher.remove_subscriber(slot.source)
        return True

    def stop(self) -> None:
        """Ask the loop to end; it checks the flag at the top of each iteration."""

        self._stop_requested = True

    def start(self) -> DaemonRunSummary:
        """Detach (when configured), write the PID file and run the loop."""

        if self.daemonize:
            try:
                self.pid = self._daemonizer()
            except runtime.DaemonizeError:
                self.logger.error("Failed to fork to a daemon")
                raise
            self.dispatcher.dispatch(EventName.DAEMON_DAEMONIZED, DaemonEvent(self, pid=self.pid))
        else:
            self.pid = os.getpid()

        wrote_pidfile = self._write_pidfile()
        try:
            with self._stop_signal_listeners():
                return self.loop()
        finally:
            if wrote_pidfile and self.pidfile is not None:
                runtime.remove_pidfile(self.pidfile, pid=self.pid)

    def loop(self) -> DaemonRunSummary:
        """Run iterations until ``stop()``; then interrupt live children."""

        self._running = True
        self.dispatcher.dispatch(EventName.DAEMON_START, DaemonEvent(self))
        try:
            while not self._stop_requested:
                try:
                    self.run_once()
                except Exception:
                    self.logger.exception("Supervisor iteration failed")
                if self._stop_requested:
                    break
                self._sleep_with_stop(self.quiet_time)
        finally:
            self._running = False
            self._interrupt_live_processes()
            self.dispatcher.dispatch(EventName.DAEMON_STOP, DaemonEvent(self))
        return self.summary

    def run_once(self) -> None:
        """One iteration: fill, fork, reap, then ``daemon.iteration``."""

        self.fill_queue()
        self.fork_queued()
        self.reap_processes()
        self.dispatcher.dispatch(EventName.DAEMON_ITERATION, DaemonEvent(self))
        self.summary.iterations += 1

        if (
            self.stop_when_producers_empty
            and self._producers_drained
            and not self.processes
            and not self.queue
        ):
            self.logger.info("Producers are drained and no children are running; stopping")
            self.stop()

    def fill_queue(self) -> int:
        """Poll producers round-robin until capacity is used or they run dry.

        Each pass asks every producer for at most one batch. Polling resumes
        after the producer polled last, so no producer is favoured across
        calls. Returns the number of tasks enqueued.
        """

        free = self.max_concurrency - len(self.processes) - len(self.queue)
        self._producers_drained = False
        if free <= 0:
            return 0
        if not self._producers:
            self._producers_drained = True
            return 0

        enqueued = 0
        while enqueued < free and self._producers:
            yielded = 0
            for slot in self._rotation():
                if enqueued >= free:
                    break
                if slot not in self._producers:
                    continue
                self._advance_past(slot)
                for task in self._poll(slot):
                    self.queue.append(self._new_process(task, slot.source))
                    enqueued += 1
                    yielded += 1
            if yielded == 0:
                self._producers_drained = True
                break
        if not self._producers:
            self._producers_drained = True
        return enqueued

    def fork_queued(self) -> int:
        """Fork queued processes while live processes stay below the cap."""

        forked = 0
        while self.queue and len(self.processes) < self.max_concurrency:
            process = self.queue.popleft()
            try:
                pid = process.fork()
            except ForkError as error:
                self.summary.fork_errors += 1
                self.logger.error("%s", error)
                continue
            except Exception:
                self.summary.fork_errors += 1
                self.logger.exception("Unexpected error while forking %r", process.task)
                continue
            self.processes[pid] = process
            self.summary.started += 1
            forked += 1
            self.logger.log(NOTICE, "Spawned child with PID %d for %r", pid, process.task)
        return forked

    def reap_processes(self) -> int:
        """Reap or timeout-check every live process; returns how many exited."""

        exited = 0
        for pid, process in list(self.processes.items()):
            self.dispatcher.dispatch(EventName.PROCESS_ITERATION, ProcessEvent(process))
            try:
                done = process.reap()
            except RuntimeExceededError as error:
                self.summary.timeouts += 1
                self.logger.error("%s", error)
                continue
            except LostChildError as error:
                self.summary.reap_errors += 1
                self.logger.error("Lost child with PID %d, still tracked: %s", pid, error)
                continue
            except ReapError as error:
                self.summary.reap_errors += 1
                self.logger.error("%s", error)
                continue
            except Exception:
                self.summary.reap_errors += 1
                self.logger.exception("Unexpected error while reaping PID %d", pid)
                continue
            if not done:
                continue

            del self.processes[pid]
            exited += 1
            self.summary.exited += 1
            if process.exit_status != 0:
                self.summary.failed += 1
            self.logger.info(
                "Child with PID %d exited with status %s, runtime was %.5fs",
                pid,
                process.exit_status,
                process.runtime(),
            )
        return exited

    def _poll(self, slot: _ProducerSlot) -> tuple[Task, ...]:
        try:
            produced = normalize_produced(slot.producer.produce())
        except ProducerContractError as error:
            self.summary.producers_removed += 1
            self.logger.error("Removing producer %r: %s", slot.source, error)
            self.remove_producer(slot.source)
            return ()
        except Exception:
            self.logger.exception("Producer %r failed", slot.source)
            return ()
        return produced.tasks

    def _rotation(self) -> list[_ProducerSlot]:
        slots = list(self._producers)
        if self._next_slot in slots:
            start = slots.index(self._next_slot)
            slots = slots[start:] + slots[:start]
        return slots

    def _advance_past(self, slot: _ProducerSlot) -> None:
        index = self._producers.index(slot)
        self._next_slot = self._producers[(index + 1) % len(self._producers)]

    def _find_slot(self, producer: Any) -> _ProducerSlot | None:
        for slot in self._producers:
            if slot.source is producer or slot.producer is producer:
                return slot
        return None

    def _new_process(self, task: Task, producer: Any) -> Process:
        return Process(
            task,
            self.dispatcher,
            producer=producer,
            max_runtime=self.max_child_runtime,
            signals=self.signals,
            clock=self._clock,
        )

    def _interrupt_live_processes(self) -> None:
        for pid, process in list(self.processes.items()):
            if process.send_signal(signal.SIGINT):
                self.logger.log(NOTICE, "Sent SIGINT to child with PID %d", pid)
        if self.queue:
            self.logger.info("Leaving %d queued task(s) unstarted", len(self.queue))

    def _write_pidfile(self) -> bool:
        if self.pidfile is None:
            return False
        try:
            runtime.write_pidfile(self.pidfile, self.pid)
        except OSError as error:
            self.logger.error("Failed to write PID file %s: %s", self.pidfile, error)
            return False
        return True

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(_SLEEP_SLICE_SECONDS, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _stop_signal_listeners(self) -> Iterator[None]:
        installed: list[int] = []
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                self.signals.add(signum, self._on_stop_signal)
            except ValueError:
                # Signal handlers can only be installed in main thread.
                continue
            installed.append(signum)
        try:
            yield
        finally:
            for signum in installed:
                try:
                    self.signals.remove(signum, self._on_stop_signal)
                except ValueError:
                    pass

    def _on_stop_signal(self, signum: int) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        self.logger.log(NOTICE, "Received %s, stopping after the current iteration", name)
        self.stop()

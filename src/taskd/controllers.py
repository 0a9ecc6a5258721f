"""Controllers for supervisor CLI commands."""

from __future__ import annotations

import importlib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from taskd.config import Settings
from taskd.logs import configure_logging
from taskd.supervisor import Daemon, DaemonRunSummary
from taskd.tasks import CommandProducer


@dataclass(slots=True)
class RunCommand:
    """CLI input for the supervisor loop."""

    producers: tuple[str, ...] = ()
    commands: tuple[str, ...] = ()
    max_concurrency: int | None = None
    quiet_time: float | None = None
    max_child_runtime: float | None = None
    daemonize: bool | None = None
    pidfile: Path | None = None
    stop_when_empty: bool | None = None
    verbose: bool = False
    syslog: bool | None = None


class SupervisorCliController:
    """Build a daemon from env + CLI input and run it."""

    def run(self, command: RunCommand) -> list[str]:
        if not command.producers and not command.commands:
            raise ValueError("At least one --producer or --command is required.")

        settings = _settings_for(command)
        settings.validate()
        producers = [load_producer(reference) for reference in command.producers]

        logger = configure_logging(
            settings.name,
            level=settings.log_level,
            verbose=command.verbose,
            use_syslog=settings.use_syslog,
        )
        daemon = Daemon.from_settings(settings, logger=logger)
        for producer in producers:
            daemon.add_producer(producer)
        if command.commands:
            daemon.add_producer(CommandProducer(command.commands))

        return render_summary_lines(daemon.start())


def load_producer(reference: str) -> Any:
    """Resolve ``module:attr``; classes are instantiated without arguments."""

    module_name, separator, attribute = reference.partition(":")
    if not separator or not module_name.strip() or not attribute.strip():
        raise ValueError(
            f"Invalid producer reference {reference!r}. Expected format 'module:attribute'.",
        )
    try:
        target: Any = importlib.import_module(module_name.strip())
    except ImportError as error:
        raise ValueError(f"Cannot import producer module {module_name!r}: {error}") from error
    for part in attribute.strip().split("."):
        try:
            target = getattr(target, part)
        except AttributeError as error:
            raise ValueError(f"Producer {reference!r} not found: {error}") from error
    if isinstance(target, type):
        return target()
    if not callable(target) and not hasattr(target, "produce"):
        raise ValueError(f"Producer {reference!r} is neither a producer nor a callable.")
    return target


def render_summary_lines(summary: DaemonRunSummary) -> list[str]:
    return [
        "Daemon summary: "
        f"iterations={summary.iterations} started={summary.started} "
        f"exited={summary.exited} failed={summary.failed} timeouts={summary.timeouts} "
        f"fork_errors={summary.fork_errors} reap_errors={summary.reap_errors} "
        f"producers_removed={summary.producers_removed}",
    ]


def _settings_for(command: RunCommand) -> Settings:
    settings = Settings.from_env()
    overrides: dict[str, Any] = {}
    if command.max_concurrency is not None:
        overrides["max_concurrency"] = command.max_concurrency
    if command.quiet_time is not None:
        overrides["quiet_time_seconds"] = command.quiet_time
    if command.max_child_runtime is not None:
        overrides["max_child_runtime_seconds"] = command.max_child_runtime
    if command.daemonize is not None:
        overrides["daemonize"] = command.daemonize
    if command.pidfile is not None:
        overrides["pidfile"] = command.pidfile
    if command.stop_when_empty is not None:
        overrides["stop_when_producers_empty"] = command.stop_when_empty
    if command.syslog is not None:
        overrides["syslog"] = command.syslog
    return replace(settings, **overrides)

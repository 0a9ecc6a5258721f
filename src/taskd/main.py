"""CLI entrypoint for taskd."""

from pathlib import Path

import rich_click as click

from taskd import __version__
from taskd.controllers import RunCommand, SupervisorCliController
from taskd.runtime import DaemonizeError

click.rich_click.USE_MARKDOWN = True
SUPERVISOR_CONTROLLER = SupervisorCliController()


@click.group()
@click.version_option(version=__version__, prog_name="taskd")
def taskd() -> None:
    """Fork-based task supervisor."""


@taskd.command("run")
@click.option(
    "--producer",
    "producers",
    multiple=True,
    help="Producer as `module:attribute`. Classes are instantiated. Can be repeated.",
)
@click.option(
    "--command",
    "commands",
    multiple=True,
    help="Shell command to run once in its own process. Can be repeated.",
)
@click.option(
    "--max-concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum live child processes. Defaults to TASKD_MAX_CONCURRENCY (100).",
)
@click.option(
    "--quiet-time",
    type=click.FloatRange(min=0),
    default=None,
    help="Seconds to sleep between loop iterations. Defaults to 1.",
)
@click.option(
    "--max-child-runtime",
    type=click.FloatRange(min=0),
    default=None,
    help="Kill children running longer than this many seconds (0 = unbounded).",
)
@click.option(
    "--daemonize/--foreground",
    default=None,
    help="Detach into the background. Defaults to TASKD_DAEMONIZE (on).",
)
@click.option(
    "--pidfile",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the supervisor PID to this file.",
)
@click.option(
    "--stop-when-empty/--run-forever",
    default=None,
    help="Exit once producers are drained and no children are running.",
)
@click.option(
    "--syslog/--stderr",
    default=None,
    help="Log to syslog or stderr. Defaults to syslog when daemonized, stderr otherwise.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Debug logging.")
def run(  # noqa: PLR0913
    producers: tuple[str, ...],
    commands: tuple[str, ...],
    max_concurrency: int | None,
    quiet_time: float | None,
    max_child_runtime: float | None,
    daemonize: bool | None,
    pidfile: Path | None,
    stop_when_empty: bool | None,
    syslog: bool | None,
    verbose: bool,
) -> None:
    """Run the supervisor loop until stopped."""

    try:
        lines = SUPERVISOR_CONTROLLER.run(
            RunCommand(
                producers=producers,
                commands=commands,
                max_concurrency=max_concurrency,
                quiet_time=quiet_time,
                max_child_runtime=max_child_runtime,
                daemonize=daemonize,
                pidfile=pidfile,
                stop_when_empty=stop_when_empty,
                verbose=verbose,
                syslog=syslog,
            ),
        )
    except (ValueError, DaemonizeError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    taskd()

"""CLI entrypoint for rclone-jobs."""

import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from rclone_jobs import __version__
from rclone_jobs.config import Settings
from rclone_jobs.orchestrator.controllers import (
    ParseProgressCommand,
    PresetAddCommand,
    PresetNameCommand,
    TransferArgsCommand,
    TransferCliController,
    TransferRunCommand,
    TransferRunResult,
)
from rclone_jobs.orchestrator.errors import OrchestratorError

click.rich_click.USE_MARKDOWN = True
TRANSFER_CONTROLLER = TransferCliController()
T = TypeVar("T")

_CHUNK_SIZE_OPTION = click.option(
    "--chunk-size",
    default=None,
    help="Chunk size hint such as 8M, 16M, 32M, 64M or 128M.",
)
_POLL_SECONDS_OPTION = click.option(
    "--poll-seconds",
    type=click.FloatRange(min=0.05),
    default=1.0,
    show_default=True,
    help="How often progress is reported while waiting.",
)
_DB_PATH_OPTION = click.option(
    "--db-path",
    type=click.Path(path_type=Path),
    default=None,
    help="SQLite DB path for presets.",
)


@click.group()
@click.version_option(version=__version__, prog_name="rclone-jobs")
def rclone_jobs() -> None:
    """Run and track rclone copy jobs."""

    _setup_logging()


@rclone_jobs.command("run")
@click.argument("source_path")
@click.argument("remote_name")
@click.argument("remote_path", default="")
@_CHUNK_SIZE_OPTION
@_POLL_SECONDS_OPTION
def run_transfer(
    source_path: str,
    remote_name: str,
    remote_path: str,
    chunk_size: str | None,
    poll_seconds: float,
) -> None:
    """Copy SOURCE_PATH to REMOTE_NAME:REMOTE_PATH and follow progress until it ends."""

    result = _call(
        lambda: TRANSFER_CONTROLLER.run_transfer(
            TransferRunCommand(
                source_path=source_path,
                remote_name=remote_name,
                remote_path=remote_path,
                chunk_size=chunk_size,
                poll_seconds=poll_seconds,
            ),
        ),
    )
    _emit_result(result)


@rclone_jobs.command("args")
@click.argument("source_path")
@click.argument("remote_name")
@click.argument("remote_path", default="")
@_CHUNK_SIZE_OPTION
@click.option(
    "--log-path",
    type=click.Path(path_type=Path),
    default=None,
    help="Log file used by the JSON log progress channel.",
)
def show_args(
    source_path: str,
    remote_name: str,
    remote_path: str,
    chunk_size: str | None,
    log_path: Path | None,
) -> None:
    """Print the rclone command a transfer would run."""

    _emit_lines(
        _call(
            lambda: TRANSFER_CONTROLLER.render_args(
                TransferArgsCommand(
                    source_path=source_path,
                    remote_name=remote_name,
                    remote_path=remote_path,
                    chunk_size=chunk_size,
                    log_path=log_path,
                ),
            ),
        ),
    )


@rclone_jobs.command("parse-progress")
@click.argument("log_file", type=click.Path(path_type=Path, exists=True, dir_okay=False))
def parse_progress(log_file: Path) -> None:
    """Show the last recognized progress in an rclone log or job log."""

    _emit_lines(TRANSFER_CONTROLLER.parse_progress(ParseProgressCommand(log_file=log_file)))


@rclone_jobs.group()
def logs() -> None:
    """Job log maintenance."""


@logs.command("cleanup")
def logs_cleanup() -> None:
    """Remove job logs that no known job owns."""

    _emit_lines(_call(TRANSFER_CONTROLLER.cleanup_logs))


@rclone_jobs.group()
def preset() -> None:
    """Saved transfer presets."""


@preset.command("add")
@_DB_PATH_OPTION
@click.argument("name")
@click.argument("source_path")
@click.argument("remote_name")
@click.argument("remote_path", default="")
@_CHUNK_SIZE_OPTION
def preset_add(  # noqa: PLR0913
    db_path: Path | None,
    name: str,
    source_path: str,
    remote_name: str,
    remote_path: str,
    chunk_size: str | None,
) -> None:
    """Save a named transfer."""

    _emit_lines(
        _call(
            lambda: TRANSFER_CONTROLLER.add_preset(
                PresetAddCommand(
                    db_path=db_path,
                    name=name,
                    source_path=source_path,
                    remote_name=remote_name,
                    remote_path=remote_path,
                    chunk_size=chunk_size,
                ),
            ),
        ),
    )


@preset.command("list")
@_DB_PATH_OPTION
def preset_list(db_path: Path | None) -> None:
    """List saved presets, newest first."""

    _emit_lines(_call(lambda: TRANSFER_CONTROLLER.list_presets(db_path)))


@preset.command("delete")
@_DB_PATH_OPTION
@click.argument("name")
def preset_delete(db_path: Path | None, name: str) -> None:
    """Delete a saved preset."""

    _emit_lines(
        _call(
            lambda: TRANSFER_CONTROLLER.delete_preset(PresetNameCommand(db_path=db_path, name=name)),
        ),
    )


@preset.command("run")
@_DB_PATH_OPTION
@click.argument("name")
@_POLL_SECONDS_OPTION
def preset_run(db_path: Path | None, name: str, poll_seconds: float) -> None:
    """Start a transfer from a saved preset and follow it."""

    result = _call(
        lambda: TRANSFER_CONTROLLER.run_preset(
            PresetNameCommand(db_path=db_path, name=name),
            poll_seconds=poll_seconds,
        ),
    )
    _emit_result(result)


def _call(action: Callable[[], T]) -> T:
    try:
        return action()
    except (OrchestratorError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _setup_logging() -> None:
    try:
        level = Settings.from_env().log_level
    except ValueError:
        level = "INFO"
    root = logging.getLogger()
    if root.handlers:
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))
    root.addHandler(handler)
    root.setLevel(getattr(logging, level, logging.INFO))


def _emit_result(result: TransferRunResult) -> None:
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Transfer did not complete.")


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    rclone_jobs()

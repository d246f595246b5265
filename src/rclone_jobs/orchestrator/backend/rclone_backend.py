"""Subprocess-based launcher for the rclone binary."""

from __future__ import annotations

import logging
import os
import subprocess

from rclone_jobs.orchestrator.backend.base import TransferLaunchRequest
from rclone_jobs.orchestrator.errors import TransferLaunchError

logger = logging.getLogger(__name__)


class RcloneBackend:
    """Start rclone with either a piped output stream or a log-file sink."""

    def launch(self, request: TransferLaunchRequest) -> subprocess.Popen[str]:
        if not request.command:
            raise TransferLaunchError("Transfer command is empty.", transient=False)
        command_head = request.command[0]
        env = os.environ.copy()
        if request.env:
            env.update(request.env)

        try:
            if request.capture_output:
                process = subprocess.Popen(  # noqa: S603
                    request.command,
                    env=env,
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    encoding="utf-8",
                    errors="replace",
                    bufsize=1,
                )
            else:
                process = self._launch_into_file(request, env=env)
        except FileNotFoundError as error:
            raise TransferLaunchError(
                f"Failed to spawn rclone process: command not found: {command_head}",
                transient=False,
            ) from error
        except OSError as error:
            raise TransferLaunchError(
                f"Failed to spawn rclone process: {error}",
                transient=True,
            ) from error

        logger.debug("Started %s with pid %s", command_head, process.pid)
        return process

    def _launch_into_file(
        self,
        request: TransferLaunchRequest,
        *,
        env: dict[str, str],
    ) -> subprocess.Popen[str]:
        if request.output_path is None:
            return subprocess.Popen(  # noqa: S603
                request.command,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                text=True,
            )
        request.output_path.parent.mkdir(parents=True, exist_ok=True)
        # The child keeps its own copy of the descriptor after Popen returns.
        with request.output_path.open("a", encoding="utf-8") as sink:
            return subprocess.Popen(  # noqa: S603
                request.command,
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=sink,
                stderr=sink,
                text=True,
            )


def terminate_process(process: subprocess.Popen[str], *, grace_seconds: float = 2.0) -> None:
    """Terminate, then kill if the process outlives ``grace_seconds``."""

    if process.poll() is not None:
        return
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=grace_seconds)

"""Backend interface for launching the external transfer process."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(slots=True)
class TransferLaunchRequest:
    """Inputs required to start one transfer process."""

    command: list[str]
    capture_output: bool
    output_path: Path | None = None
    env: dict[str, str] | None = None


class TransferBackend(Protocol):
    """Protocol implemented by process launchers."""

    def launch(self, request: TransferLaunchRequest) -> subprocess.Popen[str]:
        """Start the process or raise ``TransferLaunchError``."""

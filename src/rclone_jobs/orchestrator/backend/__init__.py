"""Transfer process backend implementations."""

from rclone_jobs.orchestrator.backend.base import TransferBackend, TransferLaunchRequest
from rclone_jobs.orchestrator.backend.rclone_backend import RcloneBackend, terminate_process

__all__ = [
    "RcloneBackend",
    "TransferBackend",
    "TransferLaunchRequest",
    "terminate_process",
]

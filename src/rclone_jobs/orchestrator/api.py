"""Framework-free boundary API returning structured success/error responses."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from rclone_jobs.orchestrator.errors import OrchestratorError, SubmissionError
from rclone_jobs.orchestrator.models import CancelOutcome, DeleteOutcome, TransferRequest
from rclone_jobs.orchestrator.services import TransferOrchestrator

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class ApiResponse(Generic[T]):
    """Envelope consumed by the HTTP layer."""

    success: bool
    data: T | None = None
    error: str | None = None

    @classmethod
    def ok(cls, data: T) -> ApiResponse[T]:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, message: str) -> ApiResponse[T]:
        return cls(success=False, error=message)

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "data": self.data, "error": self.error}


class JobsApi:
    """Maps orchestrator operations to ``ApiResponse`` values.

    Every call returns a response; no exception crosses this boundary.
    """

    def __init__(self, orchestrator: TransferOrchestrator) -> None:
        self.orchestrator = orchestrator

    def submit_job(self, payload: object) -> ApiResponse[str]:
        return _guarded(lambda: self.orchestrator.submit(_request_from_payload(payload)))

    def get_job(self, job_id: str) -> ApiResponse[dict[str, Any]]:
        def _get() -> ApiResponse[dict[str, Any]]:
            job = self.orchestrator.get_job(job_id, refresh_from_log=True)
            if job is None:
                return ApiResponse.fail("Job not found")
            return ApiResponse.ok(job.to_dict())

        return _guarded_response(_get)

    def list_jobs(self) -> ApiResponse[list[dict[str, Any]]]:
        return _guarded(lambda: [job.to_dict() for job in self.orchestrator.list_jobs()])

    def get_job_log(self, job_id: str) -> ApiResponse[str]:
        def _read() -> ApiResponse[str]:
            text = self.orchestrator.get_job_log(job_id)
            if text is None:
                return ApiResponse.fail("Log file not found")
            return ApiResponse.ok(text)

        return _guarded_response(_read)

    def delete_job(self, job_id: str) -> ApiResponse[str]:
        def _delete() -> ApiResponse[str]:
            outcome = self.orchestrator.delete_job(job_id)
            if outcome == DeleteOutcome.DELETED:
                return ApiResponse.ok("Job deleted successfully")
            if outcome == DeleteOutcome.NOT_TERMINAL:
                return ApiResponse.fail("Can only delete completed or failed jobs")
            return ApiResponse.fail("Job not found")

        return _guarded_response(_delete)

    def cancel_job(self, job_id: str) -> ApiResponse[str]:
        def _cancel() -> ApiResponse[str]:
            outcome = self.orchestrator.cancel_job(job_id)
            if outcome == CancelOutcome.CANCEL_REQUESTED:
                return ApiResponse.ok("Cancellation requested")
            if outcome == CancelOutcome.ALREADY_TERMINAL:
                return ApiResponse.fail("Job already finished")
            return ApiResponse.fail("Job not found")

        return _guarded_response(_cancel)


def _request_from_payload(payload: object) -> TransferRequest:
    if not isinstance(payload, Mapping):
        raise SubmissionError(
            f"Invalid transfer request: expected an object, got {type(payload).__name__}"
        )
    source_path = _required_text(payload, "source_path")
    remote_name = _required_text(payload, "remote_name")
    remote_path = payload.get("remote_path", "")
    if remote_path is None:
        remote_path = ""
    if not isinstance(remote_path, str):
        raise SubmissionError("Invalid transfer request: remote_path must be a string")
    chunk_size = payload.get("chunk_size")
    if chunk_size is not None and not isinstance(chunk_size, str):
        raise SubmissionError("Invalid transfer request: chunk_size must be a string")
    use_chunking = payload.get("use_chunking")
    if use_chunking is not None and not isinstance(use_chunking, bool):
        raise SubmissionError("Invalid transfer request: use_chunking must be a boolean")
    if use_chunking is False:
        chunk_size = None
    return TransferRequest(
        source_path=source_path,
        remote_name=remote_name,
        remote_path=remote_path,
        chunk_size=chunk_size or None,
    )


def _required_text(payload: Mapping[Any, Any], key: str) -> str:
    if key not in payload:
        raise SubmissionError(f"Invalid transfer request: missing {key}")
    value = payload[key]
    if not isinstance(value, str):
        raise SubmissionError(f"Invalid transfer request: {key} must be a string")
    return value


def _guarded(call: Callable[[], T]) -> ApiResponse[T]:
    return _guarded_response(lambda: ApiResponse.ok(call()))


def _guarded_response(call: Callable[[], ApiResponse[T]]) -> ApiResponse[T]:
    try:
        return call()
    except OrchestratorError as error:
        return ApiResponse.fail(str(error))
    except Exception as error:
        logger.exception("Unexpected error in jobs API")
        return ApiResponse.fail(f"Internal error: {error}")

"""In-memory job registry with per-entry locking."""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum

from rclone_jobs.orchestrator.errors import DuplicateJobError
from rclone_jobs.orchestrator.models import TransferJob


class RemoveResult(str, Enum):
    REMOVED = "removed"
    REJECTED = "rejected"
    NOT_FOUND = "not_found"


@dataclass(slots=True)
class JobHandle:
    """Task handle and cancellation signal stored next to a job."""

    cancel_event: threading.Event = field(default_factory=threading.Event)
    thread: threading.Thread | None = None
    on_cancel: Callable[[], None] | None = None

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()

    def request_cancel(self) -> None:
        self.cancel_event.set()
        callback = self.on_cancel
        if callback is not None:
            callback()


@dataclass(slots=True)
class _Entry:
    job: TransferJob
    sequence: int
    handle: JobHandle
    lock: threading.Lock = field(default_factory=threading.Lock)
    removed: bool = False


class JobRegistry:
    """Single authority on job existence and state.

    Operations on one job id are serialized by that entry's lock; the index
    lock only guards the dict itself, so different jobs never wait on each
    other for longer than a dict lookup. Readers always get copies.
    """

    def __init__(self) -> None:
        self._entries: dict[str, _Entry] = {}
        self._retired_ids: set[str] = set()
        self._index_lock = threading.Lock()
        self._sequence = itertools.count()

    def insert(self, job: TransferJob, handle: JobHandle | None = None) -> None:
        with self._index_lock:
            if job.job_id in self._entries or job.job_id in self._retired_ids:
                raise DuplicateJobError(f"Job id already used: {job.job_id}")
            self._entries[job.job_id] = _Entry(
                job=replace(job),
                sequence=next(self._sequence),
                handle=handle or JobHandle(),
            )

    def get(self, job_id: str) -> TransferJob | None:
        entry = self._lookup(job_id)
        if entry is None:
            return None
        with entry.lock:
            if entry.removed:
                return None
            return replace(entry.job)

    def update(self, job_id: str, mutator: Callable[[TransferJob], None]) -> bool:
        """Apply ``mutator`` atomically; returns ``False`` for unknown ids.

        The mutator works on a private copy that replaces the stored job only
        after it returns, so an exception leaves the job unchanged.
        """

        entry = self._lookup(job_id)
        if entry is None:
            return False
        with entry.lock:
            if entry.removed:
                return False
            draft = replace(entry.job)
            mutator(draft)
            entry.job = draft
            return True

    def list(self) -> list[TransferJob]:
        """Snapshot of all jobs, newest submission first."""

        with self._index_lock:
            entries = list(self._entries.values())
        snapshot: list[tuple[int, TransferJob]] = []
        for entry in entries:
            with entry.lock:
                if not entry.removed:
                    snapshot.append((entry.sequence, replace(entry.job)))
        snapshot.sort(key=lambda item: item[0], reverse=True)
        return [job for _, job in snapshot]

    def remove(self, job_id: str) -> bool:
        return self.remove_if(job_id, lambda _job: True) == RemoveResult.REMOVED

    def remove_if(self, job_id: str, predicate: Callable[[TransferJob], bool]) -> RemoveResult:
        """Remove the job only if ``predicate`` holds, checked under the entry lock."""

        entry = self._lookup(job_id)
        if entry is None:
            return RemoveResult.NOT_FOUND
        with entry.lock:
            if entry.removed:
                return RemoveResult.NOT_FOUND
            if not predicate(replace(entry.job)):
                return RemoveResult.REJECTED
            entry.removed = True
            with self._index_lock:
                self._entries.pop(job_id, None)
                self._retired_ids.add(job_id)
        return RemoveResult.REMOVED

    def handle(self, job_id: str) -> JobHandle | None:
        entry = self._lookup(job_id)
        return entry.handle if entry is not None else None

    def ids(self) -> list[str]:
        with self._index_lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._index_lock:
            return len(self._entries)

    def _lookup(self, job_id: str) -> _Entry | None:
        with self._index_lock:
            return self._entries.get(job_id)

"""Session and job records tracked while a generation request is in flight."""
from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..errors import JobStateError


@dataclass(frozen=True)
class Session:
    """Authenticated upstream identity, established once at startup."""

    user_id: str
    user_handle: str
    org_id: str
    session_id: str


def new_session_id() -> str:
    """Client-side session identifier: ``<uuid4>_<epoch millis>``."""

    return f"{uuid.uuid4()}_{int(time.time() * 1000)}"


@dataclass(frozen=True)
class StatusSnapshot:
    """One reply of the upstream status endpoint."""

    completion_percentage: float
    is_completed: bool
    asset_ids: tuple[str, ...] = ()


class JobStatus(Enum):
    """States for tracking the generation lifecycle."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.IN_PROGRESS, JobStatus.FAILED}),
    JobStatus.IN_PROGRESS: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.TIMED_OUT}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.TIMED_OUT: frozenset(),
}


@dataclass
class Job:
    """A single prompt-to-image request, kept in memory for one HTTP call."""

    prompt: str
    status: JobStatus = JobStatus.PENDING
    created_at: float = field(default_factory=time.time)
    result: Optional[list[str]] = None
    error: Optional[str] = None
    _request_id: Optional[str] = field(default=None, repr=False)

    @property
    def request_id(self) -> Optional[str]:
        return self._request_id

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.status]

    def assign_request_id(self, request_id: str) -> None:
        """Record the upstream request id; it can only be set once."""

        if self._request_id is not None:
            raise JobStateError(f"request_id already assigned ({self._request_id})")
        if not request_id:
            raise JobStateError("request_id must be non-empty")
        self._request_id = request_id

    def _move(self, target: JobStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise JobStateError(f"cannot move job from {self.status.value} to {target.value}")
        self.status = target

    def start(self) -> None:
        self._move(JobStatus.IN_PROGRESS)

    def complete(self, urls: list[str]) -> None:
        self._move(JobStatus.COMPLETED)
        self.result = list(urls)

    def fail(self, reason: str) -> None:
        self._move(JobStatus.FAILED)
        self.error = reason

    def time_out(self, reason: str) -> None:
        self._move(JobStatus.TIMED_OUT)
        self.error = reason

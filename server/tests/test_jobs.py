from __future__ import annotations

import re

import pytest

from imagerelay.errors import JobStateError
from imagerelay.models.jobs import Job, JobStatus, new_session_id


def test_job_moves_through_happy_path() -> None:
    job = Job(prompt="a lighthouse at dusk")
    assert job.status is JobStatus.PENDING
    job.start()
    job.assign_request_id("req-1")
    job.complete(["https://assets/a"])
    assert job.status is JobStatus.COMPLETED
    assert job.result == ["https://assets/a"]
    assert job.is_terminal


def test_request_id_is_assigned_once() -> None:
    job = Job(prompt="p")
    job.start()
    job.assign_request_id("req-1")
    with pytest.raises(JobStateError):
        job.assign_request_id("req-2")
    assert job.request_id == "req-1"


def test_terminal_states_reject_further_transitions() -> None:
    job = Job(prompt="p")
    job.start()
    job.time_out("Request timeout")
    assert job.status is JobStatus.TIMED_OUT
    with pytest.raises(JobStateError):
        job.complete([])
    with pytest.raises(JobStateError):
        job.start()


def test_pending_job_can_fail_but_not_complete() -> None:
    job = Job(prompt="p")
    with pytest.raises(JobStateError):
        job.complete([])
    job.fail("submit rejected")
    assert job.status is JobStatus.FAILED
    assert job.error == "submit rejected"


def test_session_id_format() -> None:
    assert re.fullmatch(r"[0-9a-f-]{36}_\d{13}", new_session_id())

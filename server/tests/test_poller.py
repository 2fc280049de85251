from __future__ import annotations

import asyncio
import time

import pytest

from imagerelay.errors import GenerationTimeoutError, StatusError
from imagerelay.models.jobs import StatusSnapshot
from imagerelay.services.poller import poll_for_completion

BASE = "https://assets.test/response"


class FakeClock:
    """Manual clock whose sleep advances time instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


def _run(coro):  # noqa: ANN001
    return asyncio.run(coro)


def _scripted(*snapshots: StatusSnapshot):
    calls: list[int] = []

    async def check() -> StatusSnapshot:
        calls.append(1)
        return snapshots[min(len(calls), len(snapshots)) - 1]

    return check, calls


def _url(asset_id: str) -> str:
    return f"{BASE}/{asset_id}"


def test_returns_urls_in_upstream_order() -> None:
    clock = FakeClock()
    check, calls = _scripted(
        StatusSnapshot(30, False),
        StatusSnapshot(70, False),
        StatusSnapshot(100, True, ("a", "b")),
    )

    urls = _run(
        poll_for_completion("req-1", check, _url, interval=2.0, deadline=40.0, clock=clock, sleep=clock.sleep)
    )

    assert urls == [f"{BASE}/a", f"{BASE}/b"]
    assert len(calls) == 3
    assert clock.sleeps == [2.0, 2.0]


def test_times_out_with_request_id_within_bound() -> None:
    clock = FakeClock()
    check, calls = _scripted(StatusSnapshot(10, False))

    with pytest.raises(GenerationTimeoutError) as excinfo:
        _run(
            poll_for_completion(
                "req-slow", check, _url, interval=2.0, deadline=40.0, clock=clock, sleep=clock.sleep
            )
        )

    assert excinfo.value.request_id == "req-slow"
    assert clock.now <= 40.0 + 2.0
    # one poll at t=0 and one after every 2s sleep, the last at the deadline
    assert len(calls) == 21


def test_sleep_is_clipped_to_remaining_deadline() -> None:
    clock = FakeClock()
    check, _ = _scripted(StatusSnapshot(0, False))

    with pytest.raises(GenerationTimeoutError):
        _run(poll_for_completion("req", check, _url, interval=3.0, deadline=7.0, clock=clock, sleep=clock.sleep))

    assert clock.sleeps == [3.0, 3.0, 1.0]
    assert clock.now == pytest.approx(7.0)


def test_poll_failure_propagates_without_retry() -> None:
    clock = FakeClock()
    calls: list[int] = []

    async def check() -> StatusSnapshot:
        calls.append(1)
        if len(calls) == 2:
            raise StatusError("Error fetching requests", request_id="req-1")
        return StatusSnapshot(50, False)

    with pytest.raises(StatusError):
        _run(poll_for_completion("req-1", check, _url, interval=2.0, deadline=40.0, clock=clock, sleep=clock.sleep))

    assert len(calls) == 2


def test_hanging_status_call_is_bounded() -> None:
    async def check() -> StatusSnapshot:
        await asyncio.sleep(30)
        return StatusSnapshot(100, True, ("never",))

    started = time.monotonic()
    with pytest.raises(GenerationTimeoutError):
        _run(poll_for_completion("req-hang", check, _url, interval=0.05, deadline=0.1))
    assert time.monotonic() - started < 1.0


def test_completion_with_no_assets_returns_empty_list() -> None:
    clock = FakeClock()
    check, _ = _scripted(StatusSnapshot(100, True, ()))

    assert _run(poll_for_completion("req", check, _url, clock=clock, sleep=clock.sleep)) == []

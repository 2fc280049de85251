"""Completion polling for upstream generation requests."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from ..errors import GenerationTimeoutError
from ..models.jobs import StatusSnapshot

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_DEADLINE = 40.0


async def poll_for_completion(
    request_id: str,
    check: Callable[[], Awaitable[StatusSnapshot]],
    build_url: Callable[[str], str],
    *,
    interval: float = DEFAULT_POLL_INTERVAL,
    deadline: float = DEFAULT_DEADLINE,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> list[str]:
    """Poll ``check`` until the request completes and return its asset URLs.

    A failing ``check`` propagates immediately. The loop gives up with
    :class:`GenerationTimeoutError` once ``deadline`` seconds have elapsed, and a
    single status call may not run past ``deadline + interval``.
    """

    started = clock()
    hard_limit = deadline + interval

    while True:
        budget = hard_limit - (clock() - started)
        if budget <= 0:
            break
        try:
            snapshot = await asyncio.wait_for(check(), timeout=budget)
        except asyncio.TimeoutError as exc:
            raise GenerationTimeoutError("Request timeout", request_id=request_id) from exc

        logger.info("request with id >> %s is %s%%", request_id, snapshot.completion_percentage)
        if snapshot.is_completed:
            logger.info("%s completed", request_id)
            return [build_url(asset_id) for asset_id in snapshot.asset_ids]

        remaining = deadline - (clock() - started)
        if remaining <= 0:
            break
        await sleep(min(interval, remaining))

    raise GenerationTimeoutError("Request timeout", request_id=request_id)

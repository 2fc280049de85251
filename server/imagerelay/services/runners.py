"""Job execution strategies: inline calls or a rate-limited FIFO queue."""
from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import RedisError

from ..config import Settings
from ..errors import TransportError
from .generation import Pipeline

logger = logging.getLogger(__name__)

BROKER_RETRY_ATTEMPTS = 5
RATE_WINDOW_KEY = "imagerelay:rate-window"


class RateWindow(ABC):
    """Single-slot claim: at most one dispatch per ``spacing`` seconds."""

    def __init__(self, spacing: float) -> None:
        self.spacing = spacing

    @abstractmethod
    async def acquire(self) -> None:
        """Block until the window is free, then claim it."""

    async def connect(self) -> None:
        return None

    async def close(self) -> None:
        return None


class LocalRateWindow(RateWindow):
    """In-process window based on the monotonic clock."""

    def __init__(
        self,
        spacing: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__(spacing)
        self._clock = clock
        self._sleep = sleep
        self._last_claim: Optional[float] = None

    async def acquire(self) -> None:
        if self._last_claim is not None:
            # Timers may fire a hair early; re-check against the clock.
            while (wait := self._last_claim + self.spacing - self._clock()) > 0:
                await self._sleep(wait)
        self._last_claim = self._clock()


class RedisRateWindow(RateWindow):
    """Window shared through a Redis key so several relays respect one limit."""

    def __init__(
        self,
        redis: Any,
        spacing: float,
        *,
        key: str = RATE_WINDOW_KEY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__(spacing)
        self._redis = redis
        self._key = key
        self._sleep = sleep

    @classmethod
    def from_url(cls, url: str, spacing: float) -> "RedisRateWindow":
        retry = Retry(ExponentialBackoff(cap=2.0, base=0.5), BROKER_RETRY_ATTEMPTS)
        return cls(Redis.from_url(url, decode_responses=True, retry=retry), spacing)

    async def connect(self) -> None:
        try:
            await self._redis.ping()
        except (RedisError, OSError) as exc:
            raise TransportError(
                f"Unable to connect to Redis after {BROKER_RETRY_ATTEMPTS} tries"
            ) from exc

    async def acquire(self) -> None:
        ttl_ms = max(int(self.spacing * 1000), 1)
        try:
            while not await self._redis.set(self._key, "1", nx=True, px=ttl_ms):
                remaining = await self._redis.pttl(self._key)
                if remaining == -1:
                    # Key left without an expiry; bound it to one window.
                    await self._redis.pexpire(self._key, ttl_ms)
                    remaining = ttl_ms
                # -2: key vanished between calls; retry shortly.
                await self._sleep(max(remaining, 50) / 1000)
        except (RedisError, OSError) as exc:
            raise TransportError(f"Rate window backend unavailable: {exc}") from exc

    async def close(self) -> None:
        await self._redis.aclose()


class JobRunner(ABC):
    """Strategy the HTTP layer uses to execute generation jobs."""

    async def start(self) -> None:
        return None

    @abstractmethod
    async def run(self, prompt: str) -> list[str]:
        """Execute one job and return its asset URLs."""

    async def close(self) -> None:
        return None


class InlineRunner(JobRunner):
    """Calls the pipeline directly; concurrent callers race upstream."""

    def __init__(self, pipeline: Pipeline) -> None:
        self._pipeline = pipeline

    async def run(self, prompt: str) -> list[str]:
        return await self._pipeline(prompt)


@dataclass
class _QueuedJob:
    prompt: str
    future: asyncio.Future = field(repr=False)
    enqueued_at: float = field(default_factory=time.monotonic)


class SerializedRunner(JobRunner):
    """FIFO queue drained by one worker, one dispatch per rate window.

    Each job is attempted exactly once and its outcome, result or exception,
    is handed back to the caller awaiting :meth:`run`.
    """

    def __init__(self, pipeline: Pipeline, window: RateWindow) -> None:
        self._pipeline = pipeline
        self._window = window
        self._queue: asyncio.Queue[_QueuedJob] = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._closing = False
        self._start_lock = asyncio.Lock()

    async def start(self) -> None:
        async with self._start_lock:
            if self._worker is not None:
                return
            await self._window.connect()
            self._worker = asyncio.create_task(self._work(), name="imagerelay-queue-worker")

    async def run(self, prompt: str) -> list[str]:
        if self._closing:
            raise TransportError("Job queue is shutting down")
        if self._worker is None:
            raise TransportError("Job queue is not running")
        future = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_QueuedJob(prompt=prompt, future=future))
        logger.info("Queued job (%d waiting)", self._queue.qsize())
        return await future

    async def _work(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if item.future.cancelled():
                    continue
                try:
                    await self._window.acquire()
                    logger.info(
                        "Dispatching job after %.2fs in queue", time.monotonic() - item.enqueued_at
                    )
                    result = await self._pipeline(item.prompt)
                except asyncio.CancelledError:
                    if not item.future.done():
                        item.future.set_exception(TransportError("Job queue is shutting down"))
                    raise
                except Exception as exc:
                    if not item.future.done():
                        item.future.set_exception(exc)
                else:
                    if not item.future.done():
                        item.future.set_result(result)
            finally:
                self._queue.task_done()

    async def close(self) -> None:
        """Finish the in-flight job, reject the rest, then release the backend."""

        self._closing = True
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if not item.future.done():
                item.future.set_exception(TransportError("Job queue is shutting down"))
            self._queue.task_done()
        if self._worker is not None:
            await self._queue.join()
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        await self._window.close()


def build_runner(settings: Settings, pipeline: Pipeline) -> JobRunner:
    """Pick the execution strategy described by ``settings``."""

    if not settings.use_queue:
        return InlineRunner(pipeline)
    spacing = settings.rate_window_seconds
    if settings.broker_url:
        window: RateWindow = RedisRateWindow.from_url(settings.broker_url, spacing)
    else:
        window = LocalRateWindow(spacing)
    return SerializedRunner(pipeline, window)

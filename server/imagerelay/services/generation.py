"""Submit -> sample -> poll sequence for a single prompt."""
from __future__ import annotations

import logging
from functools import partial
from typing import Awaitable, Callable, Optional

from ..config import Settings
from ..errors import GenerationTimeoutError, RelayError
from ..models.jobs import Job, JobStatus, Session
from .poller import poll_for_completion
from .upstream import UpstreamClient

logger = logging.getLogger(__name__)

Pipeline = Callable[[str], Awaitable[list[str]]]


class GenerationService:
    """Runs one generation job end to end against the upstream client."""

    def __init__(self, client: UpstreamClient, settings: Settings) -> None:
        self._client = client
        self._settings = settings

    async def generate(self, prompt: str, session: Session, *, job: Optional[Job] = None) -> list[str]:
        """Return the asset URLs produced for ``prompt``.

        ``job`` is updated in place as the request moves through its states;
        a fresh one is created when the caller does not need to observe it.
        """

        job = job or Job(prompt=prompt)
        job.start()
        try:
            await self._client.submit(session)
            request_id = await self._client.sample(prompt, session)
            job.assign_request_id(request_id)
            logger.info("Prompt accepted upstream as %s", request_id)
            urls = await poll_for_completion(
                request_id,
                partial(self._client.check_status, request_id, session.org_id),
                self._client.asset_url,
                interval=self._settings.poll_interval,
                deadline=self._settings.generation_timeout,
            )
        except GenerationTimeoutError as exc:
            job.time_out(exc.message)
            raise
        except RelayError as exc:
            if exc.request_id is None:
                exc.request_id = job.request_id
            job.fail(exc.message)
            raise
        except Exception as exc:
            if job.status is JobStatus.IN_PROGRESS:
                job.fail(str(exc))
            raise

        job.complete(urls)
        return urls

    def pipeline(self, session: Session) -> Pipeline:
        """Bind ``session`` so runners only deal with prompts."""

        return partial(self.generate, session=session)

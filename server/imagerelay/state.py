"""Process-wide state shared by the HTTP handlers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import Settings
from .errors import ServiceNotInitialized
from .models.jobs import Session
from .rate_limit import ClientRateLimiter
from .services.runners import JobRunner


@dataclass
class RelayState:
    """Settings plus what startup establishes: the session and the job runner.

    ``session`` and ``runner`` are written once by the application lifespan and
    only read by request handlers afterwards.
    """

    settings: Settings
    limiter: ClientRateLimiter
    session: Optional[Session] = None
    runner: Optional[JobRunner] = None

    @property
    def initialized(self) -> bool:
        return self.session is not None

    def require_runner(self) -> JobRunner:
        if self.session is None or self.runner is None:
            raise ServiceNotInitialized()
        return self.runner

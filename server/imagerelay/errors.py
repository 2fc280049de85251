"""Error taxonomy shared by the upstream client, poller, runners and HTTP layer."""
from __future__ import annotations

from typing import Any, Optional


class RelayError(Exception):
    """Base class for failures surfaced to HTTP callers as an error envelope."""

    status_code = 500

    def __init__(self, message: str, *, request_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.request_id = request_id

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        if self.request_id:
            payload["requestId"] = self.request_id
        return payload


class AuthError(RelayError):
    """Login against the upstream service failed."""


class SubmitError(RelayError):
    """The upstream rejected the generation event."""


class SampleError(RelayError):
    """The upstream did not accept the prompt."""


class QuotaExceeded(RelayError):
    """The upstream account hit its weekly generation limit."""


class StatusError(RelayError):
    """A status poll could not be completed or parsed."""


class GenerationTimeoutError(RelayError):
    """The upstream did not finish the request before the deadline."""


class ServiceNotInitialized(RelayError):
    """A request arrived before the upstream session was established."""

    def __init__(self, message: str = "Service not initialized") -> None:
        super().__init__(message)


class TransportError(RelayError):
    """Generic network or queue backend failure."""


class JobStateError(RuntimeError):
    """An illegal job state transition was attempted."""

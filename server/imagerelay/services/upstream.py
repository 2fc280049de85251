"""Client for the upstream image-generation web service."""
from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Optional

import httpx

from ..config import Settings
from ..errors import (
    AuthError,
    QuotaExceeded,
    SampleError,
    StatusError,
    SubmitError,
    TransportError,
)
from ..models.jobs import Session, StatusSnapshot, new_session_id
from .tracing import new_request_id, new_traceparent

logger = logging.getLogger(__name__)

WEEKLY_LIMIT_MARKER = "You have reached your weekly limit"

_BROWSER_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/131.0.0.0 Safari/537.36"
)

# Fixed generation parameters; the upstream treats them as opaque preferences.
SAMPLE_OPTIONS: dict[str, Any] = {
    "model_version": "V_1_5",
    "use_autoprompt_option": "ON",
    "sampling_speed": 0,
    "style_expert": "AUTO",
    "resolution": {"width": 1024, "height": 1024},
    "color_palette": [
        {"color_hex": "#F24B59"},
        {"color_hex": "#49D906"},
        {"color_hex": "#AED919"},
        {"color_hex": "#F2B29B"},
        {"color_hex": "#BF1E10"},
    ],
}


class UpstreamResponseError(Exception):
    """The upstream answered, but not with a usable JSON body."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def is_weekly_limit(message: Any) -> bool:
    """Heuristic quota detection on the upstream's English error message.

    The upstream exposes no structured error code for this case yet.
    """

    return isinstance(message, str) and WEEKLY_LIMIT_MARKER in message


def _read_credential(value: Optional[str], path: str) -> Optional[str]:
    if value:
        return value.strip()
    file_path = Path(path)
    if file_path.is_file():
        return file_path.read_text(encoding="utf-8").strip()
    return None


def parse_json_response(response: httpx.Response) -> Any:
    """Return the decoded JSON body or raise ``UpstreamResponseError``."""

    content_type = response.headers.get("content-type", "")
    if not response.is_success:
        body: Any = response.text
        if "application/json" in content_type:
            try:
                body = response.json()
            except ValueError:
                pass
        raise UpstreamResponseError(
            f"HTTP Error {response.status_code}: {response.text[:200]}",
            status_code=response.status_code,
            body=body,
        )
    if "application/json" in content_type:
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamResponseError("Malformed JSON response", status_code=response.status_code) from exc
    if "text/html" in content_type:
        raise UpstreamResponseError(
            f"Unexpected HTML response: {response.text[:100]}...", status_code=response.status_code
        )
    raise UpstreamResponseError("Unexpected response type.", status_code=response.status_code)


class UpstreamClient:
    """Authenticated calls against the upstream service.

    Every request carries the static bearer credential, the session cookie and
    fresh correlation tokens. Failures are raised as the typed errors from
    :mod:`imagerelay.errors`.
    """

    def __init__(self, settings: Settings, *, http_client: Optional[httpx.AsyncClient] = None) -> None:
        self._settings = settings
        self._base_url = settings.upstream_base_url.rstrip("/")
        self._asset_base_url = settings.asset_base_url.rstrip("/")
        self._authorization = _read_credential(settings.upstream_authorization, settings.authorization_file)
        self._cookie = _read_credential(settings.upstream_cookie, settings.cookie_file)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=settings.upstream_timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def asset_url(self, asset_id: str) -> str:
        return f"{self._asset_base_url}/{asset_id}"

    def _headers(self, org_id: Optional[str] = None) -> dict[str, str]:
        headers = {
            "accept": "*/*",
            "accept-language": "en-US,en;q=0.6",
            "content-type": "application/json",
            "traceparent": new_traceparent(),
            "x-request-id": new_request_id(),
            "referer": f"{self._base_url}/t/my-images",
        }
        if self._authorization:
            headers["authorization"] = self._authorization
        if self._cookie:
            headers["cookie"] = self._cookie
        if org_id:
            headers["x-ideo-org"] = org_id
        return headers

    async def _post(self, path: str, payload: dict[str, Any], *, org_id: Optional[str] = None) -> Any:
        headers = self._headers(org_id)
        logger.debug("POST %s (x-request-id=%s)", path, headers["x-request-id"])
        response = await self._client.post(f"{self._base_url}{path}", json=payload, headers=headers)
        return parse_json_response(response)

    async def login(self) -> Session:
        """Authenticate and return the process-wide session."""

        if not self._authorization or not self._cookie:
            raise AuthError("Upstream credentials missing; set UPSTREAM_AUTHORIZATION and UPSTREAM_COOKIE")
        try:
            data = await self._post(
                "/api/account/login",
                {"external_photo_url": self._settings.external_photo_url},
            )
        except (httpx.HTTPError, UpstreamResponseError) as exc:
            logger.error("Error logging in: %s", exc)
            raise AuthError(f"Login failed: {exc}") from exc

        user = data.get("user_model") if isinstance(data, dict) else None
        if not isinstance(user, dict):
            raise AuthError("Login response missing user_model")
        user_id = user.get("user_id")
        user_handle = user.get("display_handle")
        org_id = user.get("organization_id")
        if not (user_id and user_handle and org_id):
            raise AuthError("Login response missing user identity fields")
        return Session(
            user_id=str(user_id),
            user_handle=str(user_handle),
            org_id=str(org_id),
            session_id=new_session_id(),
        )

    async def submit(self, session: Session) -> dict[str, Any]:
        """Send the generation event that precedes every sample call."""

        metadata = {
            "path": "/t/my-images",
            "triggeredUtcTime": int(time.time() * 1000),
            "userAgent": _BROWSER_USER_AGENT,
            "isMobileLayout": False,
            "userHandle": session.user_handle,
            "userId": session.user_id,
            "sessionId": session.session_id,
            "location": self._settings.location,
            "generationInProgress": False,
        }
        payload = {"event_key": "V2_GENERATION", "metadata": json.dumps(metadata)}
        try:
            data = await self._post("/api/e/submit", payload, org_id=session.org_id)
        except httpx.HTTPError as exc:
            raise TransportError(f"Submit request failed: {exc}") from exc
        except UpstreamResponseError as exc:
            raise SubmitError(f"Failed to submit image generation request: {exc}") from exc

        if not isinstance(data, dict) or not data.get("success"):
            raise SubmitError("Failed to submit image generation request")
        return data

    async def sample(self, prompt: str, session: Session) -> str:
        """Submit the prompt and return the upstream request id."""

        payload = {"prompt": prompt, "user_id": session.user_id, **SAMPLE_OPTIONS}
        try:
            data = await self._post("/api/images/sample", payload, org_id=session.org_id)
        except httpx.HTTPError as exc:
            raise TransportError(f"Sample request failed: {exc}") from exc
        except UpstreamResponseError as exc:
            # Error replies may still carry the upstream's message.
            data = exc.body if isinstance(exc.body, dict) else {"message": str(exc)}

        request_id = data.get("request_id") if isinstance(data, dict) else None
        if request_id:
            return str(request_id)

        message = data.get("message") if isinstance(data, dict) else None
        if is_weekly_limit(message):
            raise QuotaExceeded(WEEKLY_LIMIT_MARKER)
        logger.warning("Sample rejected by upstream: %s", message)
        raise SampleError("Failed to generate image")

    async def check_status(self, request_id: str, org_id: str) -> StatusSnapshot:
        """Fetch the generation progress for one upstream request."""

        try:
            data = await self._post(
                "/api/gallery/retrieve-requests",
                {"request_ids": [request_id]},
                org_id=org_id,
            )
        except (httpx.HTTPError, UpstreamResponseError) as exc:
            raise StatusError(f"Error fetching requests: {exc}", request_id=request_id) from exc

        try:
            entry = data["sampling_requests"][0]
            responses = entry.get("responses") or []
            return StatusSnapshot(
                completion_percentage=float(entry.get("completion_percentage") or 0),
                is_completed=bool(entry.get("is_completed")),
                asset_ids=tuple(str(item["response_id"]) for item in responses),
            )
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as exc:
            raise StatusError("Malformed status response", request_id=request_id) from exc

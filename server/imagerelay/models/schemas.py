"""Pydantic models describing request and response payloads."""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class CreateImageRequest(BaseModel):
    """Incoming payload for a generation request."""

    prompt: str = Field(..., min_length=1, description="Text prompt forwarded to the upstream service")


class CreateImageResponse(BaseModel):
    """Asset URLs for a completed generation, in upstream order."""

    images: List[str]


class ErrorResponse(BaseModel):
    """Error envelope returned for any failed request."""

    error: str
    requestId: Optional[str] = Field(default=None, description="Upstream request id, when one was assigned")


class HealthResponse(BaseModel):
    """Process-wide initialization and configuration flags."""

    status: str = "ok"
    serviceInitialized: bool
    queueEnabled: bool
    sslEnabled: bool

"""Correlation tokens attached to every upstream call."""
from __future__ import annotations

import secrets
import uuid


def new_request_id() -> str:
    """Return a dash-less uuid4, the format the upstream uses for ``x-request-id``."""

    return uuid.uuid4().hex


def new_traceparent() -> str:
    """Build a sampled W3C ``traceparent`` header (version 00)."""

    trace_id = secrets.token_hex(16)
    span_id = secrets.token_hex(8)
    return f"00-{trace_id}-{span_id}-01"

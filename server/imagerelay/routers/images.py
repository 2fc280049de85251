"""Image generation and health endpoints."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request

from ..models import schemas
from ..state import RelayState

logger = logging.getLogger(__name__)

router = APIRouter(tags=["images"])


def get_state(request: Request) -> RelayState:
    return request.app.state.relay


def enforce_client_limit(request: Request, state: RelayState = Depends(get_state)) -> None:
    state.limiter.check(request)


@router.post(
    "/create-image",
    response_model=schemas.CreateImageResponse,
    responses={500: {"model": schemas.ErrorResponse}},
    dependencies=[Depends(enforce_client_limit)],
)
async def create_image(
    payload: schemas.CreateImageRequest,
    state: RelayState = Depends(get_state),
) -> schemas.CreateImageResponse:
    """Run the submit, sample and poll sequence and return the asset URLs."""

    runner = state.require_runner()
    logger.info("prompt %r", payload.prompt)
    images = await runner.run(payload.prompt)
    return schemas.CreateImageResponse(images=images)


@router.get("/health", response_model=schemas.HealthResponse)
async def health(state: RelayState = Depends(get_state)) -> schemas.HealthResponse:
    """Report initialization and configuration flags without side effects."""

    return schemas.HealthResponse(
        serviceInitialized=state.initialized,
        queueEnabled=state.settings.use_queue,
        sslEnabled=state.settings.ssl_enabled,
    )

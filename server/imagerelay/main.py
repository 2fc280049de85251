"""FastAPI application entrypoint for the image relay."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .errors import RelayError
from .rate_limit import ClientRateLimiter
from .routers import images
from .services.generation import GenerationService
from .services.runners import build_runner
from .services.upstream import UpstreamClient
from .state import RelayState

logger = logging.getLogger(__name__)


async def initialize(state: RelayState, client: UpstreamClient) -> None:
    """Log in upstream and install the session and job runner on ``state``."""

    settings = state.settings
    session = await client.login()
    service = GenerationService(client, settings)
    runner = build_runner(settings, service.pipeline(session))
    await runner.start()
    state.session = session
    state.runner = runner
    logger.info(
        "Service session: user=%s handle=%s org=%s", session.user_id, session.user_handle, session.org_id
    )
    logger.info("Queue processing is %s", "enabled" if settings.use_queue else "disabled")
    if settings.use_queue:
        logger.info("Rate window is %.1fs", settings.rate_window_seconds)


def create_app(
    settings: Optional[Settings] = None,
    *,
    upstream: Optional[UpstreamClient] = None,
) -> FastAPI:
    """Instantiate and configure the FastAPI application."""

    settings = settings or get_settings()
    state = RelayState(
        settings=settings,
        limiter=ClientRateLimiter(settings.client_rate_limit, settings.client_rate_window),
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        client = upstream or UpstreamClient(settings)
        try:
            await initialize(state, client)
        except Exception:
            logger.exception("Failed to initialize service")
            await client.aclose()
            raise
        try:
            yield
        finally:
            logger.info("Shutting down gracefully...")
            if state.runner is not None:
                await state.runner.close()
            await client.aclose()

    application = FastAPI(title="Image Relay", version="0.1.0", lifespan=lifespan)
    application.state.relay = state
    application.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.allowed_origin],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
        logger.error("Error processing request: %s (%s)", exc.message, type(exc).__name__)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @application.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Error processing request")
        return JSONResponse(status_code=500, content={"error": str(exc) or type(exc).__name__})

    application.include_router(images.router)
    return application


def run() -> None:
    """Start the relay with uvicorn, serving HTTPS when configured."""

    import uvicorn

    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    settings.validate()

    ssl_kwargs = {}
    if settings.ssl_enabled:
        ssl_kwargs = {"ssl_keyfile": settings.ssl_key_path, "ssl_certfile": settings.ssl_cert_path}
        logger.info("SSL enabled")

    logger.info(
        "Service running on port %s (%s)", settings.port, "HTTPS" if settings.ssl_enabled else "HTTP"
    )
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, **ssl_kwargs)


if __name__ == "__main__":
    run()

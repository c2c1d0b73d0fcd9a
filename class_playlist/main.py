from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from structlog.contextvars import bind_contextvars, reset_contextvars

from class_playlist.api.routes import router
from class_playlist.dependencies import get_playlist_service, get_settings, get_telemetry
from class_playlist.logging_config import configure_application_logging

LOGGER = logging.getLogger("class_playlist.app")


def health_check() -> dict[str, str]:
    return {"status": "ok"}


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    log_file = configure_application_logging(settings)
    page_id = get_playlist_service().ensure_playlist_page()
    LOGGER.info(
        "app started network_id=%s sync_strategy=%s playlist_page_id=%s log_file=%s",
        settings.network_id,
        settings.sync_strategy,
        page_id,
        log_file,
    )
    yield


def create_app() -> FastAPI:
    app = FastAPI(title="Class Playlist API", version="0.1.0", lifespan=app_lifespan)

    async def request_context_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        telemetry = get_telemetry()
        incoming_request_id = request.headers.get("X-Request-ID")
        request_id = (
            incoming_request_id.strip()
            if isinstance(incoming_request_id, str) and incoming_request_id.strip()
            else str(uuid4())
        )
        context_tokens = bind_contextvars(
            http_request_id=request_id,
            http_method=request.method,
            http_path=request.url.path,
        )
        request_attributes = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        telemetry.emit("http.request.start", **request_attributes)
        try:
            with telemetry.span("http.request", **request_attributes) as span:
                response = await call_next(request)
                span.set(status_code=response.status_code)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            reset_contextvars(**context_tokens)

    app.middleware("http")(request_context_middleware)
    app.include_router(router)
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        tags=["system"],
        operation_id="health_check",
    )

    return app


app = create_app()

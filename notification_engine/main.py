from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from notification_engine.config import Settings, get_settings
from notification_engine.interfaces.api.routes import register_routes
from notification_engine.runtime import NotificationRuntime


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(
    settings: Settings | None = None,
    *,
    runtime: NotificationRuntime | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    settings = settings or (runtime.settings if runtime else get_settings())
    configure_logging(settings.log_level)
    runtime = runtime or NotificationRuntime(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start queue workers and the scheduler; stop them on shutdown."""

        await runtime.start()
        try:
            yield
        finally:
            await runtime.stop()

    app = FastAPI(title="Notification Engine", lifespan=lifespan)
    app.state.runtime = runtime

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_routes(app)
    return app

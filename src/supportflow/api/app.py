"""FastAPI health/admin adapter with lifespan and router mounting."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from supportflow.api.routes import admin, health
from supportflow.core.app_logging import init_logging
from supportflow.core.config import AppSettings
from supportflow.orchestrator.pipeline import Pipeline, create_pipeline


def create_app(pipeline: Pipeline | None = None, settings: AppSettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Pass a ready ``pipeline`` to skip building one from settings at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app_settings = settings or AppSettings()
        init_logging(app_settings)
        app.state.settings = app_settings
        app.state.pipeline = pipeline or create_pipeline(app_settings)
        yield

    app = FastAPI(
        title="SupportFlow Processing Pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(health.router)
    app.include_router(admin.router, prefix="/admin")
    return app

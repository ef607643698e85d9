"""
Application factory for FastAPI.

This module provides the create_app() function that creates and configures
the FastAPI application instance. Lifecycle operations are called in-process
through the service layer; the HTTP surface is limited to operational routes.
"""

from fastapi import FastAPI

from app.routes import health_router
from core.config import settings
from core.lifespan import lifespan


def create_app() -> FastAPI:
    """
    Application factory function.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.api.app_name,
        version=settings.api.app_version,
        description="Issue lifecycle and assignment engine for customer support tickets",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    app.include_router(health_router)

    return app

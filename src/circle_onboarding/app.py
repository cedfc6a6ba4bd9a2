"""
Circle Onboarding - FastAPI application.
"""

import logging

from fastapi import FastAPI

from . import __version__
from .api import router


def create_app() -> FastAPI:
    from .config import settings

    logging.basicConfig(level=settings.log_level)

    app = FastAPI(
        title="Circle Onboarding",
        version=__version__,
        docs_url=None if settings.is_production else "/docs",
    )
    app.include_router(router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "service": "circle-onboarding",
            "supabase_configured": settings.supabase_configured,
        }

    return app

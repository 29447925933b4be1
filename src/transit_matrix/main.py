"""FastAPI application entry point."""

from __future__ import annotations

import logging

from fastapi import FastAPI

from .api.routes import analytics, health, matrix, status
from .config import settings


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name)

    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(status.router, prefix=settings.api_prefix)
    app.include_router(matrix.router, prefix=settings.api_prefix)
    app.include_router(analytics.router, prefix=settings.api_prefix)
    return app


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run("transit_matrix.main:app", host=settings.host, port=settings.port, proxy_headers=True)


app = create_app()

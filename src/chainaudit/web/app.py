"""FastAPI application factory for the chainaudit HTTP API."""

from __future__ import annotations

from fastapi import FastAPI

from chainaudit import __version__
from chainaudit.analysis.registry import build_registry
from chainaudit.config import ChainAuditConfig


def create_app(config: ChainAuditConfig | None = None) -> FastAPI:
    """Build and return the FastAPI application."""
    config = config or ChainAuditConfig.load()

    app = FastAPI(
        title="chainaudit",
        version=__version__,
        docs_url="/api/docs",
    )

    # Registry is built once and only read by request handlers
    app.state.config = config
    app.state.registry = build_registry(config.tool_paths)

    from chainaudit.web.api.analysis import router as analysis_router

    app.include_router(analysis_router, prefix="/api")

    @app.get("/api/health")
    async def health() -> dict:
        return {"status": "ok", "version": __version__}

    return app

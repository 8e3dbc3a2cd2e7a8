"""FastAPI application - Cooperative Approval Workflow Service.

Start with:
    PYTHONPATH=src uvicorn coop_svc.main:app --host 0.0.0.0 --port 8060

Serves:
- /requests/* - request creation, transitions, queries and dashboard counts
- GET /health - component stats
- GET /       - service info
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from . import __version__
from . import _bootstrap as bs
from .errors import WorkflowError
from .requests import routes as request_routes

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    status: str
    store: str
    domain_modules: list[str]
    notifications: dict[str, Any]
    metrics: dict[str, Any]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting coop approval service...")

    config, config_path = bs.load_config()
    services = bs.build_services(config, config_path)

    # Store on app state for handlers and tests
    app.state.config = config
    app.state.services = services

    request_routes.configure(
        engine=services.engine,
        metrics=services.metrics,
        extractor=services.extractor,
        yaml_path=services.snapshot_path,
    )
    logger.info("Request & approval workflow enabled")

    logger.info("Coop approval service started")
    yield

    logger.info("Shutting down coop approval service...")
    services.close()
    logger.info("Coop approval service stopped")


# Create FastAPI app
app = FastAPI(
    title="Coop Approval Service",
    description="Multi-level, role-gated approval workflow for cooperative society requests.",
    version=__version__,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Requests", "description": "Request submission and approval workflow"},
        {"name": "Health", "description": "Service status"},
    ],
)

app.include_router(request_routes.router)


@app.exception_handler(WorkflowError)
async def workflow_error_handler(request: Request, exc: WorkflowError):
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health(request: Request):
    """Health check endpoint."""
    services: bs.Services | None = getattr(request.app.state, "services", None)
    if services is None:
        return JSONResponse(status_code=503, content={"status": "starting"})
    return HealthResponse(
        status="healthy",
        store=services.config.store.backend,
        domain_modules=services.adapters.all_modules(),
        notifications=services.notifier.stats,
        metrics=services.metrics.stats,
    )


@app.get("/", tags=["Health"])
async def root():
    """Service info."""
    return {
        "service": "coop-approval",
        "version": __version__,
        "endpoints": {
            "requests": "/requests",
            "pending_count": "/requests/pending-count",
            "metrics": "/requests/metrics",
            "health": "/health",
            "docs": "/docs",
        },
    }


def run():
    """Run the service with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config, _ = bs.load_config()
    uvicorn.run(
        "coop_svc.main:app",
        host=config.server.host,
        port=config.server.port,
        workers=config.server.workers,
        reload=config.server.reload,
    )


if __name__ == "__main__":
    run()

"""
AquaSense API — FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from core.config import get_settings
from core.errors import AquaSenseError

settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("AquaSense API starting up", version=settings.app_version)
    yield
    logger.info("AquaSense API shutting down")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Greenhouse row telemetry ingestion and threshold alerting",
    lifespan=lifespan,
)


@app.exception_handler(AquaSenseError)
async def aquasense_error_handler(request: Request, exc: AquaSenseError):
    """Map core errors to their HTTP status."""
    log = logger.warning if exc.http_status < 500 else logger.error
    log(
        "api.request_failed",
        path=request.url.path,
        error_type=type(exc).__name__,
        status=exc.http_status,
        error=exc.message,
    )
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": exc.message, "error": type(exc).__name__, **({"context": exc.detail} if exc.detail else {})},
    )


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Import and register routers
from alerts.websocket import router as ws_router
from api.v1.routers import (
    alert_rules,
    alerts,
    ingest,
    organizations,
    plant_profiles,
    readings,
    rows,
    systems,
)

app.include_router(organizations.router)
app.include_router(systems.router)
app.include_router(rows.router)
app.include_router(plant_profiles.router)
app.include_router(readings.router)
app.include_router(alerts.router)
app.include_router(alert_rules.router)
app.include_router(ingest.router)
app.include_router(ws_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {"status": "healthy", "version": settings.app_version}

"""CROWDWATCH - Crowd Safety Operations Center.

Main FastAPI application.
"""

import asyncio
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from app.config import settings
from app.routers import ops_router, ws_router
from coordination.center import OperationsCenter

VERSION = "0.1.0"


def _configure_logging() -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if settings.debug else "INFO")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    _configure_logging()
    logger.info("=" * 60)
    logger.info(f"  CROWDWATCH v{VERSION} - INITIALIZING")
    logger.info("=" * 60)

    # Respect a center injected before startup (tests, embedding)
    center = getattr(app.state, "ops", None)
    owns_center = center is None
    if owns_center:
        center = OperationsCenter.create(settings)
        app.state.ops = center

    from app.routers.ws import start_event_bridge
    bridge = start_event_bridge(center.event_bus, asyncio.get_running_loop())
    logger.info("Event bridge started")

    logger.info("=" * 60)
    logger.info("  CROWDWATCH ONLINE")
    logger.info("=" * 60)

    yield

    logger.info("CROWDWATCH shutting down...")
    bridge.stop()
    if owns_center:
        center.shutdown()
        app.state.ops = None


app = FastAPI(
    title="CROWDWATCH",
    description="Crowd Safety Operations Center",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ops_router)
app.include_router(ws_router)


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "operational",
        "version": VERSION,
        "system": "CROWDWATCH",
    }


@app.get("/api/status")
async def status():
    """System status endpoint."""
    center = getattr(app.state, "ops", None)
    feed = center.feed if center is not None else None
    return {
        "name": settings.app_name,
        "version": VERSION,
        "operations_center": center is not None,
        "state_version": center.store.version if center is not None else None,
        "simulation": feed is not None and feed.running,
        "live_subscribers": center.event_bus.subscriber_count if center is not None else 0,
    }


def run() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run("app.main:app", host=settings.host, port=settings.port)

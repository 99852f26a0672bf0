"""API routers for CROWDWATCH."""

from app.routers.ops import router as ops_router
from app.routers.ws import router as ws_router

__all__ = ["ops_router", "ws_router"]

"""
FastAPI Application Entry Point.

College Bus Tracker Backend: drivers share their bus's GPS position, everyone
else reads live locations with next stop and ETA over REST or a websocket.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from backend.app.core.config import settings
from backend.app.api.v1.router import router as api_v1_router
from backend.app.db.session import engine, create_tables
from backend.app.core.observability import ObservabilityMiddleware, configure_logging
from backend.app.core.exceptions import register_exception_handlers
from backend.app.services.fanout_hub import FanoutHub
from backend.app.services.live_position_store import LivePositionStore

# Import models to ensure they are registered with Base
from backend.app.models.user import User
from backend.app.models.route import Route
from backend.app.models.bus_stop import BusStop
from backend.app.models.bus import Bus
from backend.app.models.trip_log import TripLog
from backend.app.models.live_bus_location import LiveBusLocation
from backend.app.models.location_history import LocationHistory

configure_logging(settings.log_level)
logger = logging.getLogger("bustracker")


def init_realtime(app: FastAPI) -> None:
    """Create the hub and the position store that publishes through it."""
    hub = FanoutHub()
    app.state.hub = hub
    app.state.position_store = LivePositionStore(hub)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    init_realtime(app)
    logger.info("%s %s started", settings.app_name, settings.api_version)
    yield
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Live bus locations and next-stop ETAs for the college shuttle fleet",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)
register_exception_handlers(app)

app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Liveness plus websocket hub counters."""
    hub = getattr(request.app.state, "hub", None)
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "realtime": hub.stats() if hub else None,
    }


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to College Bus Tracker Backend API",
        "docs": "/docs",
        "health": "/health",
        "websocket": f"/{settings.api_version}/ws?token=<jwt>",
    }

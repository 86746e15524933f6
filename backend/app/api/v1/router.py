"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import (
    locations, trips, admin_realtime, realtime_ws
)

router = APIRouter()

# Driver sharing and public location reads
router.include_router(locations.router)

# Trip logs
router.include_router(trips.router)

# Announcements, emergency alerts, hub stats
router.include_router(admin_realtime.router)

# Websocket subscription protocol
router.include_router(realtime_ws.router)

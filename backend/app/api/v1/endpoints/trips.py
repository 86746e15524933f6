"""
Trip Log API Endpoints.

Every sharing session is recorded as a trip; admins and drivers can look
them up.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.models.bus import Bus
from backend.app.models.enums import UserRole
from backend.app.models.trip_log import TripLog
from backend.app.schemas.trip import TripLogResponse, TripLogListResponse
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.core.guards import require_role, require_admin, BusAccessGuard
from backend.app.services.trip_logs import list_active_trips, list_trips_for_bus

router = APIRouter(prefix="/trips", tags=["Trip Logs"])
bus_access_guard = BusAccessGuard()


def _trip_response(trip: TripLog) -> TripLogResponse:
    return TripLogResponse(
        id=trip.id,
        bus_id=trip.bus_id,
        driver_id=trip.driver_id,
        route_id=trip.route_id,
        status=trip.status.value,
        started_at=trip.started_at,
        ended_at=trip.ended_at,
        total_distance_km=trip.total_distance_km,
        total_duration_minutes=trip.total_duration_minutes,
        average_speed_kmh=trip.average_speed_kmh
    )


@router.get("/active", response_model=TripLogListResponse, response_model_by_alias=True)
async def get_active_trips(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """All trips currently in progress (Admin only)."""
    trips = await list_active_trips(db)
    return TripLogListResponse(trips=[_trip_response(t) for t in trips], count=len(trips))


@router.get("/bus/{bus_id}", response_model=TripLogListResponse, response_model_by_alias=True)
async def get_bus_trips(
    bus_id: int = Path(..., description="Bus ID"),
    limit: int = Query(10, ge=1, le=100),
    current_user: dict = Depends(require_role([UserRole.ADMIN, UserRole.DRIVER])),
    db: AsyncSession = Depends(get_db)
):
    """Most recent trips of a bus (Admin, or the bus's driver)."""
    bus = await db.get(Bus, bus_id)
    if not bus:
        raise ResourceNotFoundError("Bus", bus_id)

    bus_access_guard.enforce(bus, current_user)

    trips = await list_trips_for_bus(db, bus_id, limit=limit)
    return TripLogListResponse(trips=[_trip_response(t) for t in trips], count=len(trips))

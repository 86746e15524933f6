"""
Live Location API Endpoints.

Drivers share their bus's position; anybody can read where the buses are.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.models.enums import UserRole
from backend.app.schemas.location import (
    StartSharingRequest, StopSharingRequest, PositionReport,
    StartSharingResponse, StopSharingResponse, PositionUpdateResponse,
    ActiveLocationsResponse, BusLocationResponse,
    LocationHistoryEntry, LocationHistoryResponse
)
from backend.app.core.dependencies import get_optional_user, get_position_store
from backend.app.core.guards import require_role, BusAccessGuard
from backend.app.services.eta import average_speed
from backend.app.services.live_position_store import LivePositionStore
from backend.app.services.trip_logs import as_naive_utc

router = APIRouter(prefix="/locations", tags=["Live Locations"])
bus_access_guard = BusAccessGuard()


@router.post("/start", response_model=StartSharingResponse, response_model_by_alias=True)
async def start_location_sharing(
    request: StartSharingRequest,
    current_user: dict = Depends(require_role([UserRole.DRIVER])),
    store: LivePositionStore = Depends(get_position_store),
    db: AsyncSession = Depends(get_db)
):
    """
    Start sharing the bus's location (Driver only).

    Validates:
    - Bus exists and is assigned to the driver
    - Bus is active
    - No sharing session is already open for the bus

    Actions:
    - Open a trip log
    - Mark the live location row as sharing
    - Notify every connected observer
    """
    location, trip = await store.start_sharing(
        db,
        bus_id=request.bus_id,
        driver_id=current_user["user_id"],
        route_id=request.route_id
    )

    return StartSharingResponse(
        message="Location sharing started successfully",
        trip_id=trip.id,
        location=location
    )


@router.put("/update", response_model=PositionUpdateResponse, response_model_by_alias=True)
async def update_location(
    report: PositionReport,
    current_user: dict = Depends(require_role([UserRole.DRIVER])),
    store: LivePositionStore = Depends(get_position_store),
    db: AsyncSession = Depends(get_db)
):
    """
    Report a GPS fix for the driver's bus (Driver only).

    Next stop and ETA are recomputed on every report and pushed to the
    bus's subscribers.
    """
    location = await store.report_position(db, current_user["user_id"], report)

    return PositionUpdateResponse(
        message="Location updated successfully",
        location=location
    )


@router.post("/stop", response_model=StopSharingResponse, response_model_by_alias=True)
async def stop_location_sharing(
    request: StopSharingRequest,
    current_user: dict = Depends(require_role([UserRole.DRIVER])),
    store: LivePositionStore = Depends(get_position_store),
    db: AsyncSession = Depends(get_db)
):
    """Stop sharing and close the trip (Driver only)."""
    location, trip = await store.stop_sharing(db, request.bus_id, current_user["user_id"])

    return StopSharingResponse(
        message="Location sharing stopped successfully",
        trip_id=trip.id if trip else None,
        location=location
    )


@router.get("", response_model=ActiveLocationsResponse, response_model_by_alias=True)
async def get_active_locations(
    store: LivePositionStore = Depends(get_position_store),
    db: AsyncSession = Depends(get_db)
):
    """All buses currently sharing their location, with next stop and ETA."""
    locations = await store.list_active(db)
    return ActiveLocationsResponse(locations=locations, count=len(locations))


@router.get("/bus/{bus_id}", response_model=BusLocationResponse, response_model_by_alias=True)
async def get_bus_location(
    bus_id: int = Path(..., description="Bus ID"),
    current_user: Optional[dict] = Depends(get_optional_user),
    store: LivePositionStore = Depends(get_position_store),
    db: AsyncSession = Depends(get_db)
):
    """
    Location of one bus.

    Public; a driver may only look at the bus assigned to them.
    """
    bus = await store.get_bus(db, bus_id)
    bus_access_guard.enforce(bus, current_user)

    location = await store.get_location(db, bus_id)
    return BusLocationResponse(location=location)


@router.get("/history/{bus_id}", response_model=LocationHistoryResponse, response_model_by_alias=True)
async def get_location_history(
    bus_id: int = Path(..., description="Bus ID"),
    start: Optional[datetime] = Query(None, description="Earliest fix (UTC)"),
    end: Optional[datetime] = Query(None, description="Latest fix (UTC)"),
    limit: int = Query(100, ge=1, le=1000),
    current_user: dict = Depends(require_role([UserRole.ADMIN, UserRole.DRIVER])),
    store: LivePositionStore = Depends(get_position_store),
    db: AsyncSession = Depends(get_db)
):
    """
    Raw position history of a bus, newest first (Admin, or the bus's driver).
    """
    bus = await store.get_bus(db, bus_id)
    bus_access_guard.enforce(bus, current_user)

    history = await store.get_history(
        db, bus_id,
        start=as_naive_utc(start),
        end=as_naive_utc(end),
        limit=limit
    )

    recent_speed = average_speed(
        (as_naive_utc(entry.recorded_at), entry.speed_kmh) for entry in history
    )

    return LocationHistoryResponse(
        history=[LocationHistoryEntry.model_validate(entry) for entry in history],
        count=len(history),
        recent_average_speed_kmh=round(recent_speed, 2)
    )

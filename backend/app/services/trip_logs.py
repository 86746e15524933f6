"""
Trip log service.

Opens and closes the TripLog that accompanies every sharing session and
computes its aggregates from the session's location history.
"""

import math
from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from backend.app.models.trip_log import TripLog
from backend.app.models.location_history import LocationHistory
from backend.app.models.trip_enums import TripStatus
from backend.app.services.geo import path_length_km


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize DB timestamps (aware on PostgreSQL, naive on SQLite) to naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


async def find_active_trip(db: AsyncSession, bus_id: int) -> Optional[TripLog]:
    """The ACTIVE trip for a bus, if any (at most one exists)."""
    result = await db.execute(
        select(TripLog).where(
            TripLog.bus_id == bus_id,
            TripLog.status == TripStatus.ACTIVE
        )
    )
    return result.scalar_one_or_none()


async def open_trip(
    db: AsyncSession,
    bus_id: int,
    driver_id: int,
    route_id: Optional[int],
    started_at: datetime
) -> TripLog:
    """
    Create the ACTIVE trip for a new sharing session.

    Raises:
        IntegrityError: If the bus already has an ACTIVE trip
    """
    trip = TripLog(
        bus_id=bus_id,
        driver_id=driver_id,
        route_id=route_id,
        status=TripStatus.ACTIVE,
        started_at=started_at
    )

    db.add(trip)
    await db.flush()  # Will raise IntegrityError if the partial unique index is violated

    return trip


async def close_trip(db: AsyncSession, trip: TripLog, ended_at: datetime) -> TripLog:
    """
    Complete a trip and fill in its aggregates.

    Distance is the length of the path through the trip's recorded fixes.
    Duration is rounded to whole minutes; average speed is only set when
    both distance and duration are non-zero.
    """
    result = await db.execute(
        select(LocationHistory.latitude, LocationHistory.longitude).where(
            LocationHistory.trip_log_id == trip.id
        ).order_by(LocationHistory.id)
    )
    points = [(row.latitude, row.longitude) for row in result.all()]

    total_distance_km = round(path_length_km(points), 2)
    started_at = as_naive_utc(trip.started_at)
    duration_minutes = int(math.floor((ended_at - started_at).total_seconds() / 60 + 0.5))

    trip.status = TripStatus.COMPLETED
    trip.ended_at = ended_at
    trip.total_distance_km = total_distance_km
    trip.total_duration_minutes = duration_minutes
    if total_distance_km and duration_minutes:
        trip.average_speed_kmh = round(total_distance_km / (duration_minutes / 60), 2)

    await db.flush()
    return trip


async def list_active_trips(db: AsyncSession) -> List[TripLog]:
    result = await db.execute(
        select(TripLog).where(TripLog.status == TripStatus.ACTIVE).order_by(TripLog.started_at.desc())
    )
    return list(result.scalars().all())


async def list_trips_for_bus(db: AsyncSession, bus_id: int, limit: int = 10) -> List[TripLog]:
    result = await db.execute(
        select(TripLog).where(TripLog.bus_id == bus_id).order_by(TripLog.started_at.desc(), TripLog.id.desc()).limit(limit)
    )
    return list(result.scalars().all())

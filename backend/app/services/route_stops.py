"""
Route stop helpers.

Reads a route's ordered stops for the next-stop lookup and keeps stop_order
a dense 1..N sequence when a stop is removed.
"""

from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from backend.app.models.bus_stop import BusStop
from backend.app.core.exceptions import ResourceNotFoundError


async def load_route_stops(db: AsyncSession, route_id: int) -> List[BusStop]:
    """All stops of a route, ordered by stop_order."""
    result = await db.execute(
        select(BusStop).where(BusStop.route_id == route_id).order_by(BusStop.stop_order)
    )
    return list(result.scalars().all())


async def remove_stop(db: AsyncSession, stop_id: int) -> int:
    """
    Delete a stop and close the gap it leaves in the route's order.

    Returns:
        Number of stops that were renumbered
    """
    stop = await db.get(BusStop, stop_id)
    if not stop:
        raise ResourceNotFoundError("Bus stop", stop_id)

    route_id = stop.route_id
    removed_order = stop.stop_order

    await db.delete(stop)
    await db.flush()

    # Shift one at a time, lowest first, so (route_id, stop_order) stays unique
    result = await db.execute(
        select(BusStop.id).where(
            BusStop.route_id == route_id,
            BusStop.stop_order > removed_order
        ).order_by(BusStop.stop_order)
    )
    shifted_ids = list(result.scalars().all())

    for shifted_id in shifted_ids:
        await db.execute(
            update(BusStop).where(BusStop.id == shifted_id).values(stop_order=BusStop.stop_order - 1)
        )

    await db.flush()
    return len(shifted_ids)


async def compact_stop_order(db: AsyncSession, route_id: int) -> int:
    """
    Renumber a route's stops to 1..N, preserving their relative order.

    Returns:
        Number of stops whose order changed
    """
    stops = await load_route_stops(db, route_id)

    changed = 0
    for expected, stop in enumerate(stops, start=1):
        if stop.stop_order != expected:
            # Orders only ever move down here, and the slot below is already free
            await db.execute(
                update(BusStop).where(BusStop.id == stop.id).values(stop_order=expected)
            )
            changed += 1

    await db.flush()
    return changed

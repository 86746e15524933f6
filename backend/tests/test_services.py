"""
Service helper tests: per-bus locks, stop ordering, trip aggregates.
"""

import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.models.bus_stop import BusStop
from backend.app.models.location_history import LocationHistory
from backend.app.models.trip_enums import TripStatus
from backend.app.services.bus_locking import BusLockRegistry
from backend.app.services.route_stops import compact_stop_order, load_route_stops, remove_stop
from backend.app.services.trip_logs import close_trip, find_active_trip, open_trip


class TestBusLockRegistry:

    async def test_same_bus_shares_one_lock(self):
        locks = BusLockRegistry()
        assert locks.lock_for(1) is locks.lock_for(1)
        assert locks.lock_for(1) is not locks.lock_for(2)
        assert len(locks) == 2

    async def test_hold_serializes_in_arrival_order(self):
        locks = BusLockRegistry()
        order = []

        async def worker(n):
            async with locks.hold(1):
                order.append(f"start {n}")
                await asyncio.sleep(0.01)
                order.append(f"end {n}")

        await asyncio.gather(worker(1), worker(2), worker(3))

        assert order == ["start 1", "end 1", "start 2", "end 2", "start 3", "end 3"]
        assert not locks.is_locked(1)
        assert len(locks) == 0

    async def test_lock_is_released_from_the_registry_after_an_error(self):
        locks = BusLockRegistry()

        with pytest.raises(LookupError):
            async with locks.hold(99):
                raise LookupError("no such bus")

        assert len(locks) == 0


class TestRouteStops:

    async def test_remove_stop_closes_the_gap(self, db_session, campus):
        s3 = BusStop(route_id=campus["route"].id, name="S3", latitude=0, longitude=0.02, stop_order=3)
        db_session.add(s3)
        await db_session.commit()

        shifted = await remove_stop(db_session, campus["s1"].id)
        await db_session.commit()

        stops = await load_route_stops(db_session, campus["route"].id)
        assert shifted == 2
        assert [(s.name, s.stop_order) for s in stops] == [("S2", 1), ("S3", 2)]

    async def test_remove_unknown_stop(self, db_session, campus):
        with pytest.raises(ResourceNotFoundError):
            await remove_stop(db_session, 9999)

    async def test_compact_renumbers(self, db_session, campus):
        s5 = BusStop(route_id=campus["route"].id, name="S5", latitude=0, longitude=0.05, stop_order=5)
        db_session.add(s5)
        await db_session.commit()

        changed = await compact_stop_order(db_session, campus["route"].id)
        await db_session.commit()

        result = await db_session.execute(select(BusStop.stop_order).where(BusStop.route_id == campus["route"].id).order_by(BusStop.stop_order))
        assert changed == 1
        assert list(result.scalars().all()) == [1, 2, 3]


class TestTripLogs:

    async def test_close_trip_aggregates(self, db_session, campus):
        started = datetime.utcnow() - timedelta(minutes=30)
        trip = await open_trip(db_session, campus["bus"].id, campus["driver"].id, campus["route"].id, started)

        for lng in (0.0, 0.1, 0.2):
            db_session.add(LocationHistory(
                bus_id=campus["bus"].id, trip_log_id=trip.id,
                latitude=0.0, longitude=lng, speed_kmh=40, recorded_at=started
            ))
        await db_session.flush()

        await close_trip(db_session, trip, started + timedelta(minutes=30))
        await db_session.commit()

        assert trip.status == TripStatus.COMPLETED
        assert trip.total_distance_km == pytest.approx(22.24, abs=0.01)
        assert trip.total_duration_minutes == 30
        assert trip.average_speed_kmh == pytest.approx(44.48, abs=0.02)
        assert await find_active_trip(db_session, campus["bus"].id) is None

    async def test_second_active_trip_is_rejected_by_the_database(self, db_session, campus):
        now = datetime.utcnow()
        await open_trip(db_session, campus["bus"].id, campus["driver"].id, None, now)

        with pytest.raises(IntegrityError):
            await open_trip(db_session, campus["bus"].id, campus["driver"].id, None, now)

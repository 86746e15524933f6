"""
Live Position Store.

Owns the per-bus sharing state machine (NotSharing -> Sharing -> NotSharing)
and the live_bus_locations row that caches each bus's current position,
next stop and ETA.

Write path for a position report, all under the bus's lock:

    validate session -> write fix -> append history -> recompute next stop
    and ETA -> commit -> publish locationUpdate

Publishing happens after the commit and before the lock is released, so
observers never see data older than a direct read of the row would return,
and events for one bus go out in the order the reports were applied.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    BusInactiveError,
    BusNotAssignedError,
    NotSessionOwnerError,
    ResourceNotFoundError,
    SharingAlreadyActiveError,
    SharingNotActiveError,
)
from backend.app.models.bus import Bus
from backend.app.models.bus_stop import BusStop
from backend.app.models.live_bus_location import LiveBusLocation
from backend.app.models.location_history import LocationHistory
from backend.app.models.route import Route
from backend.app.models.trip_log import TripLog
from backend.app.schemas.location import EtaView, LocationView, NextStopView, PositionReport
from backend.app.services import eta as eta_estimator
from backend.app.services.bus_locking import BusLockRegistry
from backend.app.services.fanout_hub import FanoutHub, HubEvent
from backend.app.services.geo import haversine_m
from backend.app.services.route_stops import load_route_stops
from backend.app.services.stop_locator import find_next_stop
from backend.app.services.trip_logs import as_naive_utc, close_trip, find_active_trip, open_trip

logger = logging.getLogger("bustracker.live_position")


class LivePositionStore:
    """
    Authoritative current state of every bus.

    Only the bus's own sharing session mutates its live row. Different buses
    never wait on each other.
    """

    def __init__(self, hub: FanoutHub, locks: Optional[BusLockRegistry] = None):
        self.hub = hub
        self.locks = locks or BusLockRegistry()

    # Session lifecycle

    async def start_sharing(
        self,
        db: AsyncSession,
        bus_id: int,
        driver_id: int,
        route_id: Optional[int] = None
    ) -> Tuple[LocationView, TripLog]:
        """
        Open a sharing session for a bus.

        Raises:
            ResourceNotFoundError: Unknown bus or route
            BusNotAssignedError: Driver is not assigned to the bus
            BusInactiveError: Bus is inactive
            SharingAlreadyActiveError: A session is already open for the bus
        """
        async with self.locks.hold(bus_id):
            bus = await self._get_bus(db, bus_id)

            if bus.driver_id != driver_id:
                raise BusNotAssignedError()

            if not bus.is_active:
                raise BusInactiveError(bus_id)

            location = await self._get_live_row(db, bus_id, for_update=True)
            if location is not None and location.is_location_sharing:
                raise SharingAlreadyActiveError(bus_id)

            final_route_id = route_id or bus.current_route_id
            if final_route_id is not None:
                route = await db.get(Route, final_route_id)
                if not route:
                    raise ResourceNotFoundError("Route", final_route_id)

            now = datetime.utcnow()

            try:
                trip = await open_trip(db, bus_id, driver_id, final_route_id, now)
            except IntegrityError:
                await db.rollback()
                raise SharingAlreadyActiveError(bus_id)

            if location is None:
                location = LiveBusLocation(bus_id=bus_id)
                db.add(location)

            location.driver_id = driver_id
            location.is_location_sharing = True
            location.current_route_id = final_route_id
            location.trip_started_at = now
            self._reset_position(location)

            if route_id and route_id != bus.current_route_id:
                bus.current_route_id = route_id

            await db.commit()

            logger.info("Bus %s: sharing started by driver %s (trip %s, route %s)",
                        bus_id, driver_id, trip.id, final_route_id)

            view = self._to_view(location, None, now)
            await self.hub.publish(HubEvent.SHARING_STARTED, {
                "busId": bus_id,
                "driverId": driver_id,
                "tripId": trip.id,
                "routeId": final_route_id,
            })

        return view, trip

    async def report_position(
        self,
        db: AsyncSession,
        driver_id: int,
        report: PositionReport
    ) -> LocationView:
        """
        Apply one GPS fix to the bus's live row.

        Raises:
            ResourceNotFoundError: Unknown bus
            NotSessionOwnerError: Caller does not own the session
            SharingNotActiveError: No active session for the bus
        """
        bus_id = report.bus_id

        async with self.locks.hold(bus_id):
            bus = await self._get_bus(db, bus_id)
            location = await self._get_live_row(db, bus_id, for_update=True)

            self._check_session_owner(bus, location, driver_id)
            if location is None or not location.is_location_sharing:
                raise SharingNotActiveError(bus_id, hint="Start sharing first.")

            trip = await find_active_trip(db, bus_id)
            now = datetime.utcnow()

            location.latitude = report.latitude
            location.longitude = report.longitude
            location.speed_kmh = report.speed_kmh
            location.heading = report.heading
            location.accuracy_meters = report.accuracy_meters
            location.last_updated = now

            db.add(LocationHistory(
                bus_id=bus_id,
                trip_log_id=trip.id if trip else None,
                latitude=report.latitude,
                longitude=report.longitude,
                speed_kmh=report.speed_kmh,
                heading=report.heading,
                accuracy_meters=report.accuracy_meters,
                recorded_at=now
            ))
            await db.flush()

            next_stop = await self._recompute(db, location, trip, now)

            await db.commit()

            view = self._to_view(location, next_stop, now)
            await self.hub.publish(HubEvent.LOCATION_UPDATE, {
                "busId": bus_id,
                "driverId": driver_id,
                "tripId": trip.id if trip else None,
                "location": self.dump_view(view),
            }, bus_id=bus_id)

        return view

    async def stop_sharing(
        self,
        db: AsyncSession,
        bus_id: int,
        driver_id: int
    ) -> Tuple[LocationView, Optional[TripLog]]:
        """
        Close the bus's sharing session and its trip.

        The live row stays in place as the bus's last known position.

        Raises:
            ResourceNotFoundError: Unknown bus
            NotSessionOwnerError: Caller does not own the session
            SharingNotActiveError: No active session for the bus
        """
        async with self.locks.hold(bus_id):
            bus = await self._get_bus(db, bus_id)
            location = await self._get_live_row(db, bus_id, for_update=True)

            self._check_session_owner(bus, location, driver_id)
            if location is None or not location.is_location_sharing:
                raise SharingNotActiveError(bus_id)

            now = datetime.utcnow()
            location.is_location_sharing = False

            trip = await find_active_trip(db, bus_id)
            if trip is not None:
                await close_trip(db, trip, now)

            await db.commit()

            logger.info("Bus %s: sharing stopped by driver %s (trip %s)",
                        bus_id, driver_id, trip.id if trip else None)

            next_stop = await self._get_stop(db, location.next_stop_id)
            view = self._to_view(location, next_stop, now)
            await self.hub.publish(HubEvent.SHARING_STOPPED, {
                "busId": bus_id,
                "driverId": driver_id,
                "tripId": trip.id if trip else None,
            })

        return view, trip

    # Read path

    async def get_bus(self, db: AsyncSession, bus_id: int) -> Bus:
        return await self._get_bus(db, bus_id)

    async def get_location(self, db: AsyncSession, bus_id: int) -> LocationView:
        """
        Derived view of one bus, including its last-seen position when it is
        not currently sharing.

        Raises:
            ResourceNotFoundError: Unknown bus, or the bus has never shared
        """
        await self._get_bus(db, bus_id)
        location = await self._get_live_row(db, bus_id)
        if location is None:
            raise ResourceNotFoundError("Live location for bus", bus_id)

        next_stop = await self._get_stop(db, location.next_stop_id)
        return self._to_view(location, next_stop)

    async def list_active(self, db: AsyncSession) -> List[LocationView]:
        """Derived views of every bus currently sharing, most recent first."""
        result = await db.execute(
            select(LiveBusLocation).where(
                LiveBusLocation.is_location_sharing.is_(True)
            ).order_by(LiveBusLocation.last_updated.desc(), LiveBusLocation.bus_id)
        )
        locations = list(result.scalars().all())

        stop_ids = {loc.next_stop_id for loc in locations if loc.next_stop_id is not None}
        stops: Dict[int, BusStop] = {}
        if stop_ids:
            stop_result = await db.execute(select(BusStop).where(BusStop.id.in_(stop_ids)))
            stops = {stop.id: stop for stop in stop_result.scalars().all()}

        now = datetime.utcnow()
        return [self._to_view(loc, stops.get(loc.next_stop_id), now) for loc in locations]

    async def bus_status(self, db: AsyncSession, bus_id: int) -> Dict[str, Any]:
        """
        Snapshot sent to a new subscriber.

        Never raises for a bus that is not sharing (or unknown); the snapshot
        just says so.
        """
        location = await self._get_live_row(db, bus_id)

        if location is not None and location.is_location_sharing:
            next_stop = await self._get_stop(db, location.next_stop_id)
            return {
                "busId": bus_id,
                "isActive": True,
                "location": self.dump_view(self._to_view(location, next_stop)),
            }

        return {
            "busId": bus_id,
            "isActive": False,
            "message": "Bus location sharing is not active",
        }

    async def subscribe(self, db: AsyncSession, observer_id: str, bus_id: int) -> bool:
        """
        Subscribe an observer to a bus through the hub.

        Runs under the bus's lock, so no update for the bus can be published
        between reading the snapshot and sending it.
        """
        async with self.locks.hold(bus_id):
            return await self.hub.subscribe(observer_id, bus_id, lambda: self.bus_status(db, bus_id))

    async def sharing_status(self, db: AsyncSession, bus_id: int) -> Dict[str, Any]:
        """Answer to getLocationSharingStatus."""
        location = await self._get_live_row(db, bus_id)
        is_sharing = bool(location is not None and location.is_location_sharing)
        return {
            "busId": bus_id,
            "isSharing": is_sharing,
            "driverId": location.driver_id if is_sharing else None,
        }

    async def get_history(
        self,
        db: AsyncSession,
        bus_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100
    ) -> List[LocationHistory]:
        """Raw fixes for a bus, newest first."""
        query = select(LocationHistory).where(LocationHistory.bus_id == bus_id)
        if start is not None:
            query = query.where(LocationHistory.recorded_at >= start)
        if end is not None:
            query = query.where(LocationHistory.recorded_at <= end)

        result = await db.execute(
            query.order_by(LocationHistory.recorded_at.desc(), LocationHistory.id.desc()).limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    def dump_view(view: LocationView) -> Dict[str, Any]:
        """JSON-ready camelCase dict of a view."""
        return view.model_dump(mode="json", by_alias=True)

    # Internals

    async def _get_bus(self, db: AsyncSession, bus_id: int) -> Bus:
        bus = await db.get(Bus, bus_id)
        if not bus:
            raise ResourceNotFoundError("Bus", bus_id)
        return bus

    async def _get_live_row(self, db: AsyncSession, bus_id: int, for_update: bool = False) -> Optional[LiveBusLocation]:
        query = select(LiveBusLocation).where(LiveBusLocation.bus_id == bus_id)
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query.execution_options(populate_existing=True))
        return result.scalar_one_or_none()

    async def _get_stop(self, db: AsyncSession, stop_id: Optional[int]) -> Optional[BusStop]:
        if stop_id is None:
            return None
        return await db.get(BusStop, stop_id)

    def _check_session_owner(self, bus: Bus, location: Optional[LiveBusLocation], driver_id: int) -> None:
        # An open session belongs to whoever started it; otherwise to the assigned driver
        if location is not None and location.is_location_sharing:
            owner_id = location.driver_id
        else:
            owner_id = bus.driver_id
        if owner_id != driver_id:
            raise NotSessionOwnerError()

    @staticmethod
    def _reset_position(location: LiveBusLocation) -> None:
        location.latitude = None
        location.longitude = None
        location.speed_kmh = None
        location.heading = None
        location.accuracy_meters = None
        location.last_updated = None
        location.next_stop_id = None
        location.distance_to_next_stop_m = None
        location.eta_to_next_stop = None
        location.eta_details = None

    async def _speed_samples(self, db: AsyncSession, bus_id: int, trip: Optional[TripLog]) -> List[Optional[float]]:
        """Most recent speed readings of the session, oldest first."""
        query = select(LocationHistory.speed_kmh)
        if trip is not None:
            query = query.where(LocationHistory.trip_log_id == trip.id)
        else:
            query = query.where(LocationHistory.bus_id == bus_id)

        result = await db.execute(
            query.order_by(LocationHistory.id.desc()).limit(settings.eta_speed_sample_size)
        )
        return list(reversed(result.scalars().all()))

    async def _recompute(
        self,
        db: AsyncSession,
        location: LiveBusLocation,
        trip: Optional[TripLog],
        now: datetime
    ) -> Optional[BusStop]:
        """
        Refresh next stop, distance and ETA for the coordinate just written.

        Missing inputs (no route, no stops beyond the arrival floor, unknown
        or zero speed) leave the ETA null instead of failing the write.
        """
        next_stop = None
        distance_m = None
        estimate = None
        position = (location.latitude, location.longitude)

        if location.current_route_id is not None:
            stops = await load_route_stops(db, location.current_route_id)
            next_stop = find_next_stop(stops, position)

        if next_stop is not None:
            try:
                distance_m = haversine_m(position, (next_stop.latitude, next_stop.longitude))
                if location.speed_kmh and location.speed_kmh > 0:
                    samples = await self._speed_samples(db, location.bus_id, trip)
                    estimate = eta_estimator.estimate(distance_m / 1000, samples, now)
            except (ValueError, ArithmeticError):
                logger.warning("Bus %s: ETA computation failed, leaving ETA empty", location.bus_id, exc_info=True)
                estimate = None

        location.next_stop_id = next_stop.id if next_stop else None
        location.distance_to_next_stop_m = round(distance_m, 2) if distance_m is not None else None
        location.eta_to_next_stop = estimate.eta if estimate else None
        location.eta_details = estimate.as_dict() if estimate else None

        return next_stop

    def _is_stale(self, location: LiveBusLocation, now: datetime) -> bool:
        if not location.is_location_sharing:
            return False
        reference = as_naive_utc(location.last_updated or location.trip_started_at)
        if reference is None:
            return False
        return now - reference > timedelta(minutes=settings.stale_after_minutes)

    def _to_view(
        self,
        location: LiveBusLocation,
        next_stop: Optional[BusStop],
        now: Optional[datetime] = None
    ) -> LocationView:
        now = now or datetime.utcnow()

        next_stop_view = None
        if next_stop is not None:
            next_stop_view = NextStopView(
                id=next_stop.id,
                name=next_stop.name,
                lat=next_stop.latitude,
                lng=next_stop.longitude
            )

        eta_view = None
        formatted_eta = "N/A"
        details = location.eta_details
        if details and next_stop is not None:
            eta_view = EtaView(**{**details, "confidence": eta_estimator.eta_confidence(details)})
            formatted_eta = eta_estimator.format_eta(as_naive_utc(location.eta_to_next_stop), now)

        return LocationView(
            bus_id=location.bus_id,
            driver_id=location.driver_id,
            route_id=location.current_route_id,
            is_sharing=location.is_location_sharing,
            is_stale=self._is_stale(location, now),
            latitude=location.latitude,
            longitude=location.longitude,
            speed_kmh=location.speed_kmh,
            heading=location.heading,
            accuracy_meters=location.accuracy_meters,
            last_updated=location.last_updated,
            trip_started_at=location.trip_started_at,
            next_stop=next_stop_view,
            distance_to_next_stop_meters=location.distance_to_next_stop_m,
            eta_to_next_stop=eta_view,
            formatted_eta=formatted_eta
        )

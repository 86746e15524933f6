"""
Live Bus Location database model.

One row per bus (unique bus_id). The row is the current-state cache for a
bus: it is created when a driver first starts sharing, rewritten on every
position report, and kept after sharing stops as the bus's "last seen".
"""

from sqlalchemy import Column, Integer, Float, Boolean, ForeignKey, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class LiveBusLocation(Base):
    """
    Live Bus Location model.

    Only the bus's own sharing session writes to this row. Derived fields
    (next_stop_id, distance_to_next_stop_m, eta_*) are recomputed after every
    position write, so they always describe the stored coordinate.
    """
    __tablename__ = "live_bus_locations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Single-writer key
    bus_id = Column(Integer, ForeignKey('buses.id', ondelete='CASCADE'), nullable=False, unique=True, index=True)
    driver_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Latest fix (null until the first report of a session)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    speed_kmh = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)
    accuracy_meters = Column(Float, nullable=True)

    # Session
    is_location_sharing = Column(Boolean, default=True, nullable=False, index=True)
    current_route_id = Column(Integer, ForeignKey('routes.id'), nullable=True, index=True)
    trip_started_at = Column(DateTime(timezone=True), nullable=True)

    # Derived
    next_stop_id = Column(Integer, ForeignKey('bus_stops.id', ondelete='SET NULL'), nullable=True)
    distance_to_next_stop_m = Column(Float, nullable=True)
    eta_to_next_stop = Column(DateTime(timezone=True), nullable=True)
    eta_details = Column(JSON, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_updated = Column(DateTime(timezone=True), nullable=True, index=True)

    def __repr__(self):
        return (
            f"<LiveBusLocation(bus_id={self.bus_id}, sharing={self.is_location_sharing}, "
            f"lat={self.latitude}, lng={self.longitude})>"
        )

"""
Location History database model.

Append-only log of every raw position report. Used for analytics, replay
and trip statistics; never read on the position-update hot path except for
the short speed-sample window of the active trip.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime
from sqlalchemy.sql import func
from backend.app.db.session import Base


class LocationHistory(Base):
    """Location History model (one row per fix)."""
    __tablename__ = "location_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # References
    bus_id = Column(Integer, ForeignKey('buses.id', ondelete='CASCADE'), nullable=False, index=True)
    trip_log_id = Column(Integer, ForeignKey('trip_logs.id', ondelete='CASCADE'), nullable=True, index=True)

    # GPS fix
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    speed_kmh = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)
    accuracy_meters = Column(Float, nullable=True)

    # Timing
    recorded_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<LocationHistory(bus_id={self.bus_id}, lat={self.latitude}, lng={self.longitude})>"

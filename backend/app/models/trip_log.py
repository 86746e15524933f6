"""
Trip Log database model.

A trip is the record of one sharing session: opened by start-sharing,
closed by stop-sharing with its duration, distance and average speed.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, Enum, Index, text
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.trip_enums import TripStatus


class TripLog(Base):
    """
    Trip Log model.

    Only one ACTIVE trip may exist per bus (partial unique index).
    """
    __tablename__ = "trip_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # References
    bus_id = Column(Integer, ForeignKey('buses.id', ondelete='CASCADE'), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    route_id = Column(Integer, ForeignKey('routes.id'), nullable=True, index=True)

    # Lifecycle
    status = Column(Enum(TripStatus), default=TripStatus.ACTIVE, nullable=False, index=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    # Aggregates (filled when the trip is closed)
    total_distance_km = Column(Float, nullable=True)
    total_duration_minutes = Column(Integer, nullable=True)
    average_speed_kmh = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index(
            'ix_trip_logs_active_bus', 'bus_id', unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
    )

    def __repr__(self):
        return f"<TripLog(id={self.id}, bus_id={self.bus_id}, status='{self.status.value}')>"

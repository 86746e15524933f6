"""
Bus Stop database model.

Stops belong to exactly one route. stop_order is a dense 1..N sequence,
unique within the route.
"""

from sqlalchemy import Column, Integer, String, Float, ForeignKey, DateTime, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func
from backend.app.db.session import Base


class BusStop(Base):
    """Bus Stop model."""
    __tablename__ = "bus_stops"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    route_id = Column(Integer, ForeignKey('routes.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)

    # Position in the route (1, 2, 3, ...)
    stop_order = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('route_id', 'stop_order', name='uq_bus_stops_route_order'),
        CheckConstraint('latitude >= -90 AND latitude <= 90', name='ck_bus_stops_latitude'),
        CheckConstraint('longitude >= -180 AND longitude <= 180', name='ck_bus_stops_longitude'),
    )

    def __repr__(self):
        return f"<BusStop(id={self.id}, route_id={self.route_id}, order={self.stop_order}, name='{self.name}')>"

"""
Route database model.

A route is an ordered sequence of bus stops (see BusStop.stop_order) with
an optional path geometry used by map clients.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class Route(Base):
    """Route model."""
    __tablename__ = "routes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Optional polyline: [[lat, lng], ...]
    path_geometry = Column(JSON, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Route(id={self.id}, name='{self.name}')>"

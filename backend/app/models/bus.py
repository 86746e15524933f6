"""
Bus database model.

A bus has at most one assigned driver and at most one current route.
Both assignments are changed by admins; the bus identity never changes.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base


class Bus(Base):
    """Bus model."""
    __tablename__ = "buses"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identification
    bus_number = Column(String(50), unique=True, nullable=False, index=True)
    bus_name = Column(String(255), nullable=True)
    capacity = Column(Integer, nullable=False, default=40)

    # Assignments (0..1 each)
    driver_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)
    current_route_id = Column(Integer, ForeignKey('routes.id'), nullable=True, index=True)

    # Status
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Bus(id={self.id}, number='{self.bus_number}', driver_id={self.driver_id})>"

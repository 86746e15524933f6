"""
Trip log schemas.
"""

from datetime import datetime
from typing import List, Optional

from backend.app.schemas.location import CamelModel


class TripLogResponse(CamelModel):
    """Schema for trip log response."""
    id: int
    bus_id: int
    driver_id: int
    route_id: Optional[int]
    status: str
    started_at: datetime
    ended_at: Optional[datetime]
    total_distance_km: Optional[float]
    total_duration_minutes: Optional[int]
    average_speed_kmh: Optional[float]


class TripLogListResponse(CamelModel):
    trips: List[TripLogResponse]
    count: int

"""
Live location schemas.

Wire format is camelCase (busId, speedKmh, ...); snake_case field names are
accepted on input as well.
"""

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import List, Optional


class CamelModel(BaseModel):
    """Base schema serialized with camelCase aliases."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class StartSharingRequest(CamelModel):
    """Driver starts sharing the position of their bus."""
    bus_id: int
    route_id: Optional[int] = None


class StopSharingRequest(CamelModel):
    """Driver stops sharing."""
    bus_id: int


class PositionReport(CamelModel):
    """A single GPS fix reported by the driver's device."""
    bus_id: int
    latitude: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    longitude: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    speed_kmh: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    heading: Optional[float] = Field(None, ge=0, le=360, allow_inf_nan=False)
    accuracy_meters: Optional[float] = Field(None, ge=0, allow_inf_nan=False)


class NextStopView(CamelModel):
    id: int
    name: str
    lat: float
    lng: float


class EtaView(CamelModel):
    eta: Optional[datetime]
    duration_minutes: float
    distance_km: Optional[float]
    speed_kmh: Optional[float]
    confidence: str
    is_realtime: bool
    status: Optional[str] = None


class LocationView(CamelModel):
    """Derived location of one bus, as stored and as pushed to observers."""
    bus_id: int
    driver_id: Optional[int]
    route_id: Optional[int]
    is_sharing: bool
    is_stale: bool = False
    latitude: Optional[float]
    longitude: Optional[float]
    speed_kmh: Optional[float]
    heading: Optional[float]
    accuracy_meters: Optional[float] = None
    last_updated: Optional[datetime]
    trip_started_at: Optional[datetime] = None
    next_stop: Optional[NextStopView] = None
    distance_to_next_stop_meters: Optional[float] = None
    eta_to_next_stop: Optional[EtaView] = None
    formatted_eta: str = "N/A"


class StartSharingResponse(CamelModel):
    message: str
    trip_id: int
    location: LocationView


class StopSharingResponse(CamelModel):
    message: str
    trip_id: Optional[int]
    location: LocationView


class PositionUpdateResponse(CamelModel):
    message: str
    location: LocationView


class ActiveLocationsResponse(CamelModel):
    locations: List[LocationView]
    count: int


class BusLocationResponse(CamelModel):
    location: LocationView


class LocationHistoryEntry(CamelModel):
    id: int
    bus_id: int
    trip_log_id: Optional[int]
    latitude: float
    longitude: float
    speed_kmh: Optional[float]
    heading: Optional[float]
    accuracy_meters: Optional[float]
    recorded_at: datetime


class LocationHistoryResponse(CamelModel):
    history: List[LocationHistoryEntry]
    count: int
    recent_average_speed_kmh: float

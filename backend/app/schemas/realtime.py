"""
Realtime (announcements, alerts, websocket protocol) schemas.
"""

from enum import Enum
from typing import Optional
from pydantic import Field

from backend.app.schemas.location import CamelModel


class AnnouncementLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AnnouncementRequest(CamelModel):
    message: str = Field(..., min_length=1, max_length=1000)
    level: AnnouncementLevel = AnnouncementLevel.INFO


class EmergencyAlertRequest(CamelModel):
    message: str = Field(..., min_length=1, max_length=1000)
    bus_id: Optional[int] = None


class DeliveryResponse(CamelModel):
    event: str
    delivered_to: int


class HubStatsResponse(CamelModel):
    connected_observers: int
    active_subscriptions: int
    total_subscriptions: int


class SocketAction(str, Enum):
    SUBSCRIBE = "subscribeToBus"
    UNSUBSCRIBE = "unsubscribeFromBus"
    SHARING_STATUS = "getLocationSharingStatus"


class SocketMessage(CamelModel):
    """Client -> server websocket message."""
    action: SocketAction
    bus_id: int

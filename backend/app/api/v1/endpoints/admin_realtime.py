"""
Admin Realtime API Endpoints.

Announcements and emergency alerts pushed through the websocket hub.
"""

import logging

from fastapi import APIRouter, Depends

from backend.app.schemas.realtime import (
    AnnouncementRequest, EmergencyAlertRequest, DeliveryResponse, HubStatsResponse
)
from backend.app.core.dependencies import get_hub
from backend.app.core.guards import require_admin
from backend.app.services.fanout_hub import FanoutHub, HubEvent

logger = logging.getLogger("bustracker.admin")

router = APIRouter(prefix="/admin", tags=["Admin - Realtime"])


@router.post("/announcements", response_model=DeliveryResponse, response_model_by_alias=True)
async def post_announcement(
    request: AnnouncementRequest,
    current_user: dict = Depends(require_admin),
    hub: FanoutHub = Depends(get_hub)
):
    """Broadcast a system announcement to every connected client (Admin only)."""
    delivered = await hub.broadcast_announcement(request.message, request.level.value)

    logger.info("Announcement (%s) by admin %s delivered to %s observers",
                request.level.value, current_user["user_id"], delivered)

    return DeliveryResponse(event=HubEvent.ANNOUNCEMENT, delivered_to=delivered)


@router.post("/emergency-alerts", response_model=DeliveryResponse, response_model_by_alias=True)
async def post_emergency_alert(
    request: EmergencyAlertRequest,
    current_user: dict = Depends(require_admin),
    hub: FanoutHub = Depends(get_hub)
):
    """
    Send an emergency alert (Admin only).

    With a bus ID only that bus's subscribers get it; otherwise everybody.
    """
    delivered = await hub.send_emergency_alert(request.message, request.bus_id)

    logger.warning("Emergency alert by admin %s (bus %s) delivered to %s observers",
                   current_user["user_id"], request.bus_id, delivered)

    return DeliveryResponse(event=HubEvent.EMERGENCY_ALERT, delivered_to=delivered)


@router.get("/realtime/stats", response_model=HubStatsResponse, response_model_by_alias=True)
async def get_realtime_stats(
    current_user: dict = Depends(require_admin),
    hub: FanoutHub = Depends(get_hub)
):
    """Connection and subscription counters of the hub (Admin only)."""
    stats = hub.stats()
    return HubStatsResponse(
        connected_observers=stats["connectedObservers"],
        active_subscriptions=stats["activeSubscriptions"],
        total_subscriptions=stats["totalSubscriptions"]
    )

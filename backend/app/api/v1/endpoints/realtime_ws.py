"""
Realtime WebSocket Endpoint.

Clients connect with ``/v1/ws?token=<jwt>`` and then send JSON messages:

    {"action": "subscribeToBus", "busId": 1}
    {"action": "unsubscribeFromBus", "busId": 1}
    {"action": "getLocationSharingStatus", "busId": 1}

Everything the server sends has the shape ``{"event": ..., "data": {...}}``.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.session import get_db
from backend.app.schemas.realtime import SocketAction, SocketMessage
from backend.app.core.dependencies import resolve_token
from backend.app.core.exceptions import AppException
from backend.app.services.fanout_hub import FanoutHub
from backend.app.services.live_position_store import LivePositionStore

logger = logging.getLogger("bustracker.realtime")

router = APIRouter(tags=["Realtime"])


async def handle_socket_message(
    hub: FanoutHub,
    store: LivePositionStore,
    db: AsyncSession,
    observer_id: str,
    raw: str
) -> None:
    """Dispatch one client message. Malformed messages get an error event."""
    try:
        message = SocketMessage.model_validate_json(raw)
    except ValidationError:
        await hub.send_error(observer_id, "Invalid message. Expected {action, busId}.")
        return

    bus_id = message.bus_id

    try:
        if message.action == SocketAction.SUBSCRIBE:
            await store.subscribe(db, observer_id, bus_id)
        elif message.action == SocketAction.UNSUBSCRIBE:
            await hub.unsubscribe(observer_id, bus_id)
        elif message.action == SocketAction.SHARING_STATUS:
            await hub.send_sharing_status(observer_id, await store.sharing_status(db, bus_id))
    finally:
        # Each message reads fresh state
        await db.rollback()


@router.websocket("/ws")
async def realtime_socket(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db)
):
    try:
        user = await resolve_token(token, db)
    except AppException as exc:
        logger.info("Rejected websocket connection: %s", exc.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()

    hub: FanoutHub = websocket.app.state.hub
    store: LivePositionStore = websocket.app.state.position_store

    observer_id = await hub.connect(websocket, user)
    try:
        # The hub closes and forgets connections whose sends fail
        while hub.is_connected(observer_id):
            raw = await websocket.receive_text()
            await handle_socket_message(hub, store, db, observer_id, raw)
    except WebSocketDisconnect:
        pass
    finally:
        await hub.on_disconnect(observer_id)

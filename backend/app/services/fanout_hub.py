"""
Realtime fan-out hub.

Keeps track of connected observers (websocket connections) and which buses
each of them is interested in, and pushes events to them. Delivery is
best-effort: a send that fails or times out drops the observer and closes its
connection, nothing is retried, and the failure never reaches the code that
published the event.

One instance is created in the application lifespan and shared through
``app.state.hub``. Anything with ``async send_json(data)`` and
``async close(code)`` methods can act as a connection, which is how the tests
drive it.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from backend.app.core.config import settings

logger = logging.getLogger("bustracker.realtime")

# Close code for connections the hub gives up on (RFC 6455 "internal error")
DROPPED_CLOSE_CODE = 1011


class HubEvent:
    """Event names pushed to observers."""
    CONNECTED = "connected"
    BUS_STATUS = "busStatus"
    SUBSCRIBED = "subscribedToBus"
    UNSUBSCRIBED = "unsubscribedFromBus"
    SHARING_STATUS = "locationSharingStatus"
    LOCATION_UPDATE = "locationUpdate"
    SHARING_STARTED = "locationSharingStarted"
    SHARING_STOPPED = "locationSharingStopped"
    ANNOUNCEMENT = "announcement"
    EMERGENCY_ALERT = "emergencyAlert"
    ERROR = "error"


@dataclass
class Observer:
    observer_id: str
    connection: Any
    user: Dict[str, Any]
    connected_at: datetime = field(default_factory=datetime.utcnow)


class FanoutHub:
    """
    Observer registry and event fan-out.

    The two maps are only mutated while holding ``_lock``; sends always go to
    a snapshot of the target set taken under the lock, so a slow connection
    never blocks subscribe/unsubscribe for everybody else.
    """

    def __init__(self, send_timeout: Optional[float] = None):
        self.send_timeout = settings.ws_send_timeout_seconds if send_timeout is None else send_timeout
        self._observers: Dict[str, Observer] = {}
        self._bus_subscribers: Dict[int, Set[str]] = {}
        self._lock = asyncio.Lock()

    # Connection lifecycle

    async def connect(self, connection: Any, user: Dict[str, Any]) -> str:
        """Register a connection and send it the welcome message."""
        observer = Observer(observer_id=uuid.uuid4().hex, connection=connection, user=user)

        async with self._lock:
            self._observers[observer.observer_id] = observer

        logger.info("Observer %s connected (user_id=%s, role=%s)",
                    observer.observer_id, user.get("user_id"), user.get("role"))

        await self._send(observer, HubEvent.CONNECTED, {
            "message": "Successfully connected to bus tracking system",
            "userId": user.get("user_id"),
            "role": user.get("role"),
        })
        return observer.observer_id

    async def on_disconnect(self, observer_id: str) -> None:
        """Forget an observer and remove it from every bus's interest set."""
        async with self._lock:
            observer = self._observers.pop(observer_id, None)
            for bus_id in list(self._bus_subscribers):
                subscribers = self._bus_subscribers[bus_id]
                subscribers.discard(observer_id)
                if not subscribers:
                    del self._bus_subscribers[bus_id]

        if observer is not None:
            logger.info("Observer %s disconnected (user_id=%s)", observer_id, observer.user.get("user_id"))

    # Subscription protocol

    async def subscribe(
        self,
        observer_id: str,
        bus_id: int,
        snapshot_loader: Callable[[], Awaitable[Dict[str, Any]]],
    ) -> bool:
        """
        Register interest in a bus and send the current status right away.

        Interest is registered before the snapshot is read, so an update
        published in between is delivered rather than lost. Callers that
        need the snapshot to precede every later update for the bus must
        hold the bus's write lock around this call
        (``LivePositionStore.subscribe`` does).

        Returns:
            False if the observer is unknown or was dropped while sending
        """
        async with self._lock:
            observer = self._observers.get(observer_id)
            if observer is None:
                return False
            self._bus_subscribers.setdefault(bus_id, set()).add(observer_id)

        logger.debug("Observer %s subscribed to bus %s", observer_id, bus_id)

        snapshot = await snapshot_loader()
        if not await self._send(observer, HubEvent.BUS_STATUS, snapshot):
            return False
        return await self._send(observer, HubEvent.SUBSCRIBED, {
            "busId": bus_id,
            "message": f"Subscribed to bus {bus_id} updates",
        })

    async def unsubscribe(self, observer_id: str, bus_id: int) -> bool:
        """Remove interest in a bus; empty interest sets are pruned."""
        async with self._lock:
            observer = self._observers.get(observer_id)
            subscribers = self._bus_subscribers.get(bus_id)
            if subscribers is None or observer_id not in subscribers:
                removed = False
            else:
                subscribers.discard(observer_id)
                if not subscribers:
                    del self._bus_subscribers[bus_id]
                removed = True

        if observer is not None and removed:
            await self._send(observer, HubEvent.UNSUBSCRIBED, {
                "busId": bus_id,
                "message": f"Unsubscribed from bus {bus_id} updates",
            })
        return removed

    async def send_sharing_status(self, observer_id: str, status: Dict[str, Any]) -> bool:
        """Answer a getLocationSharingStatus request."""
        observer = self._observers.get(observer_id)
        if observer is None:
            return False
        return await self._send(observer, HubEvent.SHARING_STATUS, status)

    async def send_error(self, observer_id: str, message: str) -> bool:
        observer = self._observers.get(observer_id)
        if observer is None:
            return False
        return await self._send(observer, HubEvent.ERROR, {"message": message})

    # Publishing

    async def publish(self, event: str, payload: Dict[str, Any], bus_id: Optional[int] = None) -> int:
        """
        Push an event to every observer, or only to the observers of one bus.

        Returns:
            Number of observers the event was delivered to
        """
        async with self._lock:
            if bus_id is None:
                targets = list(self._observers.values())
            else:
                targets = [
                    self._observers[observer_id]
                    for observer_id in self._bus_subscribers.get(bus_id, ())
                    if observer_id in self._observers
                ]

        return await self._deliver(targets, event, payload)

    async def send_to_user(self, user_id: int, event: str, payload: Dict[str, Any]) -> int:
        """Push an event to every connection opened by one user."""
        async with self._lock:
            targets = [o for o in self._observers.values() if o.user.get("user_id") == user_id]

        return await self._deliver(targets, event, payload)

    async def broadcast_announcement(self, message: str, level: str = "info") -> int:
        """System announcement to everybody. level: info, warning or error."""
        return await self.publish(HubEvent.ANNOUNCEMENT, {
            "message": message,
            "level": level,
            "timestamp": datetime.utcnow().isoformat(),
        })

    async def send_emergency_alert(self, message: str, bus_id: Optional[int] = None) -> int:
        """Emergency alert for one bus's observers, or for everybody."""
        return await self.publish(HubEvent.EMERGENCY_ALERT, {
            "message": message,
            "type": "emergency",
            "busId": bus_id,
            "timestamp": datetime.utcnow().isoformat(),
        }, bus_id=bus_id)

    # Introspection

    def subscribers_of(self, bus_id: int) -> Set[str]:
        return set(self._bus_subscribers.get(bus_id, ()))

    def is_connected(self, observer_id: str) -> bool:
        return observer_id in self._observers

    def user_of(self, observer_id: str) -> Optional[Dict[str, Any]]:
        observer = self._observers.get(observer_id)
        return observer.user if observer else None

    def stats(self) -> Dict[str, int]:
        return {
            "connectedObservers": len(self._observers),
            "activeSubscriptions": len(self._bus_subscribers),
            "totalSubscriptions": sum(len(s) for s in self._bus_subscribers.values()),
        }

    # Internals

    async def _deliver(self, targets: List[Observer], event: str, payload: Dict[str, Any]) -> int:
        if not targets:
            return 0

        results = await asyncio.gather(*(self._send(o, event, payload) for o in targets))
        return sum(1 for ok in results if ok)

    async def _send(self, observer: Observer, event: str, data: Dict[str, Any]) -> bool:
        """Send one event; a failed or timed-out send drops the observer."""
        try:
            await asyncio.wait_for(
                observer.connection.send_json({"event": event, "data": data}),
                timeout=self.send_timeout,
            )
            return True
        except Exception as exc:
            logger.debug("Dropping observer %s after failed %s send: %r", observer.observer_id, event, exc)

        await self._drop(observer)
        return False

    async def _drop(self, observer: Observer) -> None:
        # Unregister first, then close the socket
        await self.on_disconnect(observer.observer_id)
        try:
            await asyncio.wait_for(
                observer.connection.close(code=DROPPED_CLOSE_CODE),
                timeout=self.send_timeout,
            )
        except Exception as exc:
            logger.debug("Closing dropped observer %s failed: %r", observer.observer_id, exc)

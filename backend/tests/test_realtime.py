"""
Realtime tests: admin broadcast endpoints and the websocket message protocol.
"""

import pytest
from backend.app.api.v1.endpoints.realtime_ws import handle_socket_message
from backend.app.services.fanout_hub import HubEvent
from backend.tests.helpers import FakeConnection, auth_headers


@pytest.mark.asyncio
async def test_announcement_reaches_everyone(client, apply_overrides, campus):
    hub = apply_overrides.state.hub
    a, b = FakeConnection(), FakeConnection()
    await hub.connect(a, {"user_id": 1, "role": "PASSENGER"})
    await hub.connect(b, {"user_id": 2, "role": "DRIVER"})

    response = await client.post(
        "/v1/admin/announcements",
        json={"message": "Buses run on the holiday timetable", "level": "warning"},
        headers=auth_headers(campus["admin"])
    )

    assert response.status_code == 200
    assert response.json() == {"event": "announcement", "deliveredTo": 2}
    assert a.last(HubEvent.ANNOUNCEMENT)["level"] == "warning"


@pytest.mark.asyncio
async def test_emergency_alert_for_one_bus(client, apply_overrides, campus):
    hub = apply_overrides.state.hub
    rider, bystander = FakeConnection(), FakeConnection()
    rider_id = await hub.connect(rider, {"user_id": 1, "role": "PASSENGER"})
    await hub.connect(bystander, {"user_id": 2, "role": "PASSENGER"})

    async def snapshot():
        return {"busId": campus["bus"].id, "isActive": False}

    await hub.subscribe(rider_id, campus["bus"].id, snapshot)

    response = await client.post(
        "/v1/admin/emergency-alerts",
        json={"message": "Road closed near gate 2", "busId": campus["bus"].id},
        headers=auth_headers(campus["admin"])
    )

    assert response.json()["deliveredTo"] == 1
    assert rider.last(HubEvent.EMERGENCY_ALERT)["message"] == "Road closed near gate 2"
    assert bystander.last(HubEvent.EMERGENCY_ALERT) is None


@pytest.mark.asyncio
async def test_admin_endpoints_require_admin(client, campus):
    response = await client.post(
        "/v1/admin/announcements", json={"message": "hi"}, headers=auth_headers(campus["driver"])
    )
    assert response.status_code == 403

    response = await client.get("/v1/admin/realtime/stats", headers=auth_headers(campus["passenger"]))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_empty_announcement_is_rejected(client, campus):
    response = await client.post(
        "/v1/admin/announcements", json={"message": ""}, headers=auth_headers(campus["admin"])
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_location_updates_flow_to_subscribers(client, apply_overrides, campus, db_session):
    hub = apply_overrides.state.hub
    store = apply_overrides.state.position_store
    watcher = FakeConnection()
    observer_id = await hub.connect(watcher, {"user_id": campus["passenger"].id, "role": "PASSENGER"})
    bus_id = campus["bus"].id

    await client.post("/v1/locations/start", json={"busId": bus_id}, headers=auth_headers(campus["driver"]))
    await handle_socket_message(hub, store, db_session, observer_id, f'{{"action": "subscribeToBus", "busId": {bus_id}}}')

    assert watcher.last(HubEvent.SHARING_STARTED)["busId"] == bus_id
    assert watcher.last(HubEvent.BUS_STATUS)["isActive"] is True

    await client.put(
        "/v1/locations/update",
        json={"busId": bus_id, "latitude": 0, "longitude": 0, "speedKmh": 20},
        headers=auth_headers(campus["driver"])
    )

    update = watcher.last(HubEvent.LOCATION_UPDATE)
    assert update["location"]["nextStop"]["name"] == "S2"

    response = await client.get("/v1/admin/realtime/stats", headers=auth_headers(campus["admin"]))
    assert response.json() == {"connectedObservers": 1, "activeSubscriptions": 1, "totalSubscriptions": 1}


class TestSocketProtocol:

    async def test_subscribe_to_idle_bus(self, hub, store, db_session, campus):
        conn = FakeConnection()
        observer_id = await hub.connect(conn, {"user_id": 1, "role": "PASSENGER"})

        await handle_socket_message(hub, store, db_session, observer_id, f'{{"action": "subscribeToBus", "busId": {campus["bus"].id}}}')

        status = conn.last(HubEvent.BUS_STATUS)
        assert status == {
            "busId": campus["bus"].id,
            "isActive": False,
            "message": "Bus location sharing is not active",
        }
        assert conn.events()[-1] == HubEvent.SUBSCRIBED

    async def test_sharing_status_request(self, hub, store, db_session, campus):
        conn = FakeConnection()
        observer_id = await hub.connect(conn, {"user_id": 1, "role": "PASSENGER"})
        await store.start_sharing(db_session, campus["bus"].id, campus["driver"].id)

        await handle_socket_message(
            hub, store, db_session, observer_id,
            f'{{"action": "getLocationSharingStatus", "busId": {campus["bus"].id}}}'
        )

        assert conn.last(HubEvent.SHARING_STATUS) == {
            "busId": campus["bus"].id,
            "isSharing": True,
            "driverId": campus["driver"].id,
        }

    async def test_unsubscribe(self, hub, store, db_session, campus):
        conn = FakeConnection()
        observer_id = await hub.connect(conn, {"user_id": 1, "role": "PASSENGER"})
        bus_id = campus["bus"].id

        await handle_socket_message(hub, store, db_session, observer_id, f'{{"action": "subscribeToBus", "busId": {bus_id}}}')
        await handle_socket_message(hub, store, db_session, observer_id, f'{{"action": "unsubscribeFromBus", "busId": {bus_id}}}')

        assert conn.last(HubEvent.UNSUBSCRIBED)["busId"] == bus_id
        assert hub.subscribers_of(bus_id) == set()

    @pytest.mark.parametrize("raw", [
        "not json",
        '{"action": "dance", "busId": 1}',
        '{"action": "subscribeToBus"}',
    ])
    async def test_malformed_messages_get_an_error(self, hub, store, db_session, raw):
        conn = FakeConnection()
        observer_id = await hub.connect(conn, {"user_id": 1, "role": "PASSENGER"})

        await handle_socket_message(hub, store, db_session, observer_id, raw)

        assert conn.last(HubEvent.ERROR)["message"].startswith("Invalid message")
        assert hub.stats()["activeSubscriptions"] == 0

    async def test_dropped_connection_is_closed_and_ignored(self, hub, store, db_session, campus):
        conn = FakeConnection()
        observer_id = await hub.connect(conn, {"user_id": 1, "role": "PASSENGER"})
        conn.fail_next = True

        assert await hub.broadcast_announcement("Buses run late today") == 0
        assert conn.closed
        sent_before = len(conn.sent)

        await handle_socket_message(hub, store, db_session, observer_id, f'{{"action": "subscribeToBus", "busId": {campus["bus"].id}}}')

        assert not hub.is_connected(observer_id)
        assert len(conn.sent) == sent_before
        assert hub.stats() == {"connectedObservers": 0, "activeSubscriptions": 0, "totalSubscriptions": 0}

import asyncio
import logging
from datetime import datetime

import pytest

from socialcore.exceptions import ValidationError
from socialcore.schemas.notification_schema import NotificationPayload
from socialcore.websocket.broadcaster import Broadcaster, NOTIFICATION_EVENT
from socialcore.websocket.manager import ConnectionManager


class FailingTransport:
    async def emit_to_user(self, user_id, event, payload):
        raise RuntimeError("transport down")


async def test_initialize_only_once(caplog):
    first = ConnectionManager()
    second = ConnectionManager()
    broadcaster = Broadcaster()

    assert broadcaster.initialize(first)
    with caplog.at_level(logging.WARNING):
        assert not broadcaster.initialize(second)

    assert "already initialized" in caplog.text

    socket_owner = 1
    from_second = []

    class Recorder:
        async def send_text(self, message):
            from_second.append(message)

    await second.register_connection(socket_owner, Recorder())
    assert await broadcaster.emit(socket_owner, "ping", {}) == 0
    assert from_second == []


@pytest.mark.parametrize("event", ["", "Upper", "1st", "has space", "emoji!", None])
async def test_invalid_event_names_raise(broadcaster, event):
    with pytest.raises(ValidationError):
        await broadcaster.emit(1, event, {})

    with pytest.raises(ValidationError):
        broadcaster.dispatch(1, event, {})


async def test_offline_recipient_is_not_an_error(broadcaster):
    assert await broadcaster.emit(42, NOTIFICATION_EVENT, {"id": 1}) == 0


async def test_uninitialized_broadcaster_drops_events():
    assert await Broadcaster().emit(1, "notification:new", {}) == 0


async def test_emit_reaches_every_connection(broadcaster, connection_manager, make_socket):
    phone = make_socket()
    laptop = make_socket()
    someone_else = make_socket()
    await connection_manager.register_connection(1, phone)
    await connection_manager.register_connection(1, laptop)
    await connection_manager.register_connection(2, someone_else)

    delivered = await broadcaster.emit(1, "notification:new", {"id": 5})

    assert delivered == 2
    assert phone.frames == [{"event": "notification:new", "data": {"id": 5}}]
    assert laptop.frames == phone.frames
    assert someone_else.frames == []


async def test_broken_connection_is_dropped(broadcaster, connection_manager, make_socket):
    healthy = make_socket()
    broken = make_socket(broken=True)
    await connection_manager.register_connection(1, healthy)
    await connection_manager.register_connection(1, broken)

    assert await broadcaster.emit(1, "notification:new", {}) == 1
    assert await connection_manager.get_total_connections_count() == 1

    assert await connection_manager.unregister_connection(healthy) == 1
    assert await connection_manager.get_connected_users_count() == 0
    assert await connection_manager.unregister_connection(healthy) is None


async def test_dispatch_runs_in_background(broadcaster, connection_manager, make_socket):
    socket = make_socket()
    await connection_manager.register_connection(7, socket)

    broadcaster.dispatch(7, "notification:new", {"id": 1})
    assert socket.frames == []

    await broadcaster.drain()
    assert socket.events() == ["notification:new"]


async def test_transport_failure_is_logged_not_raised(caplog):
    broadcaster = Broadcaster()
    broadcaster.initialize(FailingTransport())

    with caplog.at_level(logging.ERROR):
        assert await broadcaster.emit(1, "notification:new", {}) == 0
        broadcaster.dispatch(1, "notification:new", {})
        await broadcaster.drain()

    assert "transport down" in caplog.text


async def test_emit_to_all(broadcaster, connection_manager, make_socket):
    sockets = [make_socket() for _ in range(3)]
    for user_id, socket in enumerate(sockets, start=1):
        await connection_manager.register_connection(user_id, socket)

    assert await broadcaster.emit_to_all("maintenance:scheduled", {"at": "02:00"}) == 3
    assert all(socket.events() == ["maintenance:scheduled"] for socket in sockets)


async def test_concurrent_registration(connection_manager, make_socket):
    sockets = [make_socket() for _ in range(20)]

    await asyncio.gather(*(connection_manager.register_connection(i % 4, s) for i, s in enumerate(sockets)))

    assert await connection_manager.get_connected_users_count() == 4
    assert await connection_manager.get_total_connections_count() == 20


async def test_is_initialized():
    broadcaster = Broadcaster()
    assert not broadcaster.is_initialized

    broadcaster.initialize(ConnectionManager())
    assert broadcaster.is_initialized


async def test_broadcast_sends_camel_case_payload(broadcaster, connection_manager, make_socket):
    socket = make_socket()
    await connection_manager.register_connection(7, socket)

    payload = NotificationPayload(
        id=3,
        type="like",
        actor_id=2,
        recipient_id=7,
        entity_id="11",
        content="liked your post",
        created_at=datetime(2024, 1, 1, 12, 0, 0),
    )

    assert await broadcaster.broadcast(payload) == 1
    assert socket.events() == [NOTIFICATION_EVENT]
    data = socket.frames[0]["data"]
    assert data["actorId"] == 2
    assert data["recipientId"] == 7
    assert data["entityId"] == "11"

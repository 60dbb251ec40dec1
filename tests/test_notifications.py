"""Tests for the notification store and the WebSocket broadcast channel."""

from __future__ import annotations

import asyncio
import json

import pytest
from starlette.websockets import WebSocketState

from server.notifications import MAX_NOTIFICATIONS, NotificationStore
from server.stats import StatisticsRecorder
from server.websocket import WebSocketManager


@pytest.fixture
def stats() -> StatisticsRecorder:
    return StatisticsRecorder()


@pytest.fixture
def ws_manager(stats) -> WebSocketManager:
    return WebSocketManager(stats, version="1.0.0")


@pytest.fixture
def store(ws_manager) -> NotificationStore:
    return NotificationStore(ws_manager)


def _add_many(store: NotificationStore, count: int) -> list:
    async def run():
        return [await store.add("info", f"n{i}", f"message {i}") for i in range(count)]

    return asyncio.run(run())


def test_add_returns_stored_notification(store) -> None:
    created = _add_many(store, 1)[0]

    assert created.category == "info"
    assert created.read is False
    assert store.list() == [created]


def test_store_is_newest_first_with_increasing_ids(store) -> None:
    created = _add_many(store, 5)

    listed = store.list()
    assert [n.title for n in listed] == ["n4", "n3", "n2", "n1", "n0"]
    assert [n.id for n in created] == sorted({n.id for n in created})


def test_store_evicts_oldest_beyond_capacity(store) -> None:
    created = _add_many(store, MAX_NOTIFICATIONS + 1)

    listed = store.list()
    assert len(listed) == MAX_NOTIFICATIONS
    assert created[0].id not in {n.id for n in listed}
    assert listed[0].id == created[-1].id
    assert [n.id for n in listed] == sorted((n.id for n in listed), reverse=True)


def test_unknown_category_is_rejected(store) -> None:
    with pytest.raises(ValueError):
        asyncio.run(store.add("chatter", "t", "m"))


def test_mark_read_is_idempotent(store) -> None:
    first, second = _add_many(store, 2)

    store.mark_read({first.id})
    once = [n.to_dict() for n in store.list()]
    store.mark_read({first.id})
    twice = [n.to_dict() for n in store.list()]

    assert once == twice
    assert first.read is True
    assert second.read is False
    assert store.unread_count() == 1


def test_mark_read_ignores_unknown_and_empty_ids(store) -> None:
    _add_many(store, 2)

    assert store.mark_read(set()) == 0
    assert store.mark_read({-1, 12345}) == 0
    assert store.unread_count() == 2


def test_add_broadcasts_notification(store, ws_manager, make_socket) -> None:
    socket = make_socket()

    async def run():
        await ws_manager.connect(socket)
        return await store.add("error", "Oops", "Something failed")

    created = asyncio.run(run())

    greeting, event = (json.loads(text) for text in socket.sent)
    assert greeting["type"] == "welcome"
    assert greeting["data"]["message"] == "Hello from server"
    assert event["type"] == "notification"
    assert event["data"] == created.to_dict()


def test_connect_and_disconnect_update_counters(ws_manager, stats, make_socket) -> None:
    sockets = [make_socket() for _ in range(3)]

    async def run():
        for socket in sockets:
            await ws_manager.connect(socket)

    asyncio.run(run())
    assert ws_manager.client_count == 3
    assert stats.connections_current == stats.connections_peak == 3

    ws_manager.disconnect(sockets[0])
    ws_manager.disconnect(sockets[0])

    assert ws_manager.client_count == 2
    assert stats.connections_current == 2
    assert stats.connections_peak == 3


def test_broadcast_survives_failing_and_closed_sockets(ws_manager, stats, make_socket) -> None:
    healthy, broken, closed = make_socket(), make_socket(), make_socket()

    async def run():
        for socket in (healthy, broken, closed):
            await ws_manager.connect(socket)
        broken.fail = True
        closed.client_state = WebSocketState.DISCONNECTED
        closed.sent.clear()
        await ws_manager.broadcast("info", {"x": 1})

    asyncio.run(run())

    event = json.loads(healthy.sent[-1])
    assert event["type"] == "info"
    assert event["data"] == {"x": 1}
    assert "timestamp" in event
    assert closed.sent == []
    assert stats.errors_total == 1
    assert "socket broken" in stats.last_error["message"]
    assert ws_manager.client_count == 3


def test_broadcast_tolerates_disconnect_during_delivery(ws_manager, make_socket) -> None:
    first, second = make_socket(), make_socket()

    class Disconnecting(type(first)):
        async def send_text(self, text: str) -> None:
            await super().send_text(text)
            ws_manager.disconnect(second)

    trigger = Disconnecting()

    async def run():
        for socket in (trigger, first, second):
            await ws_manager.connect(socket)
        await ws_manager.broadcast("info", {})

    asyncio.run(run())

    assert ws_manager.client_count == 2

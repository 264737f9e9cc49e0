from __future__ import annotations

import time

from conftest import settle


async def test_join_creates_room_and_returns_size(registry, stats, make_connection):
    a = make_connection("A")
    assert await registry.join("movie1", a) == 1
    assert registry.room_ids() == ["movie1"]
    assert stats.rooms_created == 1


async def test_duplicate_join_does_not_double_count(registry, make_connection):
    a = make_connection("A")
    await registry.join("movie1", a)
    assert await registry.join("movie1", a) == 1
    assert registry.room_size("movie1") == 1


async def test_second_member_announcements(registry, make_connection):
    a = make_connection("A")
    b = make_connection("B")
    await registry.join("movie1", a)
    await settle()
    a.websocket.sent.clear()

    await registry.join("movie1", b)
    await settle()

    assert a.websocket.types() == ["user_joined"]
    joined = a.websocket.sent[0]
    assert joined["clientId"] == "B"
    assert joined["roomSize"] == 2

    assert b.websocket.types() == ["connected", "room_info"]
    ack, info = b.websocket.sent
    assert ack == {"type": "connected", "clientId": "B", "roomId": "movie1", "roomSize": 2, "timestamp": ack["timestamp"]}
    assert info["clients"] == ["A"]
    assert info["roomSize"] == 2


async def test_leave_marks_room_empty_without_deleting(registry, make_connection):
    a = make_connection("A")
    await registry.join("movie1", a)
    created_at = registry.get("movie1").created_at

    assert await registry.leave("movie1", a, 1000, "bye") is True
    room = registry.get("movie1")
    assert room is not None
    assert room.size == 0
    assert room.empty_since is not None

    again = make_connection("A2")
    await registry.join("movie1", again)
    room = registry.get("movie1")
    assert room.created_at == created_at
    assert room.empty_since is None
    assert registry.stats.rooms_created == 1


async def test_leave_is_idempotent(registry, make_connection):
    a = make_connection("A")
    b = make_connection("B")
    await registry.join("movie1", a)
    await registry.join("movie1", b)
    await settle()
    b.websocket.sent.clear()

    assert await registry.leave("movie1", a, 1000, "") is True
    assert await registry.leave("movie1", a, 1000, "") is False
    assert await registry.leave("elsewhere", a, 1000, "") is False
    await settle()

    left = b.websocket.of_type("user_left")
    assert len(left) == 1
    assert left[0]["clientId"] == "A"
    assert left[0]["roomSize"] == 1


async def test_broadcast_excludes_sender(registry, make_connection):
    members = [make_connection(cid) for cid in ("A", "B", "C")]
    for conn in members:
        await registry.join("movie1", conn)

    assert registry.broadcast("movie1", members[0], {"type": "play"}) == 2
    assert registry.broadcast("movie1", None, {"type": "chat_message"}) == 3


async def test_broadcast_to_lone_sender_reaches_nobody(registry, make_connection):
    a = make_connection("A")
    await registry.join("movie1", a)
    assert registry.broadcast("movie1", a, {"type": "play"}) == 0
    assert registry.broadcast("missing", None, {"type": "play"}) == 0


async def test_broadcast_skips_closing_members(registry, make_connection):
    a = make_connection("A")
    b = make_connection("B")
    c = make_connection("C")
    for conn in (a, b, c):
        await registry.join("movie1", conn)
    await c.close(1000, "leaving")

    assert registry.broadcast("movie1", a, {"type": "pause"}) == 1


async def test_rooms_are_isolated(registry, make_connection):
    a = make_connection("A", "movie1")
    b = make_connection("B", "movie2")
    await registry.join("movie1", a)
    await registry.join("movie2", b)
    await settle()
    b.websocket.sent.clear()

    registry.broadcast("movie1", None, {"type": "chat_message"})
    await settle()
    assert b.websocket.sent == []


async def test_reap_respects_grace_period(registry, make_connection):
    a = make_connection("A", "old")
    b = make_connection("B", "fresh")
    c = make_connection("C", "busy")
    for conn in (a, b, c):
        await registry.join(conn.room_id, conn)
    await registry.leave("old", a)
    await registry.leave("fresh", b)
    registry.get("old").empty_since = time.monotonic() - 301

    removed = await registry.reap_empty_rooms(300)

    assert removed == ["old"]
    assert sorted(registry.room_ids()) == ["busy", "fresh"]


async def test_join_after_reap_creates_new_room(registry, make_connection):
    a = make_connection("A")
    await registry.join("movie1", a)
    await registry.leave("movie1", a)
    await registry.reap_empty_rooms(300, now=time.monotonic() + 301)
    assert registry.get("movie1") is None

    b = make_connection("B")
    assert await registry.join("movie1", b) == 1
    assert registry.stats.rooms_created == 2


async def test_snapshot_lists_members(registry, make_connection):
    a = make_connection("A")
    b = make_connection("B")
    await registry.join("movie1", a)
    await registry.join("movie1", b)

    info = registry.snapshot()["movie1"]
    assert info.clientCount == 2
    assert sorted(info.clientIds) == ["A", "B"]
    assert info.createdAt == registry.get("movie1").created_at

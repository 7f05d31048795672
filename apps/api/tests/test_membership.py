"""Tests for room admission, peer discovery and teardown."""
from __future__ import annotations

import asyncio

import pytest

from codepair.schemas.events import Delivery, OutboundEvent
from codepair.services.locks import KeyedLock
from codepair.services.membership import MembershipController
from codepair.services.registry import ConnectionRegistry
from codepair.services.rooms import RoomTable


@pytest.fixture
def state():
    table = RoomTable()
    registry = ConnectionRegistry()
    controller = MembershipController(table, registry, KeyedLock())
    return table, registry, controller


def assert_index_consistent(table: RoomTable, registry: ConnectionRegistry) -> None:
    seen: dict[str, str] = {}
    for room in table:
        assert 0 < len(room.members) <= 2
        for member in room.members:
            assert member not in seen
            seen[member] = room.room_id
    assert len(registry) == len(seen)
    for connection_id, room_id in seen.items():
        assert registry.room_of(connection_id) == room_id


@pytest.mark.asyncio
async def test_first_join_creates_room_without_notification(state):
    table, registry, controller = state

    deliveries = await controller.join("a", "room1")

    assert deliveries == []
    assert controller.members("room1") == ["a"]
    assert registry.room_of("a") == "room1"


@pytest.mark.asyncio
async def test_second_join_notifies_newcomer_only(state):
    table, registry, controller = state
    await controller.join("a", "room1")

    deliveries = await controller.join("b", "room1")

    assert deliveries == [Delivery("b", OutboundEvent.USER_JOINED, {"socketId": "a"})]
    assert controller.members("room1") == ["a", "b"]
    assert_index_consistent(table, registry)


@pytest.mark.asyncio
async def test_third_join_is_turned_away(state):
    table, registry, controller = state
    await controller.join("a", "room1")
    await controller.join("b", "room1")

    deliveries = await controller.join("c", "room1")

    assert deliveries == [Delivery("c", OutboundEvent.ROOM_FULL, {"roomId": "room1"})]
    assert controller.members("room1") == ["a", "b"]
    assert registry.room_of("c") is None
    assert_index_consistent(table, registry)


@pytest.mark.asyncio
async def test_rejoin_does_not_duplicate_member(state):
    table, registry, controller = state
    await controller.join("a", "room1")
    await controller.join("b", "room1")

    deliveries = await controller.join("a", "room1")

    assert controller.members("room1") == ["a", "b"]
    assert deliveries == [Delivery("a", OutboundEvent.USER_JOINED, {"socketId": "b"})]
    assert (await controller.join("a", "room1")) == deliveries


@pytest.mark.asyncio
async def test_leave_notifies_remaining_member(state):
    table, registry, controller = state
    await controller.join("a", "room1")
    await controller.join("b", "room1")

    deliveries = await controller.leave("a", "room1")

    assert deliveries == [Delivery("b", OutboundEvent.USER_LEFT, {"socketId": "a"})]
    assert controller.members("room1") == ["b"]
    assert registry.room_of("a") is None
    assert_index_consistent(table, registry)


@pytest.mark.asyncio
async def test_last_leave_deletes_room(state):
    table, registry, controller = state
    await controller.join("a", "room1")
    table.get("room1").history.append(object())

    deliveries = await controller.leave("a", "room1")

    assert deliveries == []
    assert "room1" not in table
    assert len(registry) == 0

    await controller.join("b", "room1")
    assert table.get("room1").history == []


@pytest.mark.asyncio
async def test_leave_unknown_room_or_member_is_noop(state):
    table, registry, controller = state
    await controller.join("a", "room1")

    assert await controller.leave("ghost", "room1") == []
    assert await controller.leave("a", "elsewhere") == []
    assert controller.members("room1") == ["a"]
    assert registry.room_of("a") == "room1"


@pytest.mark.asyncio
async def test_disconnect_behaves_like_leave(state):
    table, registry, controller = state
    await controller.join("a", "room1")
    await controller.join("b", "room1")

    deliveries = await controller.disconnect("a")

    assert deliveries == [Delivery("b", OutboundEvent.USER_LEFT, {"socketId": "a"})]
    assert await controller.disconnect("a") == []
    assert await controller.disconnect("never-joined") == []


@pytest.mark.asyncio
async def test_existing_peers_excludes_requester(state):
    _, _, controller = state
    await controller.join("a", "room1")
    await controller.join("b", "room1")

    assert await controller.existing_peers("b", "room1") == [
        Delivery("b", OutboundEvent.EXISTING_PEERS, ["a"])
    ]
    assert await controller.existing_peers("x", "nowhere") == [
        Delivery("x", OutboundEvent.EXISTING_PEERS, [])
    ]


@pytest.mark.asyncio
async def test_switching_rooms_leaves_previous_room(state):
    table, registry, controller = state
    await controller.join("a", "room1")
    await controller.join("b", "room1")

    deliveries = await controller.join("a", "room2")

    assert deliveries == [Delivery("b", OutboundEvent.USER_LEFT, {"socketId": "a"})]
    assert controller.members("room1") == ["b"]
    assert controller.members("room2") == ["a"]
    assert registry.room_of("a") == "room2"
    assert_index_consistent(table, registry)


@pytest.mark.asyncio
async def test_switching_into_full_room_keeps_old_membership(state):
    table, registry, controller = state
    await controller.join("a", "room1")
    await controller.join("x", "room2")
    await controller.join("y", "room2")

    deliveries = await controller.join("a", "room2")

    assert deliveries == [Delivery("a", OutboundEvent.ROOM_FULL, {"roomId": "room2"})]
    assert controller.members("room1") == ["a"]
    assert controller.members("room2") == ["x", "y"]
    assert_index_consistent(table, registry)


@pytest.mark.asyncio
async def test_concurrent_joins_respect_capacity(state):
    table, registry, controller = state
    connections = [f"c{i}" for i in range(10)]

    results = await asyncio.gather(*(controller.join(conn, "busy") for conn in connections))

    assert len(controller.members("busy")) == 2
    full = [deliveries for deliveries in results if deliveries and deliveries[0].event is OutboundEvent.ROOM_FULL]
    assert len(full) == 8
    assert_index_consistent(table, registry)


@pytest.mark.asyncio
async def test_concurrent_activity_across_rooms(state):
    table, registry, controller = state

    async def pair_session(index: int) -> None:
        room_id = f"room-{index}"
        await controller.join(f"{index}-a", room_id)
        await controller.join(f"{index}-b", room_id)
        await controller.disconnect(f"{index}-a")
        if index % 2:
            await controller.leave(f"{index}-b", room_id)

    await asyncio.gather(*(pair_session(i) for i in range(20)))

    assert len(table) == 10
    assert all(room.members == [f"{room.room_id[5:]}-b"] for room in table)
    assert_index_consistent(table, registry)


@pytest.mark.asyncio
async def test_join_racing_last_leave_sees_fresh_room(state):
    table, registry, controller = state
    await controller.join("a", "room1")
    table.get("room1").history.append(object())

    await asyncio.gather(controller.disconnect("a"), controller.join("b", "room1"))

    room = table.get("room1")
    assert room is not None
    assert room.members == ["b"]
    assert_index_consistent(table, registry)

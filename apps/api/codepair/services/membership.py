"""Room membership state machine: admission, peer discovery and teardown."""
from __future__ import annotations

import logging

from ..schemas.events import Delivery, OutboundEvent
from .locks import KeyedLock
from .registry import ConnectionRegistry
from .rooms import RoomTable

logger = logging.getLogger(__name__)


class MembershipController:
    """Apply join and leave transitions under the room's lock.

    Every transition returns the deliveries it produced instead of sending them,
    so the caller can do network I/O after the lock is released.
    """

    def __init__(self, table: RoomTable, registry: ConnectionRegistry, locks: KeyedLock) -> None:
        self._table = table
        self._registry = registry
        self._locks = locks

    async def join(self, connection_id: str, room_id: str) -> list[Delivery]:
        """Admit a connection, or answer ``room-full`` without touching state.

        A connection that already sits in another room is moved atomically: both
        rooms are locked, and the old membership is only given up once the new
        room is known to have space.
        """

        while True:
            previous = self._registry.room_of(connection_id)
            keys = [room_id] if previous in (None, room_id) else [room_id, previous]
            async with self._locks.hold_many(*keys):
                if self._registry.room_of(connection_id) != previous:
                    continue
                return self._join_locked(connection_id, room_id, previous)

    async def leave(self, connection_id: str, room_id: str) -> list[Delivery]:
        async with self._locks.hold(room_id):
            return self._leave_locked(connection_id, room_id)

    async def disconnect(self, connection_id: str) -> list[Delivery]:
        """Leave whatever room the connection is in; unknown connections are a no-op."""

        room_id = self._registry.room_of(connection_id)
        if room_id is None:
            return []
        return await self.leave(connection_id, room_id)

    async def existing_peers(self, connection_id: str, room_id: str) -> list[Delivery]:
        async with self._locks.hold(room_id):
            peers = self.peers_of(room_id, connection_id)
        return [Delivery(connection_id, OutboundEvent.EXISTING_PEERS, peers)]

    def peers_of(self, room_id: str, connection_id: str) -> list[str]:
        """Current members other than ``connection_id``. Caller holds the room lock."""

        room = self._table.get(room_id)
        if room is None:
            return []
        return room.peers_of(connection_id)

    def members(self, room_id: str) -> list[str]:
        room = self._table.get(room_id)
        return list(room.members) if room is not None else []

    def _join_locked(self, connection_id: str, room_id: str, previous: str | None) -> list[Delivery]:
        room = self._table.get(room_id)
        if room is not None and room.is_full and not room.has_member(connection_id):
            logger.info("Room %s is full, turning away %s", room_id, connection_id)
            return [Delivery(connection_id, OutboundEvent.ROOM_FULL, {"roomId": room_id})]

        deliveries: list[Delivery] = []
        if previous is not None and previous != room_id:
            deliveries.extend(self._leave_locked(connection_id, previous))

        room = self._table.get_or_create(room_id)
        if not room.has_member(connection_id):
            room.members.append(connection_id)
            self._registry.bind(connection_id, room_id)
            logger.info("%s joined room %s (%d/2)", connection_id, room_id, len(room.members))

        peers = room.peers_of(connection_id)
        if peers:
            deliveries.append(Delivery(connection_id, OutboundEvent.USER_JOINED, {"socketId": peers[0]}))
            logger.debug("Sent user-joined to %s for peer %s", connection_id, peers[0])
        return deliveries

    def _leave_locked(self, connection_id: str, room_id: str) -> list[Delivery]:
        self._registry.unbind(connection_id, room_id)
        room = self._table.get(room_id)
        if room is None or not room.has_member(connection_id):
            return []

        room.members.remove(connection_id)
        remaining = list(room.members)
        if not remaining:
            self._table.discard(room_id)
            logger.info("Room %s is empty, dropped with %d chat messages", room_id, len(room.history))
        logger.info("%s left room %s", connection_id, room_id)

        return [
            Delivery(peer_id, OutboundEvent.USER_LEFT, {"socketId": connection_id})
            for peer_id in remaining
        ]

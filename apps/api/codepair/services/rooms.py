"""In-memory room table: members and chat history per room key."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional

from ..schemas.events import ChatMessage

ROOM_CAPACITY = 2


@dataclass(slots=True)
class Room:
    """A pairing session. Members are kept in join order."""

    room_id: str
    members: list[str] = field(default_factory=list)
    history: list[ChatMessage] = field(default_factory=list)

    @property
    def is_full(self) -> bool:
        return len(self.members) >= ROOM_CAPACITY

    def has_member(self, connection_id: str) -> bool:
        return connection_id in self.members

    def peers_of(self, connection_id: str) -> list[str]:
        return [member for member in self.members if member != connection_id]


class RoomTable:
    """Room id -> Room. Empty rooms are never kept."""

    def __init__(self) -> None:
        self._rooms: Dict[str, Room] = {}

    def get(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def get_or_create(self, room_id: str) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(room_id=room_id)
            self._rooms[room_id] = room
        return room

    def discard(self, room_id: str) -> Optional[Room]:
        return self._rooms.pop(room_id, None)

    def clear(self) -> None:
        self._rooms.clear()

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._rooms

    def __iter__(self) -> Iterator[Room]:
        return iter(list(self._rooms.values()))

    def __len__(self) -> int:
        return len(self._rooms)

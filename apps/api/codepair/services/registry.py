"""Reverse index from live connections to the room they currently occupy."""
from __future__ import annotations

from typing import Dict, Optional


class ConnectionRegistry:
    """Connection id -> room id lookup kept in lockstep with room membership."""

    def __init__(self) -> None:
        self._rooms: Dict[str, str] = {}

    def bind(self, connection_id: str, room_id: str) -> None:
        self._rooms[connection_id] = room_id

    def unbind(self, connection_id: str, room_id: str) -> bool:
        """Drop the entry only if it still points at ``room_id``."""

        if self._rooms.get(connection_id) != room_id:
            return False
        del self._rooms[connection_id]
        return True

    def room_of(self, connection_id: str) -> Optional[str]:
        return self._rooms.get(connection_id)

    def clear(self) -> None:
        self._rooms.clear()

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

"""Per-room chat log that lives and dies with its room."""
from __future__ import annotations

from ..schemas.events import ChatMessage
from .rooms import RoomTable


class ChatHistoryStore:
    """Append and read chat messages stored on the owning room.

    Callers hold the room lock. The log has no storage of its own, so deleting a
    room from the table deletes its history in the same step.
    """

    def __init__(self, table: RoomTable) -> None:
        self._table = table

    def append(self, room_id: str, message: ChatMessage) -> bool:
        """Append in arrival order; a vanished room makes this a no-op."""

        room = self._table.get(room_id)
        if room is None:
            return False
        room.history.append(message)
        return True

    def fetch(self, room_id: str) -> list[ChatMessage]:
        room = self._table.get(room_id)
        if room is None:
            return []
        return list(room.history)

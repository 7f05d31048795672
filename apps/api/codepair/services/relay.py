"""Directed and room-broadcast forwarding of session traffic."""
from __future__ import annotations

import logging
import time
from typing import Any, Callable

from ..schemas.events import ChatMessage, Delivery, OutboundEvent
from .chat import ChatHistoryStore
from .locks import KeyedLock
from .membership import MembershipController

logger = logging.getLogger(__name__)

Clock = Callable[[], int]


def _now_ms() -> int:
    return int(time.time() * 1000)


class RelayDispatcher:
    """Address payloads without looking inside them.

    Broadcast recipients are read from the membership view at dispatch time,
    under the room lock, and always exclude the sender.
    """

    def __init__(
        self,
        membership: MembershipController,
        history: ChatHistoryStore,
        locks: KeyedLock,
        clock: Clock | None = None,
    ) -> None:
        self._membership = membership
        self._history = history
        self._locks = locks
        self._clock = clock or _now_ms

    def direct(self, sender_id: str, target_id: str, event: OutboundEvent, key: str, payload: Any) -> list[Delivery]:
        """Forward to one named connection. The target is not checked against any room."""

        logger.debug("Relaying %s from %s to %s", event.value, sender_id, target_id)
        return [Delivery(target_id, event, {key: payload, "from": sender_id})]

    async def broadcast(self, room_id: str, sender_id: str, event: OutboundEvent, data: Any) -> list[Delivery]:
        async with self._locks.hold(room_id):
            recipients = self._membership.peers_of(room_id, sender_id)
        logger.debug("Broadcasting %s in room %s to %d peers", event.value, room_id, len(recipients))
        return [Delivery(peer_id, event, data) for peer_id in recipients]

    async def cursor_change(self, room_id: str, sender_id: str, cursor_data: Any) -> list[Delivery]:
        return await self.broadcast(
            room_id,
            sender_id,
            OutboundEvent.CURSOR_CHANGE,
            {"cursorData": cursor_data, "senderId": sender_id},
        )

    async def send_message(self, room_id: str, sender_id: str, text: str) -> list[Delivery]:
        """Record the message in the room's history, then fan it out."""

        message = ChatMessage(sender_id=sender_id, text=text, timestamp=self._clock())
        async with self._locks.hold(room_id):
            if not self._history.append(room_id, message):
                logger.debug("Room %s is gone, chat message from %s not stored", room_id, sender_id)
            recipients = self._membership.peers_of(room_id, sender_id)
        payload = message.to_payload()
        return [Delivery(peer_id, OutboundEvent.RECEIVE_MESSAGE, payload) for peer_id in recipients]

    async def chat_history(self, requester_id: str, room_id: str) -> list[Delivery]:
        async with self._locks.hold(room_id):
            messages = self._history.fetch(room_id)
        return [
            Delivery(requester_id, OutboundEvent.CHAT_HISTORY, [message.to_payload() for message in messages])
        ]

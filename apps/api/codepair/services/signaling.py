"""In-memory signaling hub for two-party rooms."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable

from pydantic import BaseModel, ValidationError

from ..schemas import events as schemas
from ..schemas.events import Delivery, InboundEvent, OutboundEvent
from .chat import ChatHistoryStore
from .locks import KeyedLock
from .membership import MembershipController
from .registry import ConnectionRegistry
from .relay import Clock, RelayDispatcher
from .rooms import RoomTable

logger = logging.getLogger(__name__)

SendCallable = Callable[[dict], Awaitable[None]]
Handler = Callable[[str, Any], Awaitable[list[Delivery]]]


@dataclass(slots=True)
class SignalingConnection:
    """Connection wrapper for signaling participants."""

    connection_id: str
    send: SendCallable


class SignalingHub:
    """Own all room state and route inbound events to their handlers.

    Handlers only compute deliveries; sending happens here once every room lock
    has been released.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._connections: Dict[str, SignalingConnection] = {}
        self._locks = KeyedLock()
        self.rooms = RoomTable()
        self.registry = ConnectionRegistry()
        self.history = ChatHistoryStore(self.rooms)
        self.membership = MembershipController(self.rooms, self.registry, self._locks)
        self.relay = RelayDispatcher(self.membership, self.history, self._locks, clock=clock)
        self._handlers: Dict[InboundEvent, tuple[type[BaseModel], Handler]] = {
            InboundEvent.JOIN_ROOM: (schemas.RoomRequest, self._on_join_room),
            InboundEvent.LEAVE_ROOM: (schemas.RoomRequest, self._on_leave_room),
            InboundEvent.GET_EXISTING_PEERS: (schemas.RoomRequest, self._on_get_existing_peers),
            InboundEvent.GET_CHAT_HISTORY: (schemas.RoomRequest, self._on_get_chat_history),
            InboundEvent.SEND_OFFER: (schemas.OfferRequest, self._on_send_offer),
            InboundEvent.SEND_ANSWER: (schemas.AnswerRequest, self._on_send_answer),
            InboundEvent.SEND_ICE_CANDIDATE: (schemas.IceCandidateRequest, self._on_send_ice_candidate),
            InboundEvent.CODE_CHANGE: (schemas.CodeChangeRequest, self._on_code_change),
            InboundEvent.CURSOR_CHANGE: (schemas.CursorChangeRequest, self._on_cursor_change),
            InboundEvent.LANGUAGE_CHANGE: (schemas.LanguageChangeRequest, self._on_language_change),
            InboundEvent.SEND_MESSAGE: (schemas.SendMessageRequest, self._on_send_message),
        }

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, connection: SignalingConnection) -> None:
        """Register a live endpoint and tell the client its own id."""

        self._connections[connection.connection_id] = connection
        logger.info("New connection %s", connection.connection_id)
        await self.deliver(
            [Delivery(connection.connection_id, OutboundEvent.CONNECTED, {"socketId": connection.connection_id})]
        )

    async def disconnect(self, connection_id: str) -> None:
        """Transport-level disconnect: same transition as an explicit leave."""

        deliveries = await self.membership.disconnect(connection_id)
        self._connections.pop(connection_id, None)
        logger.info("Connection %s disconnected", connection_id)
        await self.deliver(deliveries)

    async def handle_frame(self, connection_id: str, frame: str | bytes) -> None:
        """Decode one raw transport frame and dispatch it."""

        try:
            envelope = schemas.Envelope.model_validate_json(frame)
        except ValidationError as exc:
            logger.warning("Dropping malformed frame from %s: %s", connection_id, exc.errors()[0]["msg"])
            return
        await self.dispatch(connection_id, envelope.event, envelope.data)

    async def dispatch(self, connection_id: str, event: str, data: Any) -> None:
        try:
            kind = InboundEvent(event)
        except ValueError:
            logger.warning("Ignoring unknown event %r from %s", event, connection_id)
            return

        schema, handler = self._handlers[kind]
        try:
            payload = schema.model_validate(data)
        except ValidationError as exc:
            logger.warning("Ignoring invalid %s payload from %s: %s", kind.value, connection_id, exc)
            return

        deliveries = await handler(connection_id, payload)
        await self.deliver(deliveries)

    async def deliver(self, deliveries: Iterable[Delivery]) -> None:
        """Best-effort fan-out; failures are logged and never retried."""

        pending: list[Delivery] = []
        tasks = []
        for delivery in deliveries:
            connection = self._connections.get(delivery.target)
            if connection is None:
                logger.debug("Dropping %s for unknown connection %s", delivery.event.value, delivery.target)
                continue
            pending.append(delivery)
            tasks.append(connection.send(delivery.to_message()))

        if not tasks:
            return

        results = await asyncio.gather(*tasks, return_exceptions=True)
        for delivery, result in zip(pending, results):
            if isinstance(result, Exception):
                logger.warning("Failed to send %s to %s: %s", delivery.event.value, delivery.target, result)

    async def shutdown(self) -> None:
        """Forget every room, index entry and endpoint."""

        logger.info(
            "Shutting down signaling hub with %d rooms and %d connections", len(self.rooms), len(self._connections)
        )
        self.rooms.clear()
        self.registry.clear()
        self._connections.clear()

    async def _on_join_room(self, connection_id: str, payload: schemas.RoomRequest) -> list[Delivery]:
        return await self.membership.join(connection_id, payload.room_id)

    async def _on_leave_room(self, connection_id: str, payload: schemas.RoomRequest) -> list[Delivery]:
        return await self.membership.leave(connection_id, payload.room_id)

    async def _on_get_existing_peers(self, connection_id: str, payload: schemas.RoomRequest) -> list[Delivery]:
        return await self.membership.existing_peers(connection_id, payload.room_id)

    async def _on_get_chat_history(self, connection_id: str, payload: schemas.RoomRequest) -> list[Delivery]:
        return await self.relay.chat_history(connection_id, payload.room_id)

    async def _on_send_offer(self, connection_id: str, payload: schemas.OfferRequest) -> list[Delivery]:
        return self.relay.direct(connection_id, payload.to, OutboundEvent.RECEIVE_OFFER, "offer", payload.offer)

    async def _on_send_answer(self, connection_id: str, payload: schemas.AnswerRequest) -> list[Delivery]:
        return self.relay.direct(connection_id, payload.to, OutboundEvent.RECEIVE_ANSWER, "answer", payload.answer)

    async def _on_send_ice_candidate(
        self, connection_id: str, payload: schemas.IceCandidateRequest
    ) -> list[Delivery]:
        return self.relay.direct(
            connection_id, payload.to, OutboundEvent.RECEIVE_ICE_CANDIDATE, "candidate", payload.candidate
        )

    async def _on_code_change(self, connection_id: str, payload: schemas.CodeChangeRequest) -> list[Delivery]:
        return await self.relay.broadcast(
            payload.room_id, connection_id, OutboundEvent.CODE_CHANGE, {"code": payload.code}
        )

    async def _on_cursor_change(self, connection_id: str, payload: schemas.CursorChangeRequest) -> list[Delivery]:
        return await self.relay.cursor_change(payload.room_id, connection_id, payload.cursor_data)

    async def _on_language_change(self, connection_id: str, payload: schemas.LanguageChangeRequest) -> list[Delivery]:
        return await self.relay.broadcast(
            payload.room_id, connection_id, OutboundEvent.GET_LANGUAGE, {"language": payload.language}
        )

    async def _on_send_message(self, connection_id: str, payload: schemas.SendMessageRequest) -> list[Delivery]:
        return await self.relay.send_message(payload.room_id, connection_id, payload.message.text)


hub = SignalingHub()

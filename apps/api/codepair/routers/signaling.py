"""WebSocket transport for the signaling hub."""
from __future__ import annotations

from uuid import uuid4

import anyio
from fastapi import APIRouter, WebSocket

from ..services.signaling import SignalingConnection, hub

router = APIRouter()


@router.websocket("/ws")
async def signaling_endpoint(websocket: WebSocket) -> None:
    """One participant's event channel: JSON frames of ``{"event", "data"}``."""

    connection_id = uuid4().hex
    await websocket.accept()
    await hub.connect(SignalingConnection(connection_id=connection_id, send=websocket.send_json))

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            frame = message.get("text") or message.get("bytes")
            if frame:
                await hub.handle_frame(connection_id, frame)
    finally:
        # The server may cancel this task once the socket closes; the peer still needs user-left.
        with anyio.CancelScope(shield=True):
            await hub.disconnect(connection_id)

"""WebSocket transport adapter between viewers and the subscription hub.

Inbound frames: ``{"type": "join", "chatId": <int>}``. Everything the hub
publishes for the joined chat goes out as a JSON text frame.
"""

import json
from typing import Any, Optional

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from ..services.hub import Connection, SubscriptionHub

logger = structlog.get_logger()


def parse_join(raw: str) -> Optional[int]:
    """Return the chat id of a join frame, or None for anything else."""
    try:
        data: Any = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(data, dict) or data.get("type") != "join":
        return None
    chat_id = data.get("chatId")
    if isinstance(chat_id, bool):
        return None
    if isinstance(chat_id, int):
        return chat_id
    if isinstance(chat_id, str) and chat_id.strip().isdigit():
        return int(chat_id)
    return None


async def serve_viewer(websocket: WebSocket, hub: SubscriptionHub) -> None:
    """Run one viewer connection until the client goes away."""
    await websocket.accept()
    connection = Connection(websocket.send_json)
    await hub.register(connection)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info("websocket_disconnected", connection_id=connection.id, code=message.get("code"))
                break
            raw = message.get("text")
            if raw is None:
                logger.warning(
                    "websocket_binary_frame_ignored",
                    connection_id=connection.id,
                    size=len(message.get("bytes") or b""),
                )
                continue
            chat_id = parse_join(raw)
            if chat_id is None:
                logger.warning("websocket_frame_ignored", connection_id=connection.id, frame=raw[:200])
                continue
            await hub.join(connection, chat_id)
    except WebSocketDisconnect as e:
        logger.info("websocket_disconnected", connection_id=connection.id, code=e.code)
    finally:
        await hub.unregister(connection)

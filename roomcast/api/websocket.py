# roomcast/api/websocket.py

from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Tuple

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from roomcast.core.errors import ChatError, ValidationError
from roomcast.core.state import get_ws_chat_service
from roomcast.services.chat_service import ChatService

logger = logging.getLogger(__name__)

router = APIRouter()


def decode_frame(raw: str) -> Tuple[str, Any]:
    """Split an inbound text frame into (event, data)."""
    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError("Invalid JSON")

    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        raise ValidationError("Invalid frame: expected {\"event\": ..., \"data\": ...}")
    return frame["event"], frame.get("data")


# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, chat: ChatService = Depends(get_ws_chat_service)):
    """
    WebSocket endpoint for real-time bidirectional communication.

    Protocol:
    =========

    Every frame, in both directions, is a JSON object:
        {"event": "<name>", "data": <payload>}

    Client -> Server Events:
    ------------------------
    authenticate   {"id": "u1", "username": "alice", "avatar": "#e91e63"}
                   -> authenticated {"success": true}
    get-rooms      -> rooms-list [{"id", "name", "creator", "participants", "createdAt"}]
    create-room    {"name": "R1"} -> room-created {"id", "name"} + rooms-list to everyone
    join-room      {"roomId": "r1", "userId": "u1"}
                   -> room-joined {"room": {"id", "name", "participants"}, "messages": [...]}
    sendMessage    {"roomId": "r1", "content": "hi"} -> newMessage to the room
    sendFile       {"roomId", "fileUrl", "fileName", "fileSize"} -> newMessage (type "file")
    clearChat      "r1" -> chatCleared to the room
    deleteRoom     "r1" -> room-deleted {"roomId", "message"} to everyone
    leave-room     {"roomId": "r1", "userId": "u1"}
                   -> user-left {"username", "participants"}, maybe new-admin {"roomId", "newAdmin"}
    logout         -> no ack, user purged
    typing         -> ignored

    Server -> Client Events:
    ------------------------
    user-joined {"username", "participants"}
    userLeft    {"username", "userId"}  (connection lost or logged out)
    error       {"message": "..."}

    Lifecycle:
    ==========
    1. Client connects, gets a fresh connection id
    2. Client authenticates; reusing a user id from a new socket is a reconnect
    3. Frames from one socket are handled one at a time, in order
    4. On disconnect the user keeps its rooms for the grace period, then is purged

    Error Handling:
        - Invalid JSON / unknown events / bad payloads: error event, connection stays open
        - Domain errors (room not found, not creator): error event to this socket only
        - Unexpected errors: logged, generic error event
    """
    connection_id = uuid.uuid4().hex
    await websocket.accept()
    chat.connect(connection_id, websocket)
    logger.info("User connected: %s", connection_id)

    try:
        while True:
            raw = await websocket.receive_text()

            try:
                event, data = decode_frame(raw)
                logger.debug("Websocket input: event=%s connection=%s", event, connection_id)
                await chat.dispatch(connection_id, event, data)
            except ChatError as e:
                chat.send_error(connection_id, e.message)
            except Exception:
                logger.exception("Handler error on %s", connection_id)
                chat.send_error(connection_id, "Internal error")

    except WebSocketDisconnect:
        logger.info("Socket disconnected: %s", connection_id)
    except Exception as e:
        logger.error("WebSocket error on %s: %s", connection_id, e)
    finally:
        await chat.disconnect(connection_id)

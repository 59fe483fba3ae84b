# roomcast/core/state.py
from __future__ import annotations

from fastapi import Request, WebSocket

from roomcast.services.chat_service import ChatService

# The ChatService instance lives on ``app.state.chat`` (set by create_app);
# routes receive it through these dependencies instead of a module global.


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat


def get_ws_chat_service(websocket: WebSocket) -> ChatService:
    return websocket.app.state.chat

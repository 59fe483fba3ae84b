# roomcast/api/routes/health.py

from fastapi import APIRouter, Depends

from roomcast.core.state import get_chat_service
from roomcast.services.chat_service import ChatService

router = APIRouter()

@router.get("/health")
async def health(chat: ChatService = Depends(get_chat_service)):
    """
    Health check endpoint.

    Returns current system status, connection counts, and room counts.

    Returns:
        dict: Status, connection count, registered users, room count
    """
    return {
        "status": "healthy",
        "connections": len(chat.broadcaster),
        "users": len(chat.registry),
        "rooms": len(chat.store),
    }

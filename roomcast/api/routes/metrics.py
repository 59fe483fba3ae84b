# roomcast/api/routes/metrics.py
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from roomcast.core.state import get_chat_service
from roomcast.services.chat_service import ChatService

router = APIRouter()

@router.get("/metrics")
async def get_metrics(chat: ChatService = Depends(get_chat_service)):
    """
    Usage metrics endpoint.

    Returns:
        dict: message statistics since startup plus current capacity
            - total_messages, uptime_hours, messages_per_second
            - concurrent_connections, total_rooms, pending_reaps

    Example Response:
        {
            "total_messages": 1200,
            "uptime_hours": 2.5,
            "messages_per_second": 0.13,
            "concurrent_connections": 14,
            "total_rooms": 3,
            "pending_reaps": 1
        }
    """
    uptime_seconds = (datetime.now(timezone.utc) - chat.started_at).total_seconds()

    if uptime_seconds > 0:
        messages_per_second = chat.message_counter / uptime_seconds
    else:
        messages_per_second = 0

    return {
        # Statistics
        "total_messages": chat.message_counter,
        "uptime_hours": round(uptime_seconds / 3600, 2) if uptime_seconds > 0 else 0,
        "messages_per_second": round(messages_per_second, 2),

        # Capacity
        "concurrent_connections": len(chat.broadcaster),
        "total_rooms": len(chat.store),
        "pending_reaps": len(chat.reaper),
    }

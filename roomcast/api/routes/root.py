# roomcast/api/routes/root.py

from fastapi import APIRouter

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the API and its features.
    """
    return {
        "message": "roomcast - ephemeral anonymous chat rooms",
        "version": "1.0",
        "features": ["ephemeral_rooms", "admin_succession", "file_sharing", "reconnect_grace_period"],
        "endpoints": {
            "websocket": "/ws",
            "rooms": "/api/rooms",
            "room": "/api/room/{room_id}",
            "health": "/health",
            "metrics": "/metrics",
        },
    }

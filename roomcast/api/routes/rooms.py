# roomcast/api/routes/rooms.py

from typing import List

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from roomcast.core.errors import RoomNotFound
from roomcast.core.state import get_chat_service
from roomcast.models.models import CreateRoomRequest, CreateRoomResponse, RoomDetail, RoomSummary
from roomcast.services.chat_service import ChatService

router = APIRouter(prefix="/api")

# ============================================================================
# ROOM ENDPOINTS
# ============================================================================

@router.get("/rooms", response_model=List[RoomSummary], response_model_by_alias=True)
async def list_rooms(chat: ChatService = Depends(get_chat_service)):
    """
    List all rooms, newest first.

    Returns:
        List[RoomSummary]: id, name, creator, participants, createdAt
    """
    return await chat.list_rooms()


@router.post("/rooms", response_model=CreateRoomResponse)
async def create_room(request: Request, chat: ChatService = Depends(get_chat_service)):
    """
    Create a new chatroom.

    Same path as the socket ``create-room`` event: the creator becomes the
    only member and every connected client receives the new room list.

    Args:
        body: {"name": "...", "userId": "..."}

    Returns:
        {"id": "<room id>"}, or 400 {"error": ...} when name/userId is missing
    """
    try:
        body = await request.json()
        payload = CreateRoomRequest.model_validate(body)
    except (ValueError, PydanticValidationError):
        return JSONResponse(status_code=400, content={"error": "Missing room name or userId"})

    room_id = await chat.create_room_for(payload.name, payload.user_id)
    return CreateRoomResponse(id=room_id)


@router.get("/room/{room_id}", response_model=RoomDetail, response_model_by_alias=True)
async def get_room(room_id: str, chat: ChatService = Depends(get_chat_service)):
    """
    Get details of a specific room.

    Returns:
        RoomDetail: id, name, participants, createdAt, or 404 {"error": "Room not found"}
    """
    try:
        return await chat.room_detail(room_id)
    except RoomNotFound as e:
        return JSONResponse(status_code=e.status_code, content={"error": e.message})

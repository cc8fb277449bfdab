# clypse/routers/rooms.py
# FastAPI router for rooms; clients poll GET /rooms/{code}/messages

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, status

from clypse.schemas.common import StatusResponse
from clypse.schemas.rooms import (
    JoinRequest,
    MessageIn,
    ParticipantsOut,
    RoomCreated,
    RoomMessage,
    RoomSnapshot,
)
from clypse.services.room_service import RoomService
from clypse.routers.deps import get_room_service
from clypse.utils.devices import device_label


router = APIRouter(tags=["Rooms"])


def _device_name(explicit: str | None, user_agent: str | None) -> str:
    return explicit or device_label(user_agent)


@router.post("/rooms", response_model=RoomCreated, status_code=status.HTTP_201_CREATED)
async def create_room(service: RoomService = Depends(get_room_service)) -> RoomCreated:
    return RoomCreated(code=await service.create_room())


@router.post("/rooms/{code}/join", response_model=RoomSnapshot)
async def join_room(
    code: str,
    payload: JoinRequest,
    user_agent: str | None = Header(None),
    service: RoomService = Depends(get_room_service),
) -> RoomSnapshot:
    await service.heartbeat(code, payload.device_id, _device_name(payload.device_name, user_agent))
    return await service.snapshot(code)


@router.post("/rooms/{code}/heartbeat", response_model=ParticipantsOut)
async def heartbeat(
    code: str,
    payload: JoinRequest,
    user_agent: str | None = Header(None),
    service: RoomService = Depends(get_room_service),
) -> ParticipantsOut:
    await service.heartbeat(code, payload.device_id, _device_name(payload.device_name, user_agent))
    return ParticipantsOut(code=code.strip().upper(), participants=await service.participants(code))


@router.post("/rooms/{code}/leave", response_model=StatusResponse)
async def leave_room(
    code: str,
    payload: JoinRequest,
    service: RoomService = Depends(get_room_service),
) -> StatusResponse:
    await service.leave(code, payload.device_id)
    return StatusResponse(success=True, message="Left room")


@router.get("/rooms/{code}/messages", response_model=RoomSnapshot)
async def get_messages(code: str, service: RoomService = Depends(get_room_service)) -> RoomSnapshot:
    return await service.snapshot(code)


@router.post("/rooms/{code}/messages", response_model=RoomMessage, status_code=status.HTTP_201_CREATED)
async def post_message(
    code: str,
    payload: MessageIn,
    user_agent: str | None = Header(None),
    service: RoomService = Depends(get_room_service),
) -> RoomMessage:
    return await service.post_message(
        code,
        payload.content,
        payload.device_id,
        _device_name(payload.device_name, user_agent),
    )

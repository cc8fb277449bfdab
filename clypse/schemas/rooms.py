from __future__ import annotations

from typing import Optional

from pydantic import AwareDatetime, BaseModel, Field


class RoomMessage(BaseModel):
    id: str
    content: str
    timestamp: AwareDatetime
    device: str
    device_id: str


class DevicePresence(BaseModel):
    name: str
    timestamp: AwareDatetime


class RoomSnapshot(BaseModel):
    code: str
    messages: list[RoomMessage] = []
    participants: int = 0


class RoomCreated(BaseModel):
    code: str


class JoinRequest(BaseModel):
    device_id: str = Field(..., min_length=1, max_length=64)
    device_name: Optional[str] = Field(None, max_length=32)


class MessageIn(BaseModel):
    content: str = Field(..., max_length=100_000)
    device_id: str = Field(..., min_length=1, max_length=64)
    device_name: Optional[str] = Field(None, max_length=32)


class ParticipantsOut(BaseModel):
    code: str
    participants: int

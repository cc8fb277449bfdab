# clypse/routers/deps.py
# Shared FastAPI dependencies so handlers stay thin

from fastapi import Depends, Request

from clypse.config import Settings, get_settings
from clypse.services.file_service import FileShareService
from clypse.services.room_service import RoomService
from clypse.storage.base import KeyValueStore


def get_store(request: Request) -> KeyValueStore:
    """The store created by the application lifespan."""
    return request.app.state.store


def get_file_service(
    store: KeyValueStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> FileShareService:
    return FileShareService(
        store,
        max_file_size=settings.MAX_FILE_SIZE,
        file_ttl_seconds=settings.FILE_TTL_SECONDS,
        code_max_attempts=settings.CODE_MAX_ATTEMPTS,
    )


def get_room_service(
    store: KeyValueStore = Depends(get_store),
    settings: Settings = Depends(get_settings),
) -> RoomService:
    return RoomService(
        store,
        max_messages=settings.MAX_ROOM_MESSAGES,
        max_device_inactivity=settings.MAX_DEVICE_INACTIVITY,
        code_max_attempts=settings.CODE_MAX_ATTEMPTS,
    )

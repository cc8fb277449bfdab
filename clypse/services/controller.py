# clypse/services/controller.py
# Top-level controller for one device: owns its state, its room session and the sweeper

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from clypse.config import Settings, get_settings
from clypse.middleware.error_handler import ValidationError
from clypse.schemas.files import SharedItem
from clypse.schemas.rooms import RoomMessage
from clypse.services.file_service import FileShareService
from clypse.services.room_service import RoomService
from clypse.services.session import ChangeCallback, RoomSession
from clypse.services.sweeper import ExpirySweeper
from clypse.storage.base import KeyValueStore
from clypse.utils.devices import generate_id, load_or_create_device_id, local_device_label
from clypse.utils.logger import log_info


@dataclass
class AppState:
    """Everything the controller knows about this device."""
    device_id: str = field(default_factory=generate_id)
    device_name: str = field(default_factory=local_device_label)
    room: Optional[RoomSession] = None
    started: bool = False

    @property
    def room_code(self) -> Optional[str]:
        return self.room.code if self.room is not None else None


class ShareController:
    """Explicit lifecycle: start, create_room/join_room, leave_room, shutdown."""

    def __init__(
        self,
        store: KeyValueStore,
        settings: Optional[Settings] = None,
        state: Optional[AppState] = None,
        on_change: Optional[ChangeCallback] = None,
        run_sweeper: bool = False,
    ):
        self.settings = settings or get_settings()
        self.store = store
        self.state = state or AppState(device_id=load_or_create_device_id(self.settings.DEVICE_ID_PATH))
        self.on_change = on_change
        self.files = FileShareService(
            store,
            max_file_size=self.settings.MAX_FILE_SIZE,
            file_ttl_seconds=self.settings.FILE_TTL_SECONDS,
            code_max_attempts=self.settings.CODE_MAX_ATTEMPTS,
        )
        self.rooms = RoomService(
            store,
            max_messages=self.settings.MAX_ROOM_MESSAGES,
            max_device_inactivity=self.settings.MAX_DEVICE_INACTIVITY,
            code_max_attempts=self.settings.CODE_MAX_ATTEMPTS,
        )
        self.sweeper = ExpirySweeper(self.files, interval=self.settings.SWEEP_INTERVAL) if run_sweeper else None

    async def start(self) -> None:
        if self.state.started:
            return
        if self.sweeper is not None:
            self.sweeper.start()
        self.state.started = True
        log_info("ShareController: ready", device=self.state.device_id, name=self.state.device_name)

    async def create_room(self) -> RoomSession:
        code = await self.rooms.create_room()
        return await self.join_room(code)

    async def join_room(self, code: str) -> RoomSession:
        """Join `code`, leaving the current room first."""
        session = RoomSession(
            self.rooms,
            code,
            device_id=self.state.device_id,
            device_name=self.state.device_name,
            poll_interval=self.settings.POLL_INTERVAL,
            heartbeat_interval=self.settings.HEARTBEAT_INTERVAL,
            on_change=self.on_change,
        )
        await self.leave_room()
        await session.start()
        self.state.room = session
        return session

    async def leave_room(self) -> None:
        session, self.state.room = self.state.room, None
        if session is not None:
            await session.stop()

    async def send(self, content: str) -> RoomMessage:
        if self.state.room is None:
            raise ValidationError("Please join a room first")
        return await self.state.room.send(content)

    async def upload(self, file_name: str, data: bytes, content_type: Optional[str] = None) -> SharedItem:
        return await self.files.upload(file_name, data, content_type)

    async def access(self, code: str) -> tuple[SharedItem, bytes]:
        return await self.files.retrieve(code)

    async def shutdown(self) -> None:
        """Leave the room and stop background work; safe to call twice.

        The sweeper is stopped even when leaving the room fails.
        """
        try:
            await self.leave_room()
        finally:
            if self.sweeper is not None:
                await self.sweeper.stop()
            if self.state.started:
                log_info("ShareController: shut down", device=self.state.device_id)
            self.state.started = False

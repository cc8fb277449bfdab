# clypse/services/room_service.py

from __future__ import annotations

import random
from datetime import datetime, timezone
from typing import Optional

from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from clypse.constants import room_devices_key, room_messages_key
from clypse.middleware.error_handler import ValidationError
from clypse.observability.metrics import CODES_ALLOCATED
from clypse.schemas.rooms import DevicePresence, RoomMessage, RoomSnapshot
from clypse.storage.base import KeyValueStore
from clypse.utils.codes import allocate_code, validate_code
from clypse.utils.devices import generate_id
from clypse.utils.logger import log_info

_messages_adapter = TypeAdapter(list[RoomMessage])
_devices_adapter = TypeAdapter(dict[str, DevicePresence])


class RoomService:
    """Rooms are a message list plus a presence map, each under its own key.

    Every mutation is read-modify-write of the whole value. Two writers racing
    on the same room lose one of the updates: last write wins.
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_messages: int = 50,
        max_device_inactivity: float = 30.0,
        code_max_attempts: int = 20,
        rng: Optional[random.Random] = None,
    ):
        self._store = store
        self.max_messages = max_messages
        self.max_device_inactivity = max_device_inactivity
        self.code_max_attempts = code_max_attempts
        self._rng = rng

    # --- raw record access ---

    async def _read_messages(self, code: str) -> list[RoomMessage]:
        raw = await self._store.get(room_messages_key(code))
        if raw is None:
            return []
        try:
            return _messages_adapter.validate_json(raw)
        except PydanticValidationError:
            log_info("RoomService: discarding undecodable messages", room=code)
            return []

    async def _write_messages(self, code: str, messages: list[RoomMessage]) -> None:
        await self._store.set(
            room_messages_key(code),
            _messages_adapter.dump_json(messages).decode("utf-8"),
        )

    async def _read_devices(self, code: str) -> dict[str, DevicePresence]:
        raw = await self._store.get(room_devices_key(code))
        if raw is None:
            return {}
        try:
            return _devices_adapter.validate_json(raw)
        except PydanticValidationError:
            log_info("RoomService: discarding undecodable presence", room=code)
            return {}

    async def _write_devices(self, code: str, devices: dict[str, DevicePresence]) -> None:
        await self._store.set(
            room_devices_key(code),
            _devices_adapter.dump_json(devices).decode("utf-8"),
        )

    # --- operations ---

    async def exists(self, code: str) -> bool:
        code = validate_code(code)
        return (
            await self._store.get(room_messages_key(code)) is not None
            or await self._store.get(room_devices_key(code)) is not None
        )

    async def create_room(self) -> str:
        """Allocate a code no present room uses. The room appears on first join."""
        code = await allocate_code(self.exists, self.code_max_attempts, self._rng)
        CODES_ALLOCATED.labels("room").inc()
        log_info("RoomService: allocated room", room=code)
        return code

    async def heartbeat(
        self,
        code: str,
        device_id: str,
        device_name: str,
        now: Optional[datetime] = None,
    ) -> None:
        code = validate_code(code)
        devices = await self._read_devices(code)
        devices[device_id] = DevicePresence(
            name=device_name,
            timestamp=now or datetime.now(timezone.utc),
        )
        await self._write_devices(code, devices)

    async def leave(self, code: str, device_id: str) -> None:
        code = validate_code(code)
        devices = await self._read_devices(code)
        if devices.pop(device_id, None) is not None:
            await self._write_devices(code, devices)
            log_info("RoomService: device left", room=code, device=device_id)

    async def post_message(
        self,
        code: str,
        content: str,
        device_id: str,
        device_name: str,
        now: Optional[datetime] = None,
    ) -> RoomMessage:
        """Prepend a message and keep only the newest `max_messages`."""
        code = validate_code(code)
        text = (content or "").strip()
        if not text:
            raise ValidationError("No content to send")

        message = RoomMessage(
            id=generate_id(),
            content=text,
            timestamp=now or datetime.now(timezone.utc),
            device=device_name,
            device_id=device_id,
        )
        messages = await self._read_messages(code)
        messages.insert(0, message)
        del messages[self.max_messages:]
        await self._write_messages(code, messages)
        log_info("RoomService: message posted", room=code, message=message.id, device=device_name)
        return message

    async def messages(self, code: str) -> list[RoomMessage]:
        """Newest first; an absent room simply has no messages."""
        return await self._read_messages(validate_code(code))

    async def participants(self, code: str, now: Optional[datetime] = None) -> int:
        code = validate_code(code)
        now = now or datetime.now(timezone.utc)
        devices = await self._read_devices(code)
        return sum(
            1
            for presence in devices.values()
            if (now - presence.timestamp).total_seconds() < self.max_device_inactivity
        )

    async def snapshot(self, code: str, now: Optional[datetime] = None) -> RoomSnapshot:
        code = validate_code(code)
        return RoomSnapshot(
            code=code,
            messages=await self._read_messages(code),
            participants=await self.participants(code, now=now),
        )

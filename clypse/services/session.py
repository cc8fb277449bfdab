# clypse/services/session.py
# One participant's live view of a room, kept fresh by polling shared storage

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Awaitable, Callable, Optional, Union

from clypse.schemas.rooms import RoomMessage
from clypse.services.room_service import RoomService
from clypse.utils.codes import validate_code
from clypse.utils.logger import log_exception, log_info

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[list[RoomMessage]], Union[None, Awaitable[None]]]


class RoomSession:
    """Poll a room on a fixed interval and keep the last snapshot locally.

    The view is eventually consistent: whatever the store holds at poll time
    replaces the local list. There is no merge and no conflict signal.
    """

    def __init__(
        self,
        rooms: RoomService,
        code: str,
        device_id: str,
        device_name: str,
        poll_interval: float = 1.0,
        heartbeat_interval: float = 5.0,
        on_change: Optional[ChangeCallback] = None,
    ):
        self.rooms = rooms
        self.code = validate_code(code)
        self.device_id = device_id
        self.device_name = device_name
        self.poll_interval = poll_interval
        self.heartbeat_interval = heartbeat_interval
        self.on_change = on_change
        self.messages: list[RoomMessage] = []
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def start(self) -> None:
        """Announce presence, take the first snapshot, then start both timers."""
        if self.running:
            return
        await self.rooms.heartbeat(self.code, self.device_id, self.device_name)
        await self.poll_once()
        self._tasks = [
            asyncio.create_task(self._poll_loop(), name=f"room-poll-{self.code}"),
            asyncio.create_task(self._heartbeat_loop(), name=f"room-heartbeat-{self.code}"),
        ]
        log_info("RoomSession: joined", room=self.code, device=self.device_id)

    async def stop(self) -> None:
        """Cancel both timers and withdraw this device from the room."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self.rooms.leave(self.code, self.device_id)
        log_info("RoomSession: left", room=self.code, device=self.device_id)

    async def poll_once(self) -> bool:
        """Re-read the room; return True when the local view changed."""
        current = await self.rooms.messages(self.code)
        if current == self.messages:
            return False
        self.messages = current
        if self.on_change is not None:
            result = self.on_change(list(current))
            if asyncio.iscoroutine(result):
                await result
        return True

    async def send(self, content: str) -> RoomMessage:
        message = await self.rooms.post_message(
            self.code, content, self.device_id, self.device_name
        )
        await self.poll_once()
        return message

    async def participants(self) -> int:
        return await self.rooms.participants(self.code)

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.poll_once()
            except Exception as e:
                # A failed tick is skipped; the next one reads the store again
                log_exception(e, "RoomSession poll", room=self.code)
                logger.warning(f"Room poll failed for {self.code}: {type(e).__name__}: {e}")

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await self.rooms.heartbeat(self.code, self.device_id, self.device_name)
            except Exception as e:
                log_exception(e, "RoomSession heartbeat", room=self.code)
                logger.warning(f"Heartbeat failed for {self.code}: {type(e).__name__}: {e}")

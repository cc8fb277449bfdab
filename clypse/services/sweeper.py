# clypse/services/sweeper.py

import asyncio
import contextlib
import logging
from typing import Optional

from clypse.services.file_service import FileShareService
from clypse.utils.logger import log_exception, log_info

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """Background task that removes expired file records every `interval` seconds."""

    def __init__(self, files: FileShareService, interval: float = 60.0):
        self.files = files
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="expiry-sweeper")
        log_info(f"ExpirySweeper: started (every {self.interval}s)")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        log_info("ExpirySweeper: stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.files.sweep_expired()
            except Exception as e:
                log_exception(e, "ExpirySweeper")
                logger.warning(f"Expiry sweep failed: {type(e).__name__}: {e}")
            await asyncio.sleep(self.interval)

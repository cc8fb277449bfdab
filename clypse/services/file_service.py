# clypse/services/file_service.py

from __future__ import annotations

import base64
import binascii
import random
from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from clypse.constants import DEFAULT_CONTENT_TYPE, FILES_PREFIX, file_key
from clypse.middleware.error_handler import NotFoundError, PayloadTooLargeError, ValidationError
from clypse.observability.metrics import CODES_ALLOCATED, FILES_SWEPT
from clypse.schemas.files import SharedItem
from clypse.storage.base import KeyValueStore
from clypse.utils.codes import allocate_code, validate_code
from clypse.utils.devices import generate_id
from clypse.utils.logger import log_info


class FileShareService:
    """Store files under short codes and hand them back to whoever has the code.

    Records stay readable until they expire; a download does not consume them.
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_file_size: int = 100_000_000,
        file_ttl_seconds: int = 24 * 3600,
        code_max_attempts: int = 20,
        rng: Optional[random.Random] = None,
    ):
        self._store = store
        self.max_file_size = max_file_size
        self.file_ttl_seconds = file_ttl_seconds
        self.code_max_attempts = code_max_attempts
        self._rng = rng

    async def _is_live(self, code: str) -> bool:
        return await self._store.get(file_key(code)) is not None

    async def upload(
        self,
        file_name: str,
        data: bytes,
        content_type: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SharedItem:
        """Store `data` under a fresh code and return the record."""
        name = (file_name or "").strip()
        if not name:
            raise ValidationError("File name is required")
        if len(data) > self.max_file_size:
            raise PayloadTooLargeError(len(data), self.max_file_size)

        code = await allocate_code(self._is_live, self.code_max_attempts, self._rng)
        CODES_ALLOCATED.labels("file").inc()

        created_at = now or datetime.now(timezone.utc)
        expires_at = (
            created_at + timedelta(seconds=self.file_ttl_seconds)
            if self.file_ttl_seconds > 0
            else None
        )
        item = SharedItem(
            id=generate_id(),
            code=code,
            file_name=name,
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            size=len(data),
            payload=base64.b64encode(data).decode("ascii"),
            created_at=created_at,
            expires_at=expires_at,
        )
        await self._store.set(file_key(code), item.model_dump_json())
        log_info("FileShareService: stored", code=code, name=repr(name), size=len(data))
        return item

    async def _load(self, code: str) -> SharedItem | None:
        raw = await self._store.get(file_key(code))
        if raw is None:
            return None
        try:
            return SharedItem.model_validate_json(raw)
        except PydanticValidationError:
            log_info("FileShareService: undecodable record", code=code)
            return None

    async def get(self, code: str, now: Optional[datetime] = None) -> SharedItem:
        """Return the live record for `code`; expired and broken records are not found."""
        code = validate_code(code)
        item = await self._load(code)
        now = now or datetime.now(timezone.utc)
        if item is None or item.is_expired(now):
            log_info("FileShareService: no file", code=code)
            raise NotFoundError(f"No file found with code: {code}", details={"code": code})
        return item

    async def retrieve(self, code: str, now: Optional[datetime] = None) -> tuple[SharedItem, bytes]:
        """Return the record together with its decoded bytes."""
        item = await self.get(code, now=now)
        try:
            data = base64.b64decode(item.payload.encode("ascii"), validate=True)
        except (binascii.Error, ValueError):
            log_info("FileShareService: corrupt payload", code=item.code)
            raise NotFoundError(f"No file found with code: {item.code}", details={"code": item.code})
        if len(data) != item.size:
            raise NotFoundError(f"No file found with code: {item.code}", details={"code": item.code})
        log_info("FileShareService: served", code=item.code, name=repr(item.file_name))
        return item, data

    async def list_files(self, now: Optional[datetime] = None) -> list[SharedItem]:
        """Live records, newest first."""
        now = now or datetime.now(timezone.utc)
        items = []
        for key in await self._store.list_by_prefix(FILES_PREFIX):
            item = await self._load(key[len(FILES_PREFIX):])
            if item is not None and not item.is_expired(now):
                items.append(item)
        items.sort(key=lambda i: i.created_at, reverse=True)
        return items

    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """Remove expired and undecodable records; return how many were removed."""
        now = now or datetime.now(timezone.utc)
        removed = 0
        for key in await self._store.list_by_prefix(FILES_PREFIX):
            item = await self._load(key[len(FILES_PREFIX):])
            if item is None or item.is_expired(now):
                await self._store.remove(key)
                removed += 1
        if removed:
            FILES_SWEPT.inc(removed)
            log_info(f"FileShareService: swept {removed} expired file(s)")
        return removed

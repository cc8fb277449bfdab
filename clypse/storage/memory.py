# clypse/storage/memory.py
# Process-local store; every session holding the same instance sees the same data

from __future__ import annotations

import base64
import binascii
import json
from typing import Optional

from clypse.middleware.error_handler import StorageError


class MemoryStore:
    """Dict-backed store with an optional size quota, like browser local storage."""

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes
        self._data: dict[str, str] = {}

    def _used_bytes(self, replacing: str | None = None) -> int:
        return sum(
            len(k) + len(v)
            for k, v in self._data.items()
            if k != replacing
        )

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            needed = self._used_bytes(replacing=key) + len(key) + len(value)
            if needed > self.quota_bytes:
                raise StorageError(
                    "Storage quota exceeded",
                    details={"quota_bytes": self.quota_bytes, "needed_bytes": needed},
                )
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_by_prefix(self, prefix: str) -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    def __len__(self) -> int:
        return len(self._data)


class FragmentStore(MemoryStore):
    """Memory store whose whole content travels as a URL fragment.

    Sharing works by copying the URL: `to_fragment()` on one side,
    `FragmentStore.from_fragment()` on the other.
    """

    def to_fragment(self) -> str:
        raw = json.dumps(self._data, sort_keys=True, separators=(",", ":"))
        encoded = base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii")
        return "#" + encoded.rstrip("=")

    @classmethod
    def from_fragment(cls, fragment: str, quota_bytes: Optional[int] = None) -> "FragmentStore":
        store = cls(quota_bytes=quota_bytes)
        body = (fragment or "").lstrip("#")
        if not body:
            return store
        padded = body + "=" * (-len(body) % 4)
        try:
            data = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8"))
        except (binascii.Error, UnicodeError, ValueError) as e:
            raise StorageError("Fragment is not a valid store snapshot") from e
        if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()
        ):
            raise StorageError("Fragment is not a valid store snapshot")
        store._data = data
        return store

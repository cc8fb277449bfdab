# clypse/storage/base.py
# Storage capability shared by every backend

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class KeyValueStore(Protocol):
    """String-keyed storage with prefix listing.

    Values are JSON text. Every backend is visible to all participants that
    hold the same instance/URL; there is no locking, the last write wins.
    """

    async def get(self, key: str) -> str | None:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def remove(self, key: str) -> None:
        ...

    async def list_by_prefix(self, prefix: str) -> list[str]:
        """Return the sorted keys starting with `prefix`."""
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...

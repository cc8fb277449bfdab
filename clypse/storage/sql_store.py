# clypse/storage/sql_store.py
# PostgreSQL-backed store over the kv_store table

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, select, text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from clypse.db.base import make_session_factory
from clypse.middleware.error_handler import StorageError
from clypse.models.kv_store_table import kv_store
from clypse.utils.logger import log_exception


class SqlStore:
    """Store rows in kv_store; writes are upserts, so the last write wins."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._session = make_session_factory(engine)

    async def get(self, key: str) -> str | None:
        try:
            async with self._session() as session:
                result = await session.execute(
                    select(kv_store.c.value).where(kv_store.c.key == key)
                )
                row = result.fetchone()
        except SQLAlchemyError as e:
            log_exception(e, "SqlStore.get", key=key)
            raise StorageError("Database read failed") from e
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        now = datetime.now(timezone.utc)
        stmt = insert(kv_store).values(key=key, value=value, updated_at=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[kv_store.c.key],
            set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
        )
        try:
            async with self._session() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            log_exception(e, "SqlStore.set", key=key)
            raise StorageError("Database write failed") from e

    async def remove(self, key: str) -> None:
        try:
            async with self._session() as session:
                await session.execute(delete(kv_store).where(kv_store.c.key == key))
                await session.commit()
        except SQLAlchemyError as e:
            log_exception(e, "SqlStore.remove", key=key)
            raise StorageError("Database delete failed") from e

    async def list_by_prefix(self, prefix: str) -> list[str]:
        try:
            async with self._session() as session:
                result = await session.execute(
                    select(kv_store.c.key)
                    .where(kv_store.c.key.startswith(prefix, autoescape=True))
                    .order_by(kv_store.c.key)
                )
                return [row[0] for row in result.fetchall()]
        except SQLAlchemyError as e:
            log_exception(e, "SqlStore.list_by_prefix", prefix=prefix)
            raise StorageError("Database scan failed") from e

    async def ping(self) -> bool:
        try:
            async with self._session() as session:
                result = await session.execute(text("SELECT 1"))
                return result.scalar() == 1
        except (SQLAlchemyError, OSError):
            return False

    async def close(self) -> None:
        await self.engine.dispose()

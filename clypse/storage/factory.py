# clypse/storage/factory.py

from clypse.config import Settings
from clypse.db.base import make_engine
from clypse.storage.base import KeyValueStore
from clypse.storage.http_store import HttpDocumentStore
from clypse.storage.memory import FragmentStore, MemoryStore
from clypse.storage.redis_store import RedisStore
from clypse.storage.sql_store import SqlStore


def build_store(settings: Settings) -> KeyValueStore:
    """Pick the storage backend named by STORE_BACKEND."""
    backend = settings.STORE_BACKEND
    if backend == "memory":
        return MemoryStore()
    if backend == "fragment":
        return FragmentStore()
    if backend == "redis":
        return RedisStore(settings.REDIS_URL, namespace=settings.REDIS_KEY_PREFIX)
    if backend == "sql":
        return SqlStore(make_engine(settings.DB_URL, echo=settings.DEBUG))
    if backend == "http":
        return HttpDocumentStore(settings.DOCUMENT_STORE_URL, timeout=settings.DOCUMENT_STORE_TIMEOUT)
    raise ValueError(f"Unknown storage backend: {backend}")

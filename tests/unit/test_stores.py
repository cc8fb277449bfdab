# tests/unit/test_stores.py
# Unit tests for the in-process and HTTP storage backends

import asyncio
import json
from urllib.parse import unquote

import httpx
import pytest

from clypse.middleware.circuit_breaker import StoreBreaker
from clypse.middleware.error_handler import StorageError
from clypse.storage.base import KeyValueStore


class TestMemoryStore:

    @pytest.mark.asyncio
    async def test_set_get_remove(self):
        from clypse.storage.memory import MemoryStore

        store = MemoryStore()
        await store.set("files:AB3K", '{"x": 1}')
        assert await store.get("files:AB3K") == '{"x": 1}'

        await store.remove("files:AB3K")
        assert await store.get("files:AB3K") is None
        # removing twice is fine
        await store.remove("files:AB3K")

    @pytest.mark.asyncio
    async def test_list_by_prefix_is_sorted(self):
        from clypse.storage.memory import MemoryStore

        store = MemoryStore()
        for key in ("files:ZZZZ", "rooms:AAAA:messages", "files:AAAA"):
            await store.set(key, "{}")
        assert await store.list_by_prefix("files:") == ["files:AAAA", "files:ZZZZ"]

    @pytest.mark.asyncio
    async def test_quota_rejects_oversized_write(self):
        from clypse.storage.memory import MemoryStore

        store = MemoryStore(quota_bytes=20)
        await store.set("k", "small")
        with pytest.raises(StorageError) as exc:
            await store.set("big", "x" * 30)
        assert exc.value.message == "Storage quota exceeded"
        assert await store.get("big") is None

    @pytest.mark.asyncio
    async def test_quota_counts_replaced_value_once(self):
        from clypse.storage.memory import MemoryStore

        store = MemoryStore(quota_bytes=20)
        await store.set("k", "x" * 15)
        await store.set("k", "y" * 15)
        assert await store.get("k") == "y" * 15

    def test_satisfies_protocol(self):
        from clypse.storage.memory import FragmentStore, MemoryStore

        assert isinstance(MemoryStore(), KeyValueStore)
        assert isinstance(FragmentStore(), KeyValueStore)


class TestFragmentStore:

    @pytest.mark.asyncio
    async def test_fragment_carries_whole_store(self):
        from clypse.storage.memory import FragmentStore

        store = FragmentStore()
        await store.set("files:AB3K", json.dumps({"name": "ünïcode.txt"}))
        await store.set("rooms:AB3K:messages", "[]")

        fragment = store.to_fragment()
        assert fragment.startswith("#")
        assert "=" not in fragment

        copy = FragmentStore.from_fragment(fragment)
        assert await copy.get("files:AB3K") == await store.get("files:AB3K")
        assert await copy.list_by_prefix("") == ["files:AB3K", "rooms:AB3K:messages"]

    @pytest.mark.asyncio
    async def test_empty_fragment_gives_empty_store(self):
        from clypse.storage.memory import FragmentStore

        assert len(FragmentStore.from_fragment("")) == 0
        assert len(FragmentStore.from_fragment("#")) == 0

    @pytest.mark.parametrize("fragment", ["#!!!", "#bm90IGpzb24", "#WzEsMl0"])
    def test_garbage_fragment_is_rejected(self, fragment):
        from clypse.storage.memory import FragmentStore

        with pytest.raises(StorageError):
            FragmentStore.from_fragment(fragment)


class FakeDocumentServer:
    """In-memory stand-in for the remote document API, served through httpx.MockTransport."""

    def __init__(self):
        self.documents: dict[str, str] = {}
        self.calls = 0
        self.fail_with: int | None = None
        self.delay = 0.0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with)

        path = request.url.path
        if path == "/documents":
            prefix = request.url.params.get("prefix", "")
            return httpx.Response(200, json=[k for k in self.documents if k.startswith(prefix)])

        key = unquote(path[len("/documents/"):])
        if request.method == "GET":
            if key not in self.documents:
                return httpx.Response(404)
            return httpx.Response(200, text=self.documents[key])
        if request.method == "PUT":
            self.documents[key] = request.content.decode("utf-8")
            return httpx.Response(204)
        if request.method == "DELETE":
            self.documents.pop(key, None)
            return httpx.Response(204)
        return httpx.Response(405)


@pytest.fixture
def server():
    return FakeDocumentServer()


def make_http_store(server, **kwargs):
    from clypse.storage.http_store import HttpDocumentStore

    kwargs.setdefault("breaker", StoreBreaker("Document store", failure_threshold=2))
    return HttpDocumentStore(
        "http://docs.test/documents/",
        transport=httpx.MockTransport(server),
        **kwargs,
    )


class TestHttpDocumentStore:

    @pytest.mark.asyncio
    async def test_round_trip(self, server):
        store = make_http_store(server)
        try:
            await store.set("rooms:AB3K:messages", "[]")
            assert server.documents == {"rooms:AB3K:messages": "[]"}
            assert await store.get("rooms:AB3K:messages") == "[]"
            assert await store.get("files:ZZZZ") is None

            await store.set("files:AB3K", "{}")
            assert await store.list_by_prefix("files:") == ["files:AB3K"]

            await store.remove("files:AB3K")
            assert await store.get("files:AB3K") is None
            assert await store.ping()
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_server_error_becomes_storage_error(self, server):
        store = make_http_store(server)
        server.fail_with = 500
        try:
            with pytest.raises(StorageError) as exc:
                await store.get("files:AB3K")
            assert exc.value.details == {"status": 500}
            assert exc.value.status_code == 503
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_breaker_fails_fast_once_open(self, server):
        store = make_http_store(server)
        server.fail_with = 502
        try:
            for _ in range(2):
                with pytest.raises(StorageError):
                    await store.get("files:AB3K")
            assert server.calls == 2

            with pytest.raises(StorageError) as exc:
                await store.get("files:AB3K")
            assert exc.value.message == "Document store is temporarily unavailable"
            assert server.calls == 2
            assert not await store.ping()
        finally:
            await store.close()

    @pytest.mark.asyncio
    async def test_slow_server_times_out(self, server):
        store = make_http_store(server, timeout=0.05)
        server.delay = 1.0
        try:
            with pytest.raises(StorageError) as exc:
                await store.get("files:AB3K")
            assert exc.value.message == "Document store timed out"
        finally:
            await store.close()


class TestBuildStore:

    def test_backend_is_selected_by_settings(self):
        from clypse.config import Settings
        from clypse.storage.factory import build_store
        from clypse.storage.memory import FragmentStore, MemoryStore
        from clypse.storage.redis_store import RedisStore

        assert type(build_store(Settings(STORE_BACKEND="memory"))) is MemoryStore
        assert type(build_store(Settings(STORE_BACKEND="fragment"))) is FragmentStore
        store = build_store(Settings(STORE_BACKEND="Redis", REDIS_KEY_PREFIX="t"))
        assert isinstance(store, RedisStore)
        assert store.namespace == "t"

    def test_unknown_backend_is_rejected(self):
        from pydantic import ValidationError
        from clypse.config import Settings

        with pytest.raises(ValidationError):
            Settings(STORE_BACKEND="floppy")

    def test_sql_backend_owns_an_asyncpg_engine(self):
        from clypse.config import Settings
        from clypse.storage.factory import build_store
        from clypse.storage.sql_store import SqlStore

        store = build_store(Settings(STORE_BACKEND="sql", DB_URL="postgres://u:p@db:5432/clypse"))
        assert isinstance(store, SqlStore)
        assert store.engine.url.drivername == "postgresql+asyncpg"
        assert store.engine.url.database == "clypse"


@pytest.mark.parametrize("url", [
    "postgresql://u:p@db:5432/clypse",
    "postgres://u:p@db:5432/clypse",
    "postgresql+psycopg2://u:p@db:5432/clypse",
    "postgresql+asyncpg://u:p@db:5432/clypse",
])
def test_database_url_is_rewritten_for_asyncpg(url):
    from clypse.db.base import to_async_url

    assert to_async_url(url) == "postgresql+asyncpg://u:p@db:5432/clypse"

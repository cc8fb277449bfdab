# tests/api/test_routes.py
# HTTP behaviour of the sharing API over an in-memory store

import io
import re

import pytest
from fastapi import UploadFile
from fastapi.testclient import TestClient

from clypse.config import Settings
from clypse.constants import CODE_PATTERN
from clypse.main_fastapi import create_app
from clypse.middleware.error_handler import PayloadTooLargeError
from clypse.routers.files import read_upload
from clypse.storage.memory import MemoryStore

MAC_UA = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/605.1.15"
WINDOWS_UA = "Mozilla/5.0 (Windows NT 10.0; Win64; x64)"


def make_client(**overrides) -> TestClient:
    overrides.setdefault("SWEEP_IN_PROCESS", False)
    app = create_app(store=MemoryStore(), settings=Settings(**overrides))
    return TestClient(app)


@pytest.fixture
def client():
    with make_client() as c:
        yield c


def upload(client, name="hello.txt", data=b"hello world", content_type="text/plain"):
    return client.post("/api/files", files={"file": (name, data, content_type)})


class TestFiles:

    def test_upload_and_download(self, client):
        response = upload(client)
        assert response.status_code == 201
        body = response.json()
        assert re.match(CODE_PATTERN, body["code"])
        assert body["file_name"] == "hello.txt"
        assert body["size"] == 11
        assert body["size_label"] == "11 Bytes"
        assert "payload" not in body

        download = client.get(f"/api/files/{body['code'].lower()}/download")
        assert download.status_code == 200
        assert download.content == b"hello world"
        assert download.headers["content-type"].startswith("text/plain")
        assert "hello.txt" in download.headers["content-disposition"]

    def test_metadata_and_listing(self, client):
        first = upload(client, name="a.txt").json()["code"]
        second = upload(client, name="b.txt").json()["code"]

        meta = client.get(f"/api/files/{first}")
        assert meta.status_code == 200
        assert meta.json()["file_name"] == "a.txt"

        listed = [item["code"] for item in client.get("/api/files").json()]
        assert set(listed) == {first, second}

    def test_unknown_code(self, client):
        response = client.get("/api/files/ZZZZ/download")
        assert response.status_code == 404
        error = response.json()["error"]
        assert error["code"] == "NOT_FOUND"
        assert error["message"] == "No file found with code: ZZZZ"

    @pytest.mark.parametrize("code", ["AB1", "ABCDE", "AB0K"])
    def test_malformed_code(self, client, code):
        response = client.get(f"/api/files/{code}")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_CODE"

    def test_oversized_upload(self):
        with make_client(MAX_FILE_SIZE=4) as client:
            response = upload(client, data=b"12345")
        assert response.status_code == 413
        assert response.json()["error"]["code"] == "PAYLOAD_TOO_LARGE"

    def test_missing_file_field(self, client):
        response = client.post("/api/files")
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestRooms:

    def test_room_flow(self, client):
        created = client.post("/api/rooms")
        assert created.status_code == 201
        code = created.json()["code"]
        assert re.match(CODE_PATTERN, code)

        joined = client.post(
            f"/api/rooms/{code}/join",
            json={"device_id": "dev-a"},
            headers={"User-Agent": MAC_UA},
        )
        assert joined.status_code == 200
        assert joined.json() == {"code": code, "messages": [], "participants": 1}

        client.post(
            f"/api/rooms/{code}/join",
            json={"device_id": "dev-b"},
            headers={"User-Agent": WINDOWS_UA},
        )

        posted = client.post(
            f"/api/rooms/{code}/messages",
            json={"device_id": "dev-a", "content": "hello"},
            headers={"User-Agent": MAC_UA},
        )
        assert posted.status_code == 201
        assert posted.json()["device"] == "Mac"

        client.post(
            f"/api/rooms/{code}/messages",
            json={"device_id": "dev-b", "content": "hi back", "device_name": "Laptop"},
        )

        snapshot = client.get(f"/api/rooms/{code.lower()}/messages").json()
        assert snapshot["participants"] == 2
        assert [(m["content"], m["device"]) for m in snapshot["messages"]] == [
            ("hi back", "Laptop"),
            ("hello", "Mac"),
        ]

        left = client.post(f"/api/rooms/{code}/leave", json={"device_id": "dev-b"})
        assert left.status_code == 200
        assert left.json()["success"] is True

        beat = client.post(f"/api/rooms/{code}/heartbeat", json={"device_id": "dev-a"})
        assert beat.json() == {"code": code, "participants": 1}

    def test_blank_message(self, client):
        response = client.post("/api/rooms/AB3K/messages", json={"device_id": "dev-a", "content": "   "})
        assert response.status_code == 400
        assert response.json()["error"]["message"] == "No content to send"

    def test_missing_device_id(self, client):
        response = client.post("/api/rooms/AB3K/messages", json={"content": "hello"})
        assert response.status_code == 422

    def test_empty_room(self, client):
        response = client.get("/api/rooms/AB3K/messages")
        assert response.json() == {"code": "AB3K", "messages": [], "participants": 0}


class TestOperational:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["store"]["status"] == "healthy"

        assert client.get("/health/live").json() == {"status": "alive"}
        assert client.get("/health/ready").json() == {"status": "ready"}

    def test_unhealthy_store(self):
        class DownStore(MemoryStore):
            async def ping(self):
                return False

        app = create_app(store=DownStore(), settings=Settings(SWEEP_IN_PROCESS=False))
        with TestClient(app) as client:
            assert client.get("/health").status_code == 503
            assert client.get("/health/ready").json()["status"] == "not_ready"
            assert client.get("/health/live").status_code == 200

    def test_metrics(self, client):
        upload(client)
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "clypse_request_count" in response.text
        assert "clypse_codes_allocated" in response.text

    def test_unknown_route_uses_error_envelope(self, client):
        response = client.get("/nope")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "HTTP_ERROR"

    def test_rate_limit(self):
        with make_client(API_RATE_LIMIT=2) as client:
            statuses = [client.get("/api/rooms/AB3K/messages").status_code for _ in range(3)]
            assert statuses == [200, 200, 429]
            assert client.get("/api/files").json()["error"]["code"] == "RATE_LIMIT_EXCEEDED"
            # probes are never limited
            assert client.get("/health/live").status_code == 200

    def test_forwarded_header_from_untrusted_peer_is_ignored(self):
        with make_client(API_RATE_LIMIT=2) as client:
            statuses = [
                client.get("/api/rooms/AB3K/messages", headers={"X-Forwarded-For": f"10.0.0.{i}"}).status_code
                for i in range(3)
            ]
        assert statuses == [200, 200, 429]

    def test_forwarded_header_from_trusted_proxy_is_used(self):
        with make_client(API_RATE_LIMIT=2, TRUSTED_PROXIES=["testclient"]) as client:
            statuses = [
                client.get(
                    "/api/rooms/AB3K/messages",
                    headers={"X-Forwarded-For": f"6.6.6.6, 10.0.0.{i}"},
                ).status_code
                for i in range(3)
            ]
            assert statuses == [200, 200, 200]

            # a spoofed leftmost entry does not buy a fresh budget
            spoofed = [
                client.get(
                    "/api/rooms/AB3K/messages",
                    headers={"X-Forwarded-For": f"9.9.9.{i}, 10.0.0.7"},
                ).status_code
                for i in range(3)
            ]
            assert spoofed == [200, 200, 429]

    def test_sweeper_runs_in_lifespan(self):
        store = MemoryStore()
        app = create_app(store=store, settings=Settings(SWEEP_IN_PROCESS=True, SWEEP_INTERVAL=60))
        with TestClient(app) as client:
            assert client.get("/health/live").status_code == 200
        assert app.state.store is store


class TestReadUpload:

    class CountingBuffer(io.BytesIO):
        reads = 0

        def read(self, size=-1):
            self.reads += 1
            return super().read(size)

    @pytest.mark.asyncio
    async def test_stops_reading_past_the_limit(self):
        buffer = self.CountingBuffer(b"x" * (3 * 1024 * 1024))
        upload = UploadFile(file=buffer, filename="big.bin")

        with pytest.raises(PayloadTooLargeError) as exc:
            await read_upload(upload, limit=1024 * 1024 + 10)
        assert buffer.reads == 2
        assert exc.value.details["size"] == 2 * 1024 * 1024

    @pytest.mark.asyncio
    async def test_declared_size_is_rejected_without_reading(self):
        buffer = self.CountingBuffer(b"x" * 10)
        upload = UploadFile(file=buffer, filename="big.bin", size=10)

        with pytest.raises(PayloadTooLargeError):
            await read_upload(upload, limit=4)
        assert buffer.reads == 0

    @pytest.mark.asyncio
    async def test_small_upload_is_read_whole(self):
        upload = UploadFile(file=io.BytesIO(b"hello"), filename="a.txt")
        assert await read_upload(upload, limit=5) == b"hello"

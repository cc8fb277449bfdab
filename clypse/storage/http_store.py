# clypse/storage/http_store.py
# Remote document store used as ad-hoc shared storage
#
# Contract of the remote API:
#   GET    {base}/{key}        -> 200 raw value | 404
#   PUT    {base}/{key}        <- raw value
#   DELETE {base}/{key}
#   GET    {base}?prefix=...   -> 200 JSON list of keys

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from clypse.middleware.circuit_breaker import StoreBreaker, breaker_for
from clypse.middleware.error_handler import StorageError

logger = logging.getLogger(__name__)


class HttpDocumentStore:
    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        breaker: Optional[StoreBreaker] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._breaker = breaker or breaker_for("Document store")

    def _url(self, key: str) -> str:
        return f"{self.base_url}/{quote(key, safe='')}"

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await asyncio.wait_for(self._http.request(method, url, **kwargs), self.timeout)
            # 404 is an answer, not a failure of the remote store
            if response.status_code != 404:
                response.raise_for_status()
            return response
        except httpx.HTTPStatusError as e:
            logger.warning(f"Document store answered {e.response.status_code} for {method} {url}")
            raise StorageError(
                "Document store rejected the request",
                details={"status": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            logger.warning(f"Document store request failed: {type(e).__name__}: {e}")
            raise StorageError("Document store is unreachable") from e

    async def _call(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        return await self._breaker.call(self._send, method, url, **kwargs)

    async def get(self, key: str) -> str | None:
        response = await self._call("GET", self._url(key))
        if response.status_code == 404:
            return None
        return response.text

    async def set(self, key: str, value: str) -> None:
        await self._call(
            "PUT",
            self._url(key),
            content=value.encode("utf-8"),
            headers={"Content-Type": "application/json"},
        )

    async def remove(self, key: str) -> None:
        await self._call("DELETE", self._url(key))

    async def list_by_prefix(self, prefix: str) -> list[str]:
        response = await self._call("GET", self.base_url, params={"prefix": prefix})
        if response.status_code == 404:
            return []
        try:
            keys = response.json()
        except ValueError as e:
            raise StorageError("Document store returned an invalid key list") from e
        if not isinstance(keys, list):
            raise StorageError("Document store returned an invalid key list")
        return sorted(str(k) for k in keys if str(k).startswith(prefix))

    async def ping(self) -> bool:
        try:
            await self._call("GET", self.base_url, params={"prefix": ""})
            return True
        except StorageError:
            return False

    async def close(self) -> None:
        await self._http.aclose()

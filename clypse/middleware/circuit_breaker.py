# clypse/middleware/circuit_breaker.py
# Guards a remote store: fails fast while it keeps failing, never retries.
# Whatever goes wrong, callers only ever see a StorageError.

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from clypse.middleware.error_handler import StorageError

logger = logging.getLogger(__name__)


class BreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"            # calls rejected until recovery_timeout passes
    HALF_OPEN = "half_open"  # next call decides


class StoreUnavailableError(StorageError):
    """The breaker is open, so the store was not contacted."""

    def __init__(self, store_name: str, retry_after: float):
        super().__init__(
            f"{store_name} is temporarily unavailable",
            details={"retry_after": round(retry_after, 1)},
        )
        self.retry_after = retry_after


class StoreBreaker:
    """
    Counts consecutive failures of one store.

    After `failure_threshold` of them the breaker opens and rejects calls with
    StoreUnavailableError. Once `recovery_timeout` seconds have passed a single
    call is let through: success closes the breaker, failure opens it again.
    Timeouts count as failures and surface as StorageError("<name> timed out").
    """

    def __init__(self, name: str, failure_threshold: int = 5, recovery_timeout: float = 30.0):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.state = BreakerState.CLOSED
        self.failures = 0
        self._opened_at: Optional[float] = None

    def _move(self, state: BreakerState) -> None:
        if state != self.state:
            logger.info(f"StoreBreaker '{self.name}': {self.state.value} -> {state.value}")
            self.state = state

    def _admit(self) -> None:
        if self.state != BreakerState.OPEN:
            return
        waited = time.monotonic() - (self._opened_at or 0.0)
        if waited < self.recovery_timeout:
            raise StoreUnavailableError(self.name, self.recovery_timeout - waited)
        self._move(BreakerState.HALF_OPEN)

    def _failed(self) -> None:
        self.failures += 1
        if self.state == BreakerState.HALF_OPEN or self.failures >= self.failure_threshold:
            self._opened_at = time.monotonic()
            self._move(BreakerState.OPEN)

    def _succeeded(self) -> None:
        self.failures = 0
        self._move(BreakerState.CLOSED)

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        self._admit()
        try:
            result = await func(*args, **kwargs)
        except asyncio.TimeoutError as e:
            self._failed()
            logger.warning(f"StoreBreaker '{self.name}': call timed out")
            raise StorageError(f"{self.name} timed out") from e
        except Exception:
            self._failed()
            raise
        self._succeeded()
        return result


_breakers: dict[str, StoreBreaker] = {}


def breaker_for(name: str, failure_threshold: int = 5, recovery_timeout: float = 30.0) -> StoreBreaker:
    """One breaker per store name, shared by every client of that store."""
    if name not in _breakers:
        _breakers[name] = StoreBreaker(name, failure_threshold, recovery_timeout)
    return _breakers[name]

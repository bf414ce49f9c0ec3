"""Short-lived key-value storage for in-flight OAuth attempts.

Two entries exist per attempt, both with the same TTL:

  oauth_state:{state}     JSON ``OAuthStateRecord``
  oauth_verifier:{state}  PKCE verifier (PKCE providers only)

A third, ``oauth_exchange_attempts:{state}``, counts failed code exchanges.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Optional, Protocol, Tuple

import redis.asyncio as redis_asyncio
from redis.exceptions import RedisError

from ..core.config import OAUTH_REQUEST_TIMEOUT, REDIS_URL, STATE_STORE_BACKEND
from ..errors import ConfigurationError, StoreUnavailable

logger = logging.getLogger(__name__)


def state_key(state: str) -> str:
    return f"oauth_state:{state}"


def verifier_key(state: str) -> str:
    return f"oauth_verifier:{state}"


def attempts_key(state: str) -> str:
    return f"oauth_exchange_attempts:{state}"


def flow_keys(state: str) -> Tuple[str, str, str]:
    return state_key(state), verifier_key(state), attempts_key(state)


class StateStore(Protocol):
    """Shared store with per-key expiry."""

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    async def get(self, key: str) -> Optional[str]:
        ...

    async def delete(self, key: str) -> bool:
        """Remove ``key``; return whether it was present."""
        ...


class MemoryStateStore:
    """Process-local store for development and tests.

    Not shared between processes, so only suitable for a single worker.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    async def delete(self, key: str) -> bool:
        entry = self._entries.pop(key, None)
        return entry is not None and self._clock() < entry[1]

    def __len__(self) -> int:
        now = self._clock()
        return sum(1 for _, expires_at in self._entries.values() if now < expires_at)


class RedisStateStore:
    """Store backed by Redis, shared by every server process."""

    def __init__(
        self, client: redis_asyncio.Redis, timeout: float = OAUTH_REQUEST_TIMEOUT
    ) -> None:
        self._client = client
        self._timeout = timeout

    async def _call(self, operation: str, awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self._timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            logger.error(
                "State store %s failed", operation, extra={"error": type(exc).__name__}
            )
            raise StoreUnavailable(
                "Sign-in is temporarily unavailable. Please try again."
            ) from exc

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._call("put", self._client.set(key, value, ex=ttl_seconds))

    async def get(self, key: str) -> Optional[str]:
        value = await self._call("get", self._client.get(key))
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def delete(self, key: str) -> bool:
        removed = await self._call("delete", self._client.delete(key))
        return bool(removed)

    async def aclose(self) -> None:
        await self._client.aclose()


def build_state_store(
    backend: str = STATE_STORE_BACKEND, url: str = REDIS_URL
) -> StateStore:
    """Create the configured store (``memory`` or ``redis``)."""

    if backend == "memory":
        return MemoryStateStore()
    if backend == "redis":
        client = redis_asyncio.from_url(
            url,
            decode_responses=True,
            socket_timeout=OAUTH_REQUEST_TIMEOUT,
            socket_connect_timeout=OAUTH_REQUEST_TIMEOUT,
        )
        return RedisStateStore(client)
    raise ConfigurationError(f"Unsupported STATE_STORE_BACKEND: {backend}")


__all__ = [
    "MemoryStateStore",
    "RedisStateStore",
    "StateStore",
    "attempts_key",
    "build_state_store",
    "flow_keys",
    "state_key",
    "verifier_key",
]

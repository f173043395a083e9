"""Redis implementation of the ephemeral store."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

from redis.exceptions import RedisError

from ..exceptions import StoreUnavailableError
from ..instrumentation import StoreCall, get_hook_registry
from ..ports import IEphemeralStore

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from redis.asyncio import Redis

logger = logging.getLogger("otp_engine.redis")

# Creates-or-increments in one round trip. The TTL is only set when the key
# has none, i.e. on creation, so later increments never slide the window.
_INCREMENT_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
if redis.call('TTL', KEYS[1]) == -1 then
    redis.call('EXPIRE', KEYS[1], ARGV[1])
end
return count
"""

# Connection loss, timeouts and failover replies (READONLY, LOADING, ...) all
# mean the store cannot serve the call right now.
_UNAVAILABLE_ERRORS = (RedisError, asyncio.TimeoutError)


class RedisEphemeralStore(IEphemeralStore):
    """Distributed TTL store backed by Redis.

    Every call goes through the instrumentation hook registry under the
    call name ``otp.store.<op>``. Any Redis error, timeouts included, is
    raised as :class:`StoreUnavailableError`; configure ``socket_timeout`` on
    the client so a stalled server cannot hang a verification.

    Example:
        ```python
        from redis.asyncio import Redis

        client = Redis.from_url("redis://localhost:6379/0", socket_timeout=2.0)
        store = RedisEphemeralStore(client)
        ```
    """

    def __init__(self, redis_client: Redis[Any], key_prefix: str = "2fa") -> None:
        """
        Initialize the store with a Redis client.

        Args:
            redis_client: Async Redis client instance.
            key_prefix: Namespace prepended to every key.
        """
        self._redis = redis_client
        self._key_prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}:{key}" if self._key_prefix else key

    async def _call(
        self,
        operation: str,
        key: str,
        handler: Callable[[], Awaitable[Any]],
    ) -> Any:
        call = StoreCall.for_key(operation, key)
        try:
            return await get_hook_registry().run(call, handler)
        except _UNAVAILABLE_ERRORS as e:
            logger.error("Redis %s failed: %s", operation, e)
            raise StoreUnavailableError(operation, str(e)) from e

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        payload = json.dumps(value)
        await self._call(
            "set",
            key,
            lambda: self._redis.set(self._key(key), payload, ex=ttl_seconds),
        )

    async def get(self, key: str) -> Any | None:
        raw = await self._call("get", key, lambda: self._redis.get(self._key(key)))
        if raw is None:
            return None
        return json.loads(raw)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        full_keys = [self._key(k) for k in keys]
        deleted = await self._call(
            "delete", keys[0], lambda: self._redis.delete(*full_keys)
        )
        return int(deleted)

    async def ttl(self, key: str) -> int | None:
        remaining = await self._call("ttl", key, lambda: self._redis.ttl(self._key(key)))
        # -2: key absent, -1: key without expiry (never written by this package)
        if remaining is None or int(remaining) < 0:
            return None
        return int(remaining)

    async def exists(self, key: str) -> bool:
        count = await self._call("exists", key, lambda: self._redis.exists(self._key(key)))
        return bool(count)

    async def increment(self, key: str, ttl_seconds_if_new: int) -> int:
        count = await self._call(
            "increment",
            key,
            lambda: self._redis.eval(
                _INCREMENT_SCRIPT, 1, self._key(key), str(ttl_seconds_if_new)
            ),
        )
        return int(count)

    async def ping(self) -> bool:
        """Health check; returns ``False`` instead of raising."""
        try:
            return bool(await self._redis.ping())
        except _UNAVAILABLE_ERRORS:
            return False

    async def close(self) -> None:
        await self._redis.aclose()


__all__: list[str] = ["RedisEphemeralStore"]

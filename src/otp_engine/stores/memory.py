"""In-memory ephemeral store."""

from __future__ import annotations

import json
import math
import time
from typing import TYPE_CHECKING, Any

from ..ports import IEphemeralStore

if TYPE_CHECKING:
    from collections.abc import Callable


class InMemoryEphemeralStore(IEphemeralStore):
    """In-memory TTL store for TESTING and single-process demos ONLY.

    ⚠️ WARNING: Codes are stored in plain text in process memory and are not
    shared between instances. Use :class:`RedisEphemeralStore` in production.

    Values are JSON round-tripped so callers never share mutable state with
    the store, matching what a networked backend does.

    Args:
        clock: Returns the current UNIX time; inject a fake to test expiry.
    """

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.time
        # key -> (serialized value, expires_at)
        self._entries: dict[str, tuple[str, float]] = {}

    def _live(self, key: str) -> tuple[str, float] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry[1]:
            del self._entries[key]
            return None
        return entry

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._entries[key] = (json.dumps(value), self._clock() + ttl_seconds)

    async def get(self, key: str) -> Any | None:
        entry = self._live(key)
        if entry is None:
            return None
        return json.loads(entry[0])

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._live(key) is not None:
                deleted += 1
            self._entries.pop(key, None)
        return deleted

    async def ttl(self, key: str) -> int | None:
        entry = self._live(key)
        if entry is None:
            return None
        return max(1, math.ceil(entry[1] - self._clock()))

    async def exists(self, key: str) -> bool:
        return self._live(key) is not None

    async def increment(self, key: str, ttl_seconds_if_new: int) -> int:
        # No await between read and write, so this is atomic on the event loop.
        entry = self._live(key)
        if entry is None:
            self._entries[key] = ("1", self._clock() + ttl_seconds_if_new)
            return 1
        count = int(json.loads(entry[0])) + 1
        self._entries[key] = (json.dumps(count), entry[1])
        return count

    def clear(self) -> None:
        self._entries.clear()


__all__: list[str] = ["InMemoryEphemeralStore"]

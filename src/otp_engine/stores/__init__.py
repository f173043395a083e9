"""Ephemeral store adapters."""

from __future__ import annotations

from .memory import InMemoryEphemeralStore
from .redis import RedisEphemeralStore

__all__: list[str] = ["InMemoryEphemeralStore", "RedisEphemeralStore"]

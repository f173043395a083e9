"""Ports (protocols) consumed by the verification engine.

The engine owns no storage: short-lived state goes to an
:class:`IEphemeralStore`, durable per-subject data comes from an
:class:`IIdentityLookup` the application implements.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class TotpCredential:
    """Persisted TOTP credential.

    Attributes:
        secret: Base32-encoded TOTP secret.
        enabled: Whether TOTP is active for the subject.
        enabled_at: When setup was confirmed.
    """

    secret: str
    enabled: bool = True
    enabled_at: datetime | None = None


@dataclass(frozen=True)
class IdentityProfile:
    """The subject data the engine needs from the identity store."""

    subject_id: str
    email: str | None = None
    phone_number: str | None = None
    totp_credential: TotpCredential | None = None


@runtime_checkable
class IEphemeralStore(Protocol):
    """Protocol for a TTL key-value store.

    Values are JSON-serialisable. A ``None`` result means the key is absent
    (never set, deleted, or expired). Implementations raise
    :class:`~otp_engine.exceptions.StoreUnavailableError` when the backend
    cannot be reached; they must not return ``None`` in that case.
    """

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a value that expires after ``ttl_seconds``."""
        ...

    async def get(self, key: str) -> Any | None:
        """Return the stored value or ``None``."""
        ...

    async def delete(self, *keys: str) -> int:
        """Delete keys atomically.

        Returns:
            How many of the keys existed. Missing keys are ignored.
        """
        ...

    async def ttl(self, key: str) -> int | None:
        """Remaining lifetime in seconds, or ``None`` if the key is absent."""
        ...

    async def exists(self, key: str) -> bool:
        ...

    async def increment(self, key: str, ttl_seconds_if_new: int) -> int:
        """Atomically create-or-increment a counter.

        The TTL is applied only when the increment creates the key, so a
        fixed window is never extended by later increments.

        Returns:
            The counter value after the increment.
        """
        ...


@runtime_checkable
class IIdentityLookup(Protocol):
    """Protocol for the application's identity/profile store."""

    async def find_by_subject(self, subject_id: str) -> IdentityProfile | None:
        """Return the subject's profile or ``None`` if unknown."""
        ...

    async def persist_totp_credential(self, subject_id: str, secret: str) -> None:
        """Store an enabled TOTP credential for the subject.

        Implementations should encrypt the secret at rest.
        """
        ...

    async def clear_totp_credential(self, subject_id: str) -> None:
        """Remove the subject's TOTP credential. Must be idempotent."""
        ...


__all__: list[str] = [
    "TotpCredential",
    "IdentityProfile",
    "IEphemeralStore",
    "IIdentityLookup",
]

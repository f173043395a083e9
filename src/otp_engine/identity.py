"""In-memory identity lookup."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

from .ports import IdentityProfile, IIdentityLookup, TotpCredential


class InMemoryIdentityLookup(IIdentityLookup):
    """In-memory identity store for TESTING ONLY.

    ⚠️ WARNING: TOTP secrets are stored in plain text in memory.
    Do NOT use in production!
    """

    def __init__(self, profiles: list[IdentityProfile] | None = None) -> None:
        self._profiles: dict[str, IdentityProfile] = {
            p.subject_id: p for p in profiles or []
        }

    def add(self, profile: IdentityProfile) -> None:
        self._profiles[profile.subject_id] = profile

    async def find_by_subject(self, subject_id: str) -> IdentityProfile | None:
        return self._profiles.get(subject_id)

    async def persist_totp_credential(self, subject_id: str, secret: str) -> None:
        profile = self._profiles.get(subject_id)
        if profile is None:
            raise KeyError(subject_id)
        credential = TotpCredential(
            secret=secret,
            enabled=True,
            enabled_at=datetime.now(timezone.utc),
        )
        self._profiles[subject_id] = replace(profile, totp_credential=credential)

    async def clear_totp_credential(self, subject_id: str) -> None:
        profile = self._profiles.get(subject_id)
        if profile is not None:
            self._profiles[subject_id] = replace(profile, totp_credential=None)


__all__: list[str] = ["InMemoryIdentityLookup"]

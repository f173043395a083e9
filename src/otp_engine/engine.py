"""Composition root wiring the verifiers over shared dependencies."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .channel import Channel, ChannelVerifier
from .config import EngineConfig
from .rate_limit import RateLimiter
from .status import StatusAggregator
from .totp import TotpManager

if TYPE_CHECKING:
    from collections.abc import Callable

    from .ports import IEphemeralStore, IIdentityLookup
    from .results import Result
    from .status import MfaStatus


class OtpEngine:
    """All second-factor operations behind one object.

    Every collaborator is injected; there is no module-level state, so
    several engines (e.g. per tenant, or per test) can coexist.

    Example:
        ```python
        engine = OtpEngine.from_redis_url(
            "redis://localhost:6379/0",
            identity=MyIdentityLookup(),
        )

        issued = await engine.email.generate("u1", "a@b.com")
        verified = await engine.email.verify("u1", "123456")
        status = await engine.status("u1")
        ```
    """

    def __init__(
        self,
        store: IEphemeralStore,
        identity: IIdentityLookup,
        *,
        config: EngineConfig | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self.store = store
        self.identity = identity
        self.config = config or EngineConfig()
        self.rate_limiter = RateLimiter(store)

        self.email = ChannelVerifier(
            Channel.EMAIL,
            store=store,
            identity=identity,
            rate_limiter=self.rate_limiter,
            config=self.config.email,
            clock=clock,
        )
        self.sms = ChannelVerifier(
            Channel.SMS,
            store=store,
            identity=identity,
            rate_limiter=self.rate_limiter,
            config=self.config.sms,
            clock=clock,
        )
        self.totp = TotpManager(
            store=store,
            identity=identity,
            rate_limiter=self.rate_limiter,
            config=self.config.totp,
            clock=clock,
        )
        self.status_aggregator = StatusAggregator(identity=identity, totp=self.totp)

    @classmethod
    def from_redis_url(
        cls,
        url: str,
        identity: IIdentityLookup,
        *,
        config: EngineConfig | None = None,
        key_prefix: str = "2fa",
        socket_timeout: float = 2.0,
    ) -> OtpEngine:
        """Build an engine over a Redis-backed store.

        Args:
            url: Redis URL, e.g. ``redis://localhost:6379/0``.
            identity: Application identity lookup.
            config: Engine configuration.
            key_prefix: Namespace for all keys written by the engine.
            socket_timeout: Per-call network timeout in seconds.
        """
        from redis.asyncio import Redis

        from .stores.redis import RedisEphemeralStore

        client = Redis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(
            RedisEphemeralStore(client, key_prefix=key_prefix),
            identity,
            config=config,
        )

    def channel(self, channel: Channel | str) -> ChannelVerifier:
        """Return the verifier for ``"email"`` or ``"sms"``."""
        channel = Channel(channel)
        return self.email if channel is Channel.EMAIL else self.sms

    async def status(self, subject_id: str) -> Result[MfaStatus]:
        """Masked summary of the subject's configured channels."""
        return await self.status_aggregator.status(subject_id)


__all__: list[str] = ["OtpEngine"]

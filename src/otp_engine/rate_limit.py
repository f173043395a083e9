"""Fixed-window rate limiter on top of the ephemeral store."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .config import RateLimitConfig, RateLimitPolicy
from .exceptions import StoreUnavailableError
from .ports import IEphemeralStore

logger = logging.getLogger("otp_engine.rate_limit")


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a rate limit check.

    Attributes:
        allowed: Whether the operation may proceed.
        remaining: Operations left in the current window.
        reset_in_seconds: Seconds until the window resets.
    """

    allowed: bool
    remaining: int
    reset_in_seconds: int


class RateLimiter:
    """Fixed-window attempt counter.

    Each check is one atomic ``increment`` with TTL-on-create: the first hit
    opens a window of ``window_seconds`` and the counter disappears when it
    closes. Windows are fixed, not sliding.

    Store failures follow the configured :class:`RateLimitPolicy`. The
    default, FAIL_OPEN, lets the operation through when the counter cannot
    be read. The verification lookups that follow still fail closed: if the
    store is down they raise rather than accept a code.
    """

    def __init__(self, store: IEphemeralStore) -> None:
        self.store = store

    async def check_and_consume(
        self,
        key: str,
        max_attempts: int,
        window_seconds: int,
        *,
        policy: RateLimitPolicy = RateLimitPolicy.FAIL_OPEN,
    ) -> RateLimitDecision:
        """Consume one unit of the budget for ``key``.

        Raises:
            StoreUnavailableError: Store unreachable and policy is FAIL_CLOSED.
        """
        try:
            count = await self.store.increment(key, window_seconds)
            reset_in = await self.store.ttl(key)
        except StoreUnavailableError:
            if policy is RateLimitPolicy.FAIL_CLOSED:
                raise
            logger.warning("Rate limit store unavailable, failing open for %s", key)
            return RateLimitDecision(
                allowed=True,
                # Reported as if this call were the first in a fresh window.
                remaining=max(0, max_attempts - 1),
                reset_in_seconds=window_seconds,
            )

        if reset_in is None:
            # Window closed between the two calls; the next hit opens a new one.
            reset_in = window_seconds

        allowed = count <= max_attempts
        if not allowed:
            logger.info("Rate limit exceeded for %s (%d/%d)", key, count, max_attempts)

        return RateLimitDecision(
            allowed=allowed,
            remaining=max(0, max_attempts - count),
            reset_in_seconds=reset_in,
        )

    async def check(self, key: str, limit: RateLimitConfig) -> RateLimitDecision:
        """``check_and_consume`` driven by a :class:`RateLimitConfig`."""
        return await self.check_and_consume(
            key,
            limit.max_attempts,
            limit.window_seconds,
            policy=limit.policy,
        )

    async def reset(self, key: str) -> None:
        """Clear the counter for ``key`` (e.g. after a successful verify)."""
        await self.store.delete(key)
        logger.debug("Rate limit counter cleared for %s", key)


__all__: list[str] = ["RateLimitDecision", "RateLimiter"]

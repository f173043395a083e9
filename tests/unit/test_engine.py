"""Tests for the OtpEngine composition root."""

from __future__ import annotations

import pytest

from otp_engine import (
    Channel,
    ChannelConfig,
    EngineConfig,
    FailureKind,
    InMemoryEphemeralStore,
    InMemoryIdentityLookup,
    OtpEngine,
    RedisEphemeralStore,
)


class TestWiring:
    def test_components_share_store_and_limiter(self, engine: OtpEngine) -> None:
        assert engine.email.store is engine.store
        assert engine.sms.store is engine.store
        assert engine.totp.store is engine.store
        assert engine.email.rate_limiter is engine.rate_limiter
        assert engine.totp.rate_limiter is engine.rate_limiter

    def test_channel_lookup(self, engine: OtpEngine) -> None:
        assert engine.channel("email") is engine.email
        assert engine.channel(Channel.SMS) is engine.sms

    def test_unknown_channel(self, engine: OtpEngine) -> None:
        with pytest.raises(ValueError):
            engine.channel("fax")

    def test_config_is_routed_per_channel(
        self, store: InMemoryEphemeralStore, identity: InMemoryIdentityLookup
    ) -> None:
        engine = OtpEngine(
            store,
            identity,
            config=EngineConfig(sms=ChannelConfig(code_length=4)),
        )

        assert engine.sms.config.code_length == 4
        assert engine.email.config.code_length == 6

    def test_from_redis_url(self, identity: InMemoryIdentityLookup) -> None:
        # Building the client does not connect.
        engine = OtpEngine.from_redis_url(
            "redis://localhost:6379/0", identity, key_prefix="mfa"
        )

        assert isinstance(engine.store, RedisEphemeralStore)
        assert engine.store._key("code:email:u1") == "mfa:code:email:u1"


@pytest.mark.asyncio
class TestEngineFlows:
    async def test_instances_do_not_share_state(
        self, identity: InMemoryIdentityLookup, clock
    ) -> None:
        first = OtpEngine(InMemoryEphemeralStore(clock=clock), identity, clock=clock)
        second = OtpEngine(InMemoryEphemeralStore(clock=clock), identity, clock=clock)

        await first.email.generate("u1", "a@b.com")

        assert not await second.email.has_active_code("u1")

    async def test_email_round_trip(self, engine: OtpEngine) -> None:
        issued = (await engine.channel("email").generate("u1", "a@b.com")).unwrap()

        assert (await engine.channel("email").verify("u1", issued.code)).ok

    async def test_status(self, engine: OtpEngine) -> None:
        assert (await engine.status("u1")).ok
        assert (await engine.status("ghost")).kind is FailureKind.UNKNOWN_SUBJECT

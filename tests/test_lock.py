"""Lease semantics of the distributed lock against a real SQLite store."""

import asyncio

import pytest
import pytest_asyncio

from vaste_bot.errors import InvalidInputError
from vaste_bot.services.lock import DistributedLockService


class FakeClock:
    def __init__(self, now: int = 1_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def locks(vaste, clock):
    return DistributedLockService(vaste.bot_config_repo, clock=clock)


@pytest_asyncio.fixture
async def config(vaste, agent):
    return await vaste.bot_configs.connect(agent.id, "token-1", "client-1")


class TestClaim:
    @pytest.mark.asyncio
    async def test_free_lock_is_claimed(self, locks, config, clock):
        result = await locks.claim(config.id, "a", 1000)

        assert result.ok
        assert result.reason == "claimed"
        assert result.holder == "a"
        assert result.expires_at == clock.now + 1000
        assert result.fencing_token == 1

    @pytest.mark.asyncio
    async def test_unexpired_lock_is_denied(self, locks, config, clock):
        await locks.claim(config.id, "a", 1000)
        clock.now += 999

        result = await locks.claim(config.id, "b", 1000)

        assert not result.ok
        assert result.reason == "held_by_other"
        assert result.holder == "a"

    @pytest.mark.asyncio
    async def test_expired_lock_is_reclaimable(self, locks, config, clock):
        first = await locks.claim(config.id, "a", 1000)
        clock.now += 1001

        result = await locks.claim(config.id, "b", 1000)

        assert result.ok
        assert result.holder == "b"
        assert result.fencing_token > first.fencing_token

    @pytest.mark.asyncio
    async def test_holder_may_reclaim(self, locks, config):
        await locks.claim(config.id, "a", 1000)

        assert (await locks.claim(config.id, "a", 1000)).ok

    @pytest.mark.asyncio
    async def test_unknown_resource(self, locks):
        result = await locks.claim("f" * 32, "a", 1000)

        assert not result.ok
        assert result.reason == "not_found"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ttl", [0, -5])
    async def test_ttl_must_be_positive(self, locks, config, ttl):
        with pytest.raises(InvalidInputError):
            await locks.claim(config.id, "a", ttl)

    @pytest.mark.asyncio
    async def test_concurrent_claims_have_one_winner(self, locks, config):
        results = await asyncio.gather(*(locks.claim(config.id, f"runner-{i}", 5000) for i in range(8)))

        winners = [r for r in results if r.ok]
        assert len(winners) == 1
        assert all(r.holder == winners[0].holder for r in results)


class TestRenewAndRelease:
    @pytest.mark.asyncio
    async def test_holder_extends_lease(self, locks, config, clock):
        await locks.claim(config.id, "a", 1000)
        clock.now += 500

        result = await locks.renew(config.id, "a", 1000)

        assert result.ok
        assert result.reason == "renewed"
        assert result.expires_at == clock.now + 1000

    @pytest.mark.asyncio
    async def test_expired_lease_cannot_be_renewed(self, locks, config, clock):
        await locks.claim(config.id, "a", 1000)
        clock.now += 1001

        result = await locks.renew(config.id, "a", 1000)

        assert not result.ok
        assert result.reason == "lease_lost"

    @pytest.mark.asyncio
    async def test_taken_over_lease_cannot_be_renewed(self, locks, config, clock):
        await locks.claim(config.id, "a", 1000)
        clock.now += 1001
        await locks.claim(config.id, "b", 1000)

        result = await locks.renew(config.id, "a", 1000)

        assert not result.ok
        assert result.holder == "b"

    @pytest.mark.asyncio
    async def test_release_frees_lock_for_others(self, locks, config):
        await locks.claim(config.id, "a", 60000)

        assert await locks.release(config.id, "a") is True
        assert (await locks.claim(config.id, "b", 60000)).ok

    @pytest.mark.asyncio
    async def test_release_by_non_holder_is_noop(self, locks, config):
        await locks.claim(config.id, "a", 60000)

        assert await locks.release(config.id, "b") is False
        assert not (await locks.claim(config.id, "b", 60000)).ok

    @pytest.mark.asyncio
    async def test_release_never_raises(self, locks):
        assert await locks.release("f" * 32, "a") is False

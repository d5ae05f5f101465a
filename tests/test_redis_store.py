"""Tests for the Redis-backed grant store."""

import json
import os
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from devicelink.errors import CodeCollisionError
from devicelink.grants import redis_store
from devicelink.grants.models import Grant, GrantStatus
from devicelink.grants.redis_store import (
    CODE_PREFIX,
    GRANT_PREFIX,
    LOCK_PREFIX,
    LOCK_TTL_MS,
    GrantLockError,
    RedisGrantStore,
)


@pytest.fixture
def mock_redis() -> AsyncMock:
    """Create a mock Redis client."""
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock(return_value=True)
    redis.eval = AsyncMock(return_value=0)
    redis.aclose = AsyncMock()
    return redis


@pytest.fixture
def redis_grant_store(mock_redis: AsyncMock, clock) -> RedisGrantStore:
    return RedisGrantStore(mock_redis, clock=clock)


def _grant(clock, device_id: str = "d1", code: str = "ABCD-EF23") -> Grant:
    return Grant.new(device_id, code, ttl=timedelta(minutes=10), now=clock())


async def _keys(*keys: str):
    for key in keys:
        yield key


class TestCreate:
    @pytest.mark.asyncio
    async def test_writes_both_keys_with_ttl(
        self, redis_grant_store: RedisGrantStore, mock_redis: AsyncMock, clock
    ) -> None:
        grant = _grant(clock)
        await redis_grant_store.create(grant)

        args = mock_redis.eval.call_args.args
        assert args[1] == 2
        assert args[2] == GRANT_PREFIX + "d1"
        assert args[3] == CODE_PREFIX + "ABCD-EF23"
        assert json.loads(args[4])["device_id"] == "d1"
        assert args[5] == "d1"
        assert args[6] == 600_000

    @pytest.mark.asyncio
    async def test_ttl_tracks_remaining_lifetime(
        self, redis_grant_store: RedisGrantStore, mock_redis: AsyncMock, clock
    ) -> None:
        grant = _grant(clock)
        clock.advance(590)
        await redis_grant_store.create(grant)
        assert mock_redis.eval.call_args.args[6] == 10_000

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("result", "field"), [(1, "device_id"), (2, "pairing_code")])
    async def test_collision(
        self,
        redis_grant_store: RedisGrantStore,
        mock_redis: AsyncMock,
        clock,
        result: int,
        field: str,
    ) -> None:
        mock_redis.eval.return_value = result
        with pytest.raises(CodeCollisionError) as exc:
            await redis_grant_store.create(_grant(clock))
        assert exc.value.field == field


class TestRead:
    @pytest.mark.asyncio
    async def test_missing(self, redis_grant_store: RedisGrantStore) -> None:
        assert await redis_grant_store.get_by_device_id("nope") is None
        assert await redis_grant_store.get_by_pairing_code("ZZZZ-ZZZZ") is None

    @pytest.mark.asyncio
    async def test_live_grant(
        self, redis_grant_store: RedisGrantStore, mock_redis: AsyncMock, clock
    ) -> None:
        grant = _grant(clock)
        mock_redis.get.return_value = json.dumps(grant.to_dict())

        loaded = await redis_grant_store.get_by_device_id("d1")
        assert loaded == grant
        mock_redis.get.assert_awaited_with(GRANT_PREFIX + "d1")

    @pytest.mark.asyncio
    async def test_by_pairing_code(
        self, redis_grant_store: RedisGrantStore, mock_redis: AsyncMock, clock
    ) -> None:
        grant = _grant(clock)
        mock_redis.get.side_effect = ["d1", json.dumps(grant.to_dict())]

        loaded = await redis_grant_store.get_by_pairing_code("ABCD-EF23")
        assert loaded is not None
        assert loaded.device_id == "d1"
        assert mock_redis.get.await_args_list[0].args == (CODE_PREFIX + "ABCD-EF23",)

    @pytest.mark.asyncio
    async def test_expired_grant_is_deleted_on_read(
        self, redis_grant_store: RedisGrantStore, mock_redis: AsyncMock, clock
    ) -> None:
        mock_redis.get.return_value = json.dumps(_grant(clock).to_dict())
        clock.advance(601)

        assert await redis_grant_store.get_by_device_id("d1") is None
        mock_redis.eval.assert_awaited_once()
        assert mock_redis.eval.call_args.args[2] == GRANT_PREFIX + "d1"

    @pytest.mark.asyncio
    async def test_expired_grant_kept_when_asked(
        self, redis_grant_store: RedisGrantStore, mock_redis: AsyncMock, clock
    ) -> None:
        mock_redis.get.return_value = json.dumps(_grant(clock).to_dict())
        clock.advance(601)

        loaded = await redis_grant_store.get_by_device_id("d1", expire=False)
        assert loaded is not None
        mock_redis.eval.assert_not_awaited()


class TestWrite:
    @pytest.mark.asyncio
    async def test_update_keeps_ttl(
        self, redis_grant_store: RedisGrantStore, mock_redis: AsyncMock, clock
    ) -> None:
        grant = _grant(clock)
        grant.approve("u1", credential_ref="u1", now=clock())
        await redis_grant_store.update(grant)

        args, kwargs = mock_redis.set.call_args
        assert args[0] == GRANT_PREFIX + "d1"
        assert json.loads(args[1])["status"] == GrantStatus.APPROVED.value
        assert kwargs == {"xx": True, "keepttl": True}

    @pytest.mark.asyncio
    async def test_delete(self, redis_grant_store: RedisGrantStore, mock_redis: AsyncMock) -> None:
        mock_redis.eval.return_value = 1
        assert await redis_grant_store.delete("d1") is True
        assert mock_redis.eval.call_args.args[2:] == (GRANT_PREFIX + "d1", CODE_PREFIX)

        mock_redis.eval.return_value = 0
        assert await redis_grant_store.delete("d1") is False

    @pytest.mark.asyncio
    async def test_sweep_removes_only_expired(
        self, redis_grant_store: RedisGrantStore, mock_redis: AsyncMock, clock
    ) -> None:
        stale = _grant(clock, device_id="d1", code="AAAA-AAAA")
        clock.advance(300)
        fresh = _grant(clock, device_id="d2", code="BBBB-BBBB")
        clock.advance(301)

        mock_redis.scan_iter = MagicMock(
            return_value=_keys(GRANT_PREFIX + "d1", GRANT_PREFIX + "d2", GRANT_PREFIX + "gone")
        )
        mock_redis.get.side_effect = [
            json.dumps(stale.to_dict()),
            json.dumps(fresh.to_dict()),
            None,
        ]
        mock_redis.eval.return_value = 1

        assert await redis_grant_store.sweep() == 1
        assert mock_redis.scan_iter.call_args.kwargs["match"] == GRANT_PREFIX + "*"
        mock_redis.eval.assert_awaited_once()
        assert mock_redis.eval.call_args.args[2] == GRANT_PREFIX + "d1"

    @pytest.mark.asyncio
    async def test_sweep_does_not_count_concurrent_deletes(
        self, redis_grant_store: RedisGrantStore, mock_redis: AsyncMock, clock
    ) -> None:
        stale = _grant(clock)
        clock.advance(601)
        mock_redis.scan_iter = MagicMock(return_value=_keys(GRANT_PREFIX + "d1"))
        mock_redis.get.return_value = json.dumps(stale.to_dict())
        mock_redis.eval.return_value = 0

        assert await redis_grant_store.sweep() == 0

    @pytest.mark.asyncio
    async def test_close(self, redis_grant_store: RedisGrantStore, mock_redis: AsyncMock) -> None:
        await redis_grant_store.close()
        mock_redis.aclose.assert_awaited_once()


class TestLock:
    @pytest.mark.asyncio
    async def test_acquire_and_release(
        self, redis_grant_store: RedisGrantStore, mock_redis: AsyncMock
    ) -> None:
        mock_redis.eval.return_value = 1
        async with redis_grant_store.lock("d1"):
            args, kwargs = mock_redis.set.call_args
            assert args[0] == LOCK_PREFIX + "d1"
            assert kwargs == {"nx": True, "px": LOCK_TTL_MS}

        release = mock_redis.eval.call_args.args
        assert release[2] == LOCK_PREFIX + "d1"
        assert release[3] == args[1]

    @pytest.mark.asyncio
    async def test_retries_until_free(
        self, redis_grant_store: RedisGrantStore, mock_redis: AsyncMock
    ) -> None:
        mock_redis.set.side_effect = [None, None, True]
        with patch.object(redis_store, "LOCK_RETRY_DELAY", 0):
            async with redis_grant_store.lock("d1"):
                pass
        assert mock_redis.set.await_count == 3

    @pytest.mark.asyncio
    async def test_timeout(self, redis_grant_store: RedisGrantStore, mock_redis: AsyncMock) -> None:
        mock_redis.set.return_value = None
        with (
            patch.object(redis_store, "LOCK_WAIT_TIMEOUT", 0.05),
            patch.object(redis_store, "LOCK_RETRY_DELAY", 0.01),
            pytest.raises(GrantLockError),
        ):
            async with redis_grant_store.lock("d1"):
                pass

    @pytest.mark.asyncio
    async def test_released_on_error(
        self, redis_grant_store: RedisGrantStore, mock_redis: AsyncMock
    ) -> None:
        with pytest.raises(RuntimeError):
            async with redis_grant_store.lock("d1"):
                raise RuntimeError("boom")
        assert mock_redis.eval.call_args.args[2] == LOCK_PREFIX + "d1"


@pytest.mark.requires_redis
@pytest.mark.skipif(not os.environ.get("DEVICELINK_TEST_REDIS_URL"), reason="Redis not configured")
class TestRedisIntegration:
    """Runs the Lua scripts against a real server."""

    @pytest.mark.asyncio
    async def test_create_read_delete(self, clock) -> None:
        store = RedisGrantStore.from_url(os.environ["DEVICELINK_TEST_REDIS_URL"], clock=clock)
        grant = _grant(clock, device_id="it-d1", code="ITIT-2345")
        try:
            await store.create(grant)
            with pytest.raises(CodeCollisionError):
                await store.create(_grant(clock, device_id="it-d2", code="ITIT-2345"))
            assert (await store.get_by_pairing_code("ITIT-2345")).device_id == "it-d1"
            assert await store.delete("it-d1") is True
            assert await store.get_by_pairing_code("ITIT-2345") is None
        finally:
            await store.delete("it-d1")
            await store.close()

    @pytest.mark.asyncio
    async def test_sweep_removes_expired_grant(self, clock) -> None:
        store = RedisGrantStore.from_url(os.environ["DEVICELINK_TEST_REDIS_URL"], clock=clock)
        grant = _grant(clock, device_id="it-d3", code="ITIT-6789")
        try:
            await store.create(grant)
            await store.sweep()
            assert await store.get_by_device_id("it-d3") is not None

            clock.advance(601)
            assert await store.sweep() >= 1
            assert await store.get_by_device_id("it-d3", expire=False) is None
            assert await store.get_by_pairing_code("ITIT-6789", expire=False) is None
        finally:
            await store.delete("it-d3")
            await store.close()

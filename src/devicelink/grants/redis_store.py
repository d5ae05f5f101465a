"""Redis-backed grant store for multi-instance deployments.

Keys:
    devicelink:grant:{device_id}     grant JSON
    devicelink:code:{pairing_code}   device_id
    devicelink:lock:{device_id}      redemption/transition lock

Both data keys are written and removed together by Lua scripts. They expire
in Redis at the grant's ``expires_at``; ``sweep()`` scans for grants whose
expiry has passed by this process's clock and removes both keys.

The lock TTL exceeds the total profile lookup budget.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import time
import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime

import structlog
from redis.asyncio import Redis

from devicelink.errors import CodeCollisionError, DeviceLinkError
from devicelink.grants.models import Grant, utcnow
from devicelink.grants.store import DEFAULT_SWEEP_INTERVAL, GrantStore

log = structlog.get_logger()

GRANT_PREFIX = "devicelink:grant:"
CODE_PREFIX = "devicelink:code:"
LOCK_PREFIX = "devicelink:lock:"

LOCK_TTL_MS = 30_000
LOCK_WAIT_TIMEOUT = 35.0
LOCK_RETRY_DELAY = 0.05
SCAN_BATCH = 500

# 0 = created, 1 = device id taken, 2 = pairing code taken
_CREATE_SCRIPT = """
if redis.call("exists", KEYS[1]) == 1 then return 1 end
if redis.call("exists", KEYS[2]) == 1 then return 2 end
redis.call("set", KEYS[1], ARGV[1], "PX", ARGV[3])
redis.call("set", KEYS[2], ARGV[2], "PX", ARGV[3])
return 0
"""

_DELETE_SCRIPT = """
local raw = redis.call("get", KEYS[1])
if not raw then return 0 end
local grant = cjson.decode(raw)
redis.call("del", KEYS[1])
local code_key = ARGV[1] .. grant["pairing_code"]
if redis.call("get", code_key) == grant["device_id"] then
    redis.call("del", code_key)
end
return 1
"""

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class GrantLockError(DeviceLinkError):
    """Failed to acquire the per-device lock in time."""

    def __init__(self, device_id: str) -> None:
        super().__init__(
            f"Timed out acquiring grant lock for {device_id[:8]}",
            details={"device_id": device_id[:8]},
        )


class RedisGrantStore(GrantStore):
    """Grant store shared by every instance that points at the same Redis."""

    def __init__(
        self,
        redis: Redis,
        *,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(sweep_interval=sweep_interval, clock=clock)
        self._redis = redis
        self._instance_id = uuid.uuid4().hex[:8]

    @classmethod
    def from_url(cls, url: str, **kwargs: object) -> RedisGrantStore:
        return cls(Redis.from_url(url, decode_responses=True), **kwargs)  # type: ignore[arg-type]

    async def close(self) -> None:
        await self._redis.aclose()

    def _ttl_ms(self, grant: Grant) -> int:
        remaining = grant.expires_at - self._clock()
        return max(1, int(remaining.total_seconds() * 1000))

    async def create(self, grant: Grant) -> None:
        result = await self._redis.eval(
            _CREATE_SCRIPT,
            2,
            GRANT_PREFIX + grant.device_id,
            CODE_PREFIX + grant.pairing_code,
            json.dumps(grant.to_dict()),
            grant.device_id,
            self._ttl_ms(grant),
        )
        if int(result) == 1:
            raise CodeCollisionError("device_id", grant.device_id)
        if int(result) == 2:
            raise CodeCollisionError("pairing_code", grant.pairing_code)

    async def get_by_device_id(self, device_id: str, *, expire: bool = True) -> Grant | None:
        raw = await self._redis.get(GRANT_PREFIX + device_id)
        if raw is None:
            return None
        grant = Grant.from_dict(json.loads(raw))
        if expire and grant.is_expired(self._clock()):
            await self.delete(device_id)
            return None
        return grant

    async def get_by_pairing_code(self, pairing_code: str, *, expire: bool = True) -> Grant | None:
        device_id = await self._redis.get(CODE_PREFIX + pairing_code)
        if device_id is None:
            return None
        return await self.get_by_device_id(device_id, expire=expire)

    async def update(self, grant: Grant) -> None:
        # XX: only overwrite a grant that still exists; KEEPTTL: keep its expiry
        await self._redis.set(
            GRANT_PREFIX + grant.device_id,
            json.dumps(grant.to_dict()),
            xx=True,
            keepttl=True,
        )

    async def delete(self, device_id: str) -> bool:
        removed = await self._redis.eval(_DELETE_SCRIPT, 1, GRANT_PREFIX + device_id, CODE_PREFIX)
        return bool(removed)

    async def sweep(self, now: datetime | None = None) -> int:
        cutoff = now or self._clock()
        removed = 0
        async for key in self._redis.scan_iter(match=GRANT_PREFIX + "*", count=SCAN_BATCH):
            raw = await self._redis.get(key)
            if raw is None:
                continue
            grant = Grant.from_dict(json.loads(raw))
            if grant.expires_at < cutoff and await self.delete(grant.device_id):
                removed += 1
        return removed

    @contextlib.asynccontextmanager
    async def lock(self, device_id: str) -> AsyncGenerator[None]:
        key = LOCK_PREFIX + device_id
        token = f"{self._instance_id}:{time.time()}"
        deadline = time.monotonic() + LOCK_WAIT_TIMEOUT

        while not await self._redis.set(key, token, nx=True, px=LOCK_TTL_MS):
            if time.monotonic() >= deadline:
                log.warning("grant_lock_timeout", device=device_id[:8])
                raise GrantLockError(device_id)
            await asyncio.sleep(LOCK_RETRY_DELAY)

        try:
            yield
        finally:
            released = await self._redis.eval(_RELEASE_SCRIPT, 1, key, token)
            if not released:
                log.warning("grant_lock_release_failed", device=device_id[:8], reason="not_owner")

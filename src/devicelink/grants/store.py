"""Grant storage.

Grants are keyed by device id with a secondary index by pairing code. Both
entries are written and removed by a single store operation so the pairing
index can never point at a missing grant.

Expired grants disappear three ways: lazily on read, when redemption
observes them, and through a recurring sweep that runs independent of
request traffic so memory stays bounded when nobody polls.
"""

from __future__ import annotations

import asyncio
import contextlib
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from datetime import datetime

import structlog

from devicelink.errors import CodeCollisionError
from devicelink.grants.models import Grant, utcnow

log = structlog.get_logger()

DEFAULT_SWEEP_INTERVAL = 300.0


class GrantStore(ABC):
    """Storage interface for in-flight grants.

    Subclasses implement the storage primitives. The recurring sweep task is
    owned here: ``start()`` launches it, ``stop()`` cancels it.
    """

    def __init__(
        self,
        *,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._sweeper: asyncio.Task[None] | None = None

    @abstractmethod
    async def create(self, grant: Grant) -> None:
        """Insert a new grant under both indices.

        Raises:
            CodeCollisionError: If the device id or pairing code is taken.
        """

    @abstractmethod
    async def get_by_device_id(self, device_id: str, *, expire: bool = True) -> Grant | None:
        """Return the grant, or None. Expired grants are deleted unless ``expire=False``."""

    @abstractmethod
    async def get_by_pairing_code(self, pairing_code: str, *, expire: bool = True) -> Grant | None:
        """Return the grant, or None. Expired grants are deleted unless ``expire=False``."""

    @abstractmethod
    async def update(self, grant: Grant) -> None:
        """Persist changes to an existing grant. No-op if it is gone."""

    @abstractmethod
    async def delete(self, device_id: str) -> bool:
        """Remove a grant and its pairing index entry. Returns True if removed."""

    @abstractmethod
    async def sweep(self, now: datetime | None = None) -> int:
        """Remove every grant that expired before ``now``. Returns the count."""

    @abstractmethod
    def lock(self, device_id: str) -> contextlib.AbstractAsyncContextManager[None]:
        """Mutual exclusion scoped to one device id."""

    async def close(self) -> None:  # noqa: B027
        """Release backend resources."""

    # -- sweep lifecycle ----------------------------------------------------

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    async def start(self) -> None:
        """Start the recurring sweep task."""
        if self.running:
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(), name="grant-sweeper")
        log.info("Grant sweeper started", interval=self._sweep_interval)

    async def stop(self) -> None:
        """Cancel the sweep task and release resources."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
            log.info("Grant sweeper stopped")
        await self.close()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                removed = await self.sweep()
            except Exception as e:
                log.exception("Grant sweep failed", error=str(e))
                continue
            if removed:
                log.info("Swept expired grants", removed=removed)


class _KeyedLocks:
    """asyncio locks created on demand and dropped once nobody holds or awaits them."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


class InMemoryGrantStore(GrantStore):
    """Process-local grant store for single-instance deployments."""

    def __init__(
        self,
        *,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(sweep_interval=sweep_interval, clock=clock)
        self._grants: dict[str, Grant] = {}
        self._by_code: dict[str, str] = {}
        self._locks = _KeyedLocks()

    def __len__(self) -> int:
        return len(self._grants)

    async def create(self, grant: Grant) -> None:
        if grant.device_id in self._grants:
            raise CodeCollisionError("device_id", grant.device_id)
        if grant.pairing_code in self._by_code:
            raise CodeCollisionError("pairing_code", grant.pairing_code)
        self._grants[grant.device_id] = grant
        self._by_code[grant.pairing_code] = grant.device_id

    async def get_by_device_id(self, device_id: str, *, expire: bool = True) -> Grant | None:
        grant = self._grants.get(device_id)
        if grant is None:
            return None
        if expire and grant.is_expired(self._clock()):
            self._remove(grant.device_id)
            return None
        return grant

    async def get_by_pairing_code(self, pairing_code: str, *, expire: bool = True) -> Grant | None:
        device_id = self._by_code.get(pairing_code)
        if device_id is None:
            return None
        return await self.get_by_device_id(device_id, expire=expire)

    async def update(self, grant: Grant) -> None:
        if grant.device_id in self._grants:
            self._grants[grant.device_id] = grant

    async def delete(self, device_id: str) -> bool:
        return self._remove(device_id)

    async def sweep(self, now: datetime | None = None) -> int:
        cutoff = now or self._clock()
        expired = [g.device_id for g in self._grants.values() if g.expires_at < cutoff]
        for device_id in expired:
            self._remove(device_id)
        return len(expired)

    def lock(self, device_id: str) -> contextlib.AbstractAsyncContextManager[None]:
        return self._locks.hold(device_id)

    def _remove(self, device_id: str) -> bool:
        grant = self._grants.pop(device_id, None)
        if grant is None:
            return False
        if self._by_code.get(grant.pairing_code) == device_id:
            del self._by_code[grant.pairing_code]
        return True

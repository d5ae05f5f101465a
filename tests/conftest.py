"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from pydantic import SecretStr

from devicelink import config as config_module
from devicelink.grants.service import DeviceGrantService
from devicelink.grants.store import InMemoryGrantStore
from devicelink.profiles import Account, StaticProfileLookup, UserProfile, Workspace

TEST_JWT_SECRET = "test-secret-with-enough-length-for-hs256"  # noqa: S105
VERIFICATION_URL = "https://example.test/device"


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def make_profile(user_id: str, *, api_key: str | None = None) -> UserProfile:
    return UserProfile(
        api_key=api_key or f"hs_{user_id}_key",
        user=Account(id=user_id, email=f"{user_id}@example.test", name=user_id.upper(), plan="pro"),
        workspaces=[Workspace(slug=f"{user_id}-ws", name="Default", role="owner")],
    )


@pytest.fixture(autouse=True)
def jwt_secret(monkeypatch: pytest.MonkeyPatch) -> str:
    monkeypatch.setattr(config_module.settings, "jwt_secret", SecretStr(TEST_JWT_SECRET))
    return TEST_JWT_SECRET


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def profiles() -> StaticProfileLookup:
    return StaticProfileLookup({"u1": make_profile("u1"), "u2": make_profile("u2")})


@pytest.fixture
def store(clock: FakeClock) -> InMemoryGrantStore:
    return InMemoryGrantStore(sweep_interval=0.01, clock=clock)


@pytest.fixture
def service(
    store: InMemoryGrantStore, profiles: StaticProfileLookup, clock: FakeClock
) -> DeviceGrantService:
    return DeviceGrantService(
        store,
        profiles,
        verification_url=VERIFICATION_URL,
        ttl=timedelta(minutes=10),
        interval=5,
        clock=clock,
    )

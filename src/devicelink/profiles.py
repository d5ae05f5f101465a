"""User profile lookup.

Redemption resolves an approved grant's credential reference (the approver's
user id) into the API key and account/workspace data handed to the CLI. The
lookup happens once, at redemption, not at approval.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Protocol

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError

from devicelink.errors import ProfileLookupError

log = structlog.get_logger()

PROFILE_LOOKUP_TIMEOUT = 15.0


class Account(BaseModel):
    id: str
    email: str | None = None
    name: str | None = None
    plan: str | None = None


class Workspace(BaseModel):
    slug: str
    name: str | None = None
    role: str | None = None


class UserProfile(BaseModel):
    """Everything the CLI receives on a successful redemption."""

    api_key: str = Field(..., min_length=1)
    user: Account
    workspaces: list[Workspace] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class ProfileLookup(Protocol):
    async def lookup(self, user_id: str) -> UserProfile: ...


class StaticProfileLookup:
    """Profiles from an in-memory directory, keyed by user id."""

    def __init__(self, profiles: dict[str, UserProfile] | None = None) -> None:
        self._profiles = dict(profiles or {})

    @classmethod
    def from_file(cls, path: Path) -> StaticProfileLookup:
        """Load ``{user_id: {api_key, user, workspaces}}`` from a JSON file."""
        raw = json.loads(path.read_text(encoding="utf-8"))
        return cls({uid: UserProfile.model_validate(data) for uid, data in raw.items()})

    def add(self, user_id: str, profile: UserProfile) -> None:
        self._profiles[user_id] = profile

    async def lookup(self, user_id: str) -> UserProfile:
        profile = self._profiles.get(user_id)
        if profile is None:
            raise ProfileLookupError(user_id, "unknown user")
        return profile


class HttpProfileLookup:
    """Profiles from the external user service (``GET {base_url}/users/{id}/profile``)."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 10.0,
        total_timeout: float = PROFILE_LOOKUP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self._total_timeout = total_timeout

    async def close(self) -> None:
        await self._client.aclose()

    async def lookup(self, user_id: str) -> UserProfile:
        try:
            async with asyncio.timeout(self._total_timeout):
                resp = await self._client.get(f"/users/{user_id}/profile")
            resp.raise_for_status()
            return UserProfile.model_validate(resp.json())
        except TimeoutError as e:
            raise ProfileLookupError(user_id, "timed out") from e
        except httpx.HTTPStatusError as e:
            raise ProfileLookupError(user_id, f"status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ProfileLookupError(user_id, f"transport error: {e}") from e
        except (ValidationError, ValueError) as e:
            raise ProfileLookupError(user_id, f"invalid profile payload: {e}") from e

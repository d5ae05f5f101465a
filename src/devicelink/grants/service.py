"""Device grant service: begin, approve, deny and redeem.

    CLI starts:     begin()   -> device id + pairing code + verification URL
    Human approves: approve() / deny() by pairing code (authenticated caller)
    CLI polls:      redeem()  -> pending | denied | expired | issued

Transitions and redemption run under the store's per-device lock, so an
approval racing a poll, or two polls racing each other, see a consistent
grant. The redeemer whose delete actually removes an approved grant is the
only one handed the credential.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from urllib.parse import urlencode

import structlog

from devicelink.errors import CodeAllocationError, CodeCollisionError, DeviceLinkError
from devicelink.grants import codes
from devicelink.grants.models import (
    Grant,
    GrantStatus,
    Redemption,
    RedemptionOutcome,
    TransitionOutcome,
    utcnow,
)
from devicelink.grants.store import GrantStore
from devicelink.profiles import ProfileLookup

log = structlog.get_logger()

MAX_ALLOCATION_ATTEMPTS = 20


@dataclass(frozen=True)
class PairingTicket:
    """What the CLI receives when it begins pairing."""

    device_id: str
    pairing_code: str
    verification_url: str
    expires_in: int
    interval: int

    @property
    def verification_url_complete(self) -> str:
        return f"{self.verification_url}?{urlencode({'code': self.pairing_code})}"

    def to_response(self) -> dict[str, object]:
        return {
            "device_code": self.device_id,
            "user_code": self.pairing_code,
            "verification_uri": self.verification_url,
            "verification_uri_complete": self.verification_url_complete,
            "expires_in": self.expires_in,
            "interval": self.interval,
        }


class DeviceGrantService:
    def __init__(
        self,
        store: GrantStore,
        profiles: ProfileLookup,
        *,
        verification_url: str,
        ttl: timedelta = timedelta(minutes=10),
        interval: int = 5,
        generator: Callable[[], tuple[str, str]] = codes.generate,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.profiles = profiles
        self._verification_url = verification_url
        self._ttl = ttl
        self._interval = max(1, int(interval))
        self._generate = generator
        self._clock = clock

    async def begin(self, *, client_name: str | None = None) -> PairingTicket:
        """Create and persist a pending grant.

        Raises:
            CodeAllocationError: If every generated pair collided with a live grant.
        """
        for _ in range(MAX_ALLOCATION_ATTEMPTS):
            device_id, pairing_code = self._generate()
            grant = Grant.new(
                device_id,
                pairing_code,
                ttl=self._ttl,
                now=self._clock(),
                client_name=(client_name or "").strip() or None,
            )
            try:
                await self.store.create(grant)
            except CodeCollisionError as e:
                log.warning("Pairing code collision, regenerating", field=e.field)
                continue

            log.info(
                "Pairing started",
                device=device_id[:8],
                client=grant.client_name,
                expires_at=grant.expires_at.isoformat(),
            )
            return PairingTicket(
                device_id=device_id,
                pairing_code=pairing_code,
                verification_url=self._verification_url,
                expires_in=int(self._ttl.total_seconds()),
                interval=self._interval,
            )

        raise CodeAllocationError("Failed to allocate unique device/pairing codes")

    async def approve(self, pairing_code: str, approver: str) -> TransitionOutcome:
        """Approve a pending grant on behalf of an authenticated user.

        Not idempotent: a second approval reports ``ALREADY_USED``.
        """
        grant = await self.store.get_by_pairing_code(pairing_code, expire=False)
        if grant is None:
            return TransitionOutcome.NOT_FOUND

        async with self.store.lock(grant.device_id):
            # Re-read under the lock; a poll may have consumed or expired it.
            grant = await self.store.get_by_device_id(grant.device_id, expire=False)
            if grant is None:
                return TransitionOutcome.NOT_FOUND

            outcome = grant.approve(approver, credential_ref=approver, now=self._clock())
            if outcome is TransitionOutcome.APPROVED:
                await self.store.update(grant)
                log.info("Pairing approved", device=grant.device_id[:8], approver=approver)
            elif outcome is TransitionOutcome.EXPIRED:
                await self.store.delete(grant.device_id)
            else:
                log.warning(
                    "Pairing approval rejected",
                    device=grant.device_id[:8],
                    approver=approver,
                    outcome=outcome.value,
                )
            return outcome

    async def deny(self, pairing_code: str, approver: str) -> TransitionOutcome:
        """Deny a pending grant. Unknown, expired or settled codes are ignored."""
        grant = await self.store.get_by_pairing_code(pairing_code)
        if grant is None:
            return TransitionOutcome.IGNORED

        async with self.store.lock(grant.device_id):
            grant = await self.store.get_by_device_id(grant.device_id)
            if grant is None:
                return TransitionOutcome.IGNORED

            outcome = grant.deny(now=self._clock())
            if outcome is TransitionOutcome.DENIED:
                await self.store.update(grant)
                log.info("Pairing denied", device=grant.device_id[:8], approver=approver)
            return outcome

    async def redeem(self, device_id: str) -> Redemption:
        """Poll a grant; issue its credential exactly once when approved.

        Raises:
            ProfileLookupError: If the approved credential cannot be resolved.
                The grant stays approved so the client can poll again.
        """
        async with self.store.lock(device_id):
            grant = await self.store.get_by_device_id(device_id, expire=False)
            if grant is None:
                return Redemption(RedemptionOutcome.EXPIRED)

            if grant.is_expired(self._clock()):
                await self.store.delete(device_id)
                log.info("Pairing expired", device=device_id[:8], status=grant.status.value)
                return Redemption(RedemptionOutcome.EXPIRED)

            if grant.status is GrantStatus.DENIED:
                if not await self.store.delete(device_id):
                    return Redemption(RedemptionOutcome.EXPIRED)
                return Redemption(RedemptionOutcome.ACCESS_DENIED)

            if grant.status is GrantStatus.PENDING:
                log.debug("Pairing pending", device=device_id[:8])
                return Redemption(RedemptionOutcome.AUTHORIZATION_PENDING)

            if grant.issued_credential_ref is None:
                raise DeviceLinkError(
                    "Approved grant has no credential reference",
                    details={"device_id": device_id[:8]},
                )
            profile = await self.profiles.lookup(grant.issued_credential_ref)
            # Whoever removes the grant issues it, even if the lock lapsed meanwhile.
            if not await self.store.delete(device_id):
                log.warning("Grant consumed by a concurrent redeemer", device=device_id[:8])
                return Redemption(RedemptionOutcome.EXPIRED)
            log.info(
                "Credential issued",
                device=device_id[:8],
                user=profile.user.id,
                workspaces=len(profile.workspaces),
            )
            return Redemption(RedemptionOutcome.ISSUED, profile.to_payload())

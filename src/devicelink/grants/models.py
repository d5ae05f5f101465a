"""Grant record and its state machine.

    pending --approve--> approved --redeem--> (deleted, issued)
    pending --deny-----> denied   --redeem--> (deleted, access denied)

Expiry is not a state. It is derived from ``expires_at`` and checked on
every access.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(UTC)


class GrantStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class TransitionOutcome(StrEnum):
    """Result of an approve/deny attempt against a pairing code."""

    APPROVED = "approved"
    DENIED = "denied"
    IGNORED = "ignored"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    ALREADY_USED = "already_used"


class RedemptionOutcome(StrEnum):
    """Result of one redeem poll. Values double as OAuth-style error codes."""

    ISSUED = "issued"
    AUTHORIZATION_PENDING = "authorization_pending"
    ACCESS_DENIED = "access_denied"
    EXPIRED = "expired_token"

    @property
    def terminal(self) -> bool:
        return self is not RedemptionOutcome.AUTHORIZATION_PENDING


@dataclass
class Grant:
    """Server-side record of one in-progress device pairing."""

    device_id: str
    pairing_code: str
    expires_at: datetime
    created_at: datetime = field(default_factory=utcnow)
    status: GrantStatus = GrantStatus.PENDING
    approver_identity: str | None = None
    issued_credential_ref: str | None = None
    client_name: str | None = None

    @classmethod
    def new(
        cls,
        device_id: str,
        pairing_code: str,
        *,
        ttl: timedelta,
        now: datetime | None = None,
        client_name: str | None = None,
    ) -> Grant:
        created = now or utcnow()
        return cls(
            device_id=device_id,
            pairing_code=pairing_code,
            created_at=created,
            expires_at=created + ttl,
            client_name=client_name,
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utcnow()) > self.expires_at

    def approve(
        self, approver: str, credential_ref: str, now: datetime | None = None
    ) -> TransitionOutcome:
        """Move pending -> approved, recording who approved and what to issue."""
        if self.is_expired(now):
            return TransitionOutcome.EXPIRED
        if self.status is not GrantStatus.PENDING:
            return TransitionOutcome.ALREADY_USED
        self.status = GrantStatus.APPROVED
        self.approver_identity = approver
        self.issued_credential_ref = credential_ref
        return TransitionOutcome.APPROVED

    def deny(self, now: datetime | None = None) -> TransitionOutcome:
        """Move pending -> denied. Anything else is silently ignored."""
        if self.is_expired(now) or self.status is not GrantStatus.PENDING:
            return TransitionOutcome.IGNORED
        self.status = GrantStatus.DENIED
        return TransitionOutcome.DENIED

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        data["created_at"] = self.created_at.isoformat()
        data["expires_at"] = self.expires_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Grant:
        return cls(
            device_id=data["device_id"],
            pairing_code=data["pairing_code"],
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            status=GrantStatus(data.get("status", GrantStatus.PENDING)),
            approver_identity=data.get("approver_identity"),
            issued_credential_ref=data.get("issued_credential_ref"),
            client_name=data.get("client_name"),
        )


@dataclass(frozen=True)
class Redemption:
    """Outcome of a redeem call, with the credential payload when issued."""

    outcome: RedemptionOutcome
    payload: dict[str, Any] | None = None

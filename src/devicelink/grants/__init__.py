"""Device grant lifecycle: code generation, storage, transitions and redemption."""

from devicelink.grants.models import (
    Grant,
    GrantStatus,
    Redemption,
    RedemptionOutcome,
    TransitionOutcome,
)
from devicelink.grants.service import DeviceGrantService, PairingTicket
from devicelink.grants.store import GrantStore, InMemoryGrantStore

__all__ = [
    "DeviceGrantService",
    "Grant",
    "GrantStatus",
    "GrantStore",
    "InMemoryGrantStore",
    "PairingTicket",
    "Redemption",
    "RedemptionOutcome",
    "TransitionOutcome",
]

"""Custom exceptions for devicelink."""


class DeviceLinkError(Exception):
    """Base exception for all devicelink errors."""

    def __init__(self, message: str, *, details: dict[str, object] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class CodeCollisionError(DeviceLinkError):
    """Raised when a device id or pairing code is already held by a live grant."""

    def __init__(self, field: str, value: str) -> None:
        super().__init__(f"{field} already in use", details={"field": field})
        self.field = field
        self.value = value


class CodeAllocationError(DeviceLinkError):
    """Raised when no unique device id / pairing code pair could be generated."""


class ProfileLookupError(DeviceLinkError):
    """Raised when the profile service cannot resolve an issued credential."""

    def __init__(self, user_id: str, reason: str) -> None:
        super().__init__(
            f"Profile lookup failed for {user_id}: {reason}",
            details={"user_id": user_id, "reason": reason},
        )
        self.user_id = user_id
        self.reason = reason


class UnauthenticatedError(DeviceLinkError):
    """Raised when approval or denial is attempted without a valid caller identity."""


class PairingError(DeviceLinkError):
    """A pairing attempt ended without a credential; the human must start over."""


class PairingDeniedError(PairingError):
    """The approving human denied the pairing request."""


class PairingExpiredError(PairingError):
    """The server reports the grant as expired, consumed, or unknown."""


class PairingTimeoutError(PairingError):
    """The client exhausted its polling budget without a terminal answer."""

    def __init__(self, attempts: int) -> None:
        super().__init__(
            f"No answer after {attempts} polling attempts",
            details={"attempts": attempts},
        )
        self.attempts = attempts

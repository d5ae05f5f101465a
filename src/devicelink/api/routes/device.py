"""Device pairing endpoints.

- CLI starts:     POST /auth/device          -> device_code + user_code + verify URL
- Human approves: POST /auth/device/approve  (bearer JWT)
- Human denies:   POST /auth/device/deny     (bearer JWT)
- CLI polls:      POST /auth/device/token    -> credential or OAuth-style error

Poll responses keep distinct status codes per outcome: 428 pending,
403 denied, 410 expired/unknown, 200 issued.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from devicelink.api.dependencies import get_grant_service
from devicelink.auth.dependencies import get_current_user_id
from devicelink.errors import ProfileLookupError
from devicelink.grants.codes import normalize_pairing_code
from devicelink.grants.models import RedemptionOutcome, TransitionOutcome
from devicelink.grants.service import DeviceGrantService

log = structlog.get_logger()

router = APIRouter(prefix="/auth/device", tags=["device"])

_REDEEM_STATUS = {
    RedemptionOutcome.AUTHORIZATION_PENDING: 428,  # Precondition Required
    RedemptionOutcome.ACCESS_DENIED: status.HTTP_403_FORBIDDEN,
    RedemptionOutcome.EXPIRED: status.HTTP_410_GONE,
}

_REDEEM_DESCRIPTION = {
    RedemptionOutcome.AUTHORIZATION_PENDING: "Authorization pending",
    RedemptionOutcome.ACCESS_DENIED: "User denied the request",
    RedemptionOutcome.EXPIRED: "Device code expired or unknown",
}

_APPROVE_ERRORS = {
    TransitionOutcome.NOT_FOUND: (status.HTTP_404_NOT_FOUND, "not_found", "Invalid or expired code"),
    TransitionOutcome.EXPIRED: (status.HTTP_410_GONE, "expired_token", "Code expired"),
    TransitionOutcome.ALREADY_USED: (status.HTTP_409_CONFLICT, "already_used", "Code already used"),
}


class DeviceStartRequest(BaseModel):
    client_name: str | None = Field(default=None, max_length=255)


class DeviceCodeRequest(BaseModel):
    user_code: str = Field(default="", max_length=64)


class DeviceTokenRequest(BaseModel):
    device_code: str = Field(default="", max_length=512)
    grant_type: str | None = Field(default=None, description="Optional, OAuth-style")


def _error(status_code: int, error: str, description: str | None = None) -> JSONResponse:
    content: dict[str, object] = {"error": error}
    if description:
        content["error_description"] = description
    return JSONResponse(status_code=status_code, content=content)


async def _read_payload(request: Request) -> dict[str, str]:
    content_type = (request.headers.get("content-type") or "").lower()
    try:
        if "application/json" in content_type:
            payload = await request.json()
            if isinstance(payload, dict):
                return {str(k): str(v) for k, v in payload.items() if v is not None}
            return {}
        form = await request.form()
        return {str(k): str(v) for k, v in dict(form).items() if v is not None}
    except ValueError:
        return {}


@router.post("", response_model=None)
async def device_start(
    request: Request,
    service: DeviceGrantService = Depends(get_grant_service),
) -> dict[str, object] | JSONResponse:
    """Start a device pairing (for CLI login)."""
    try:
        body = DeviceStartRequest.model_validate(await _read_payload(request))
    except ValidationError:
        return _error(status.HTTP_400_BAD_REQUEST, "invalid_request", "Invalid client_name")

    ticket = await service.begin(client_name=body.client_name)
    return ticket.to_response()


@router.post("/approve", response_model=None)
async def device_approve(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    service: DeviceGrantService = Depends(get_grant_service),
) -> dict[str, object] | JSONResponse:
    """Approve a pairing code on behalf of the signed-in user."""
    try:
        body = DeviceCodeRequest.model_validate(await _read_payload(request))
    except ValidationError:
        return _error(status.HTTP_400_BAD_REQUEST, "invalid_request", "Invalid user_code")
    user_code = normalize_pairing_code(body.user_code)
    if not user_code:
        return _error(status.HTTP_400_BAD_REQUEST, "invalid_request", "user_code required")

    outcome = await service.approve(user_code, approver=user_id)
    if outcome is not TransitionOutcome.APPROVED:
        status_code, error, description = _APPROVE_ERRORS[outcome]
        return _error(status_code, error, description)

    return {"message": "Device approved", "user_code": user_code}


@router.post("/deny", response_model=None)
async def device_deny(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    service: DeviceGrantService = Depends(get_grant_service),
) -> dict[str, object]:
    """Deny a pairing code. Always succeeds so codes cannot be probed."""
    try:
        body = DeviceCodeRequest.model_validate(await _read_payload(request))
    except ValidationError:
        return {"message": "Device denied"}
    user_code = normalize_pairing_code(body.user_code)
    if user_code:
        await service.deny(user_code, approver=user_id)
    return {"message": "Device denied"}


@router.post("/token", response_model=None)
async def device_token(
    request: Request,
    service: DeviceGrantService = Depends(get_grant_service),
) -> JSONResponse:
    """Poll the pairing until it is approved, denied or expired."""
    try:
        body = DeviceTokenRequest.model_validate(await _read_payload(request))
    except ValidationError:
        return _error(status.HTTP_400_BAD_REQUEST, "invalid_request", "Invalid device_code")
    if body.grant_type and body.grant_type != "urn:ietf:params:oauth:grant-type:device_code":
        return _error(status.HTTP_400_BAD_REQUEST, "unsupported_grant_type")

    device_code = body.device_code.strip()
    if not device_code:
        return _error(status.HTTP_400_BAD_REQUEST, "invalid_request", "device_code required")

    try:
        redemption = await service.redeem(device_code)
    except ProfileLookupError as e:
        log.error("Credential lookup failed", user=e.user_id, reason=e.reason)
        return _error(status.HTTP_502_BAD_GATEWAY, "server_error", "Profile lookup failed")

    if redemption.outcome is RedemptionOutcome.ISSUED:
        return JSONResponse(status_code=status.HTTP_200_OK, content=redemption.payload)

    return _error(
        _REDEEM_STATUS[redemption.outcome],
        redemption.outcome.value,
        _REDEEM_DESCRIPTION[redemption.outcome],
    )

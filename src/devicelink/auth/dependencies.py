"""FastAPI auth dependencies."""

from __future__ import annotations

import structlog
from fastapi import HTTPException, Request, status

from devicelink.auth.http import select_access_token
from devicelink.auth.jwt import TokenError, decode_access_token
from devicelink.errors import UnauthenticatedError

log = structlog.get_logger()

ACCESS_TOKEN_COOKIE = "devicelink_access_token"  # noqa: S105


def authenticate_caller(request: Request) -> str:
    """Return the verified caller's user id.

    Raises:
        UnauthenticatedError: If no valid access token accompanies the request.
    """
    token = select_access_token(
        authorization=request.headers.get("authorization"),
        cookie_token=request.cookies.get(ACCESS_TOKEN_COOKIE),
    )
    if not token:
        raise UnauthenticatedError("Not authenticated")

    try:
        claims = decode_access_token(token)
    except TokenError as e:
        raise UnauthenticatedError("Invalid token", details={"reason": str(e)}) from e

    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise UnauthenticatedError("Invalid token", details={"reason": "empty subject"})
    return subject


async def get_current_user_id(request: Request) -> str:
    try:
        return authenticate_caller(request)
    except UnauthenticatedError as e:
        log.info("Rejected unauthenticated caller", path=request.url.path, reason=e.message)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.message,
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

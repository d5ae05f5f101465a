"""Access tokens that identify the human approving or denying a pairing.

The web app the human is signed in to mints these; the pairing API only
verifies them. ``issue_access_token`` serves operator tooling and tests.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from devicelink import config as config_module

ACCESS_TOKEN_TYPE = "access"  # noqa: S105


class TokenError(ValueError):
    """An access token could not be issued or did not verify."""


def _signing_key() -> str:
    key = config_module.settings.jwt_secret.get_secret_value()
    if not key:
        raise TokenError("JWT secret is not configured (set DEVICELINK_JWT_SECRET)")
    return key


def issue_access_token(
    *,
    user_id: str,
    expires_in: timedelta = timedelta(hours=1),
    extra_claims: dict[str, Any] | None = None,
) -> str:
    """Sign a token for ``user_id`` (claims: sub, typ, iat, exp, optional iss)."""
    cfg = config_module.settings
    issued = datetime.now(UTC)
    claims: dict[str, Any] = {
        "sub": str(user_id),
        "typ": ACCESS_TOKEN_TYPE,
        "iat": issued,
        "exp": issued + expires_in,
    }
    if cfg.jwt_issuer:
        claims["iss"] = cfg.jwt_issuer
    claims.update(extra_claims or {})

    try:
        return jwt.encode(claims, _signing_key(), algorithm=cfg.jwt_algorithm)
    except (TypeError, ValueError, jwt.PyJWTError) as e:
        raise TokenError(f"Could not sign access token: {e}") from e


def decode_access_token(token: str) -> dict[str, Any]:
    """Return the claims of a valid, unexpired access token.

    Raises:
        TokenError: Bad signature, expired, wrong issuer or not an access token.
    """
    cfg = config_module.settings
    key = _signing_key()
    try:
        claims = jwt.decode(
            token,
            key,
            algorithms=[cfg.jwt_algorithm],
            issuer=cfg.jwt_issuer or None,
            leeway=cfg.jwt_leeway_seconds,
            options={"require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as e:
        raise TokenError(str(e)) from e

    if claims.get("typ") != ACCESS_TOKEN_TYPE:
        raise TokenError("Not an access token")
    return claims

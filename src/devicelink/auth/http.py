"""Bearer token extraction from HTTP requests."""

from __future__ import annotations


def extract_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


def select_access_token(*, authorization: str | None, cookie_token: str | None) -> str | None:
    """Prefer the Authorization header, fall back to the session cookie."""
    token = extract_bearer_token(authorization)
    if token:
        return token
    if cookie_token and cookie_token.strip():
        return cookie_token.strip()
    return None

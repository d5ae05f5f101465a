"""HTTP client for the device pairing API."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass
from typing import Any

import httpx

from devicelink.config import settings

DEFAULT_INTERVAL = 5
DEFAULT_EXPIRES_IN = 600
DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"


def default_api_url() -> str:
    """API URL from DEVICELINK_API_URL, else the local server."""
    env_url = os.environ.get("DEVICELINK_API_URL", "").strip()
    if env_url:
        return env_url.rstrip("/")
    return f"http://localhost:{settings.server_port}/api"


class DeviceLinkClientError(Exception):
    """Error from the devicelink API."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


@dataclass(frozen=True)
class PairingInfo:
    """Server answer to begin-pairing."""

    device_code: str
    user_code: str
    verification_uri: str
    verification_uri_complete: str
    expires_in: int = DEFAULT_EXPIRES_IN
    interval: int = DEFAULT_INTERVAL

    @property
    def max_attempts(self) -> int:
        return max(1, math.ceil(self.expires_in / self.interval))

    @classmethod
    def from_response(cls, data: dict[str, Any]) -> PairingInfo:
        device_code = str(data.get("device_code", "")).strip()
        user_code = str(data.get("user_code", "")).strip()
        verify = str(data.get("verification_uri", "")).strip()
        verify_complete = str(data.get("verification_uri_complete", "")).strip() or verify
        if not device_code or not user_code or not verify_complete:
            raise DeviceLinkClientError("Server returned an invalid pairing payload", payload=data)
        return cls(
            device_code=device_code,
            user_code=user_code,
            verification_uri=verify or verify_complete,
            verification_uri_complete=verify_complete,
            expires_in=int(data.get("expires_in") or DEFAULT_EXPIRES_IN),
            interval=max(1, int(data.get("interval") or DEFAULT_INTERVAL)),
        )


@dataclass(frozen=True)
class RedeemResponse:
    """One poll answer, classified by status code."""

    status_code: int
    data: dict[str, Any]

    @property
    def pending(self) -> bool:
        return self.status_code == 428

    @property
    def denied(self) -> bool:
        return self.status_code == 403

    @property
    def expired(self) -> bool:
        return self.status_code == 410

    @property
    def issued(self) -> bool:
        return self.status_code == 200 and bool(self.data.get("api_key"))

    @property
    def server_error(self) -> bool:
        return self.status_code >= 500


class DeviceLinkClient:
    """Synchronous client for the pairing endpoints.

    Network failures surface as ``httpx.TransportError`` so the poll loop can
    treat them as transient; HTTP-level failures become ``DeviceLinkClientError``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float = 15.0,
        access_token: str | None = None,
        verify: bool = True,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or default_api_url()).rstrip("/")
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            verify=verify,
            transport=transport,
        )

    def __enter__(self) -> DeviceLinkClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def _json(resp: httpx.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def begin_pairing(self, client_name: str = "devicelink-cli") -> PairingInfo:
        resp = self._client.post("/auth/device", json={"client_name": client_name})
        data = self._json(resp)
        if resp.is_error:
            raise DeviceLinkClientError(
                str(data.get("error") or "Failed to get device code"),
                status_code=resp.status_code,
                payload=data,
            )
        return PairingInfo.from_response(data)

    def redeem(self, device_code: str) -> RedeemResponse:
        resp = self._client.post(
            "/auth/device/token",
            json={"device_code": device_code, "grant_type": DEVICE_GRANT_TYPE},
        )
        return RedeemResponse(status_code=resp.status_code, data=self._json(resp))

    def _code_action(self, action: str, user_code: str) -> dict[str, Any]:
        resp = self._client.post(f"/auth/device/{action}", json={"user_code": user_code})
        data = self._json(resp)
        if resp.is_error:
            message = str(data.get("error_description") or data.get("detail") or resp.reason_phrase)
            raise DeviceLinkClientError(message, status_code=resp.status_code, payload=data)
        return data

    def approve(self, user_code: str) -> dict[str, Any]:
        return self._code_action("approve", user_code)

    def deny(self, user_code: str) -> dict[str, Any]:
        return self._code_action("deny", user_code)

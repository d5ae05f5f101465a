"""Client side of device pairing: show the code, poll, store the credential.

The poll loop sleeps ``interval`` before every attempt and gives up after
``ceil(expires_in / interval)`` attempts. Pending answers, server errors and
network failures all use up an attempt, so an unreachable server still ends
in a client-side timeout rather than hanging.
"""

from __future__ import annotations

import time
import webbrowser
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import structlog

from devicelink.cli.auth_store import save_issued_credential
from devicelink.cli.client import DeviceLinkClient, PairingInfo
from devicelink.cli.common import console, pairing_panel
from devicelink.errors import (
    PairingDeniedError,
    PairingError,
    PairingExpiredError,
    PairingTimeoutError,
)

log = structlog.get_logger()


def poll_for_credential(
    client: DeviceLinkClient,
    pairing: PairingInfo,
    *,
    sleep: Callable[[float], None] = time.sleep,
    deadline: float | None = None,
    on_tick: Callable[[str], None] | None = None,
) -> dict[str, Any]:
    """Poll until the pairing is approved, denied or expired.

    Args:
        client: API client.
        pairing: The pairing returned by begin-pairing.
        sleep: Sleep function (injected in tests).
        deadline: Optional ``time.monotonic()`` wall-clock limit.
        on_tick: Called with "." per pending answer and "x" per transient failure.

    Returns:
        The issued credential payload (``api_key``, ``user``, ``workspaces``).

    Raises:
        PairingDeniedError: The human denied the request.
        PairingExpiredError: The server no longer knows the grant.
        PairingTimeoutError: Attempts (or the deadline) ran out first.
        PairingError: The server answered with something unexpected.
    """
    attempts = 0
    while attempts < pairing.max_attempts:
        if deadline is not None and time.monotonic() >= deadline:
            break
        attempts += 1
        sleep(pairing.interval)

        try:
            resp = client.redeem(pairing.device_code)
        except httpx.TransportError as e:
            log.debug("Poll failed, retrying", attempt=attempts, error=str(e))
            if on_tick:
                on_tick("x")
            continue

        if resp.pending:
            if on_tick:
                on_tick(".")
            continue
        if resp.denied:
            raise PairingDeniedError("Device denied")
        if resp.expired:
            raise PairingExpiredError("Code expired")
        if resp.issued:
            return resp.data
        if resp.server_error:
            log.debug("Server error while polling", attempt=attempts, status=resp.status_code)
            if on_tick:
                on_tick("x")
            continue

        raise PairingError(
            f"Unexpected response (HTTP {resp.status_code})",
            details={"status_code": resp.status_code, "body": resp.data},
        )

    raise PairingTimeoutError(attempts)


def open_browser(url: str) -> bool:
    """Try to open the verification page locally. Failure is not an error."""
    try:
        return webbrowser.open(url, new=1, autoraise=True)
    except (webbrowser.Error, OSError) as e:
        log.debug("Could not open browser", error=str(e))
        return False


def show_pairing(pairing: PairingInfo) -> None:
    console.print()
    console.print(
        pairing_panel(pairing.user_code, pairing.verification_uri_complete, pairing.expires_in)
    )
    console.print("  Waiting for approval", end="")


def run_device_login(
    client: DeviceLinkClient,
    *,
    browser: bool = True,
    timeout_seconds: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
    credentials_file: Path | None = None,
) -> dict[str, Any]:
    """Run the whole pairing from the CLI side and persist the credential.

    Returns:
        The stored credentials (``api_key``, ``user``, ``workspaces``, ``issued_at``).
    """
    pairing = client.begin_pairing()
    show_pairing(pairing)
    if browser:
        open_browser(pairing.verification_uri_complete)

    deadline = time.monotonic() + timeout_seconds if timeout_seconds else None

    def tick(mark: str) -> None:
        console.print(mark, end="")

    try:
        payload = poll_for_credential(client, pairing, sleep=sleep, deadline=deadline, on_tick=tick)
    finally:
        console.print()

    return save_issued_credential(payload, credentials_file)

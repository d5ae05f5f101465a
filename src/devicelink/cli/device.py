"""Approve or deny pairing codes from a terminal (authenticated operators)."""

from __future__ import annotations

import os
from typing import Annotated

import httpx
import typer

from devicelink.cli.client import DeviceLinkClient, DeviceLinkClientError
from devicelink.cli.common import error, success
from devicelink.grants.codes import normalize_pairing_code

app = typer.Typer(help="Approve or deny device pairing codes")

ACCESS_TOKEN_ENV = "DEVICELINK_ACCESS_TOKEN"  # noqa: S105

ServerOption = Annotated[str | None, typer.Option("--server", "-s", help="API base URL")]
TokenOption = Annotated[
    str | None,
    typer.Option("--token", "-t", help=f"Bearer token of the approving user (or {ACCESS_TOKEN_ENV})"),
]


def _token(token: str | None) -> str:
    value = (token or os.environ.get(ACCESS_TOKEN_ENV, "")).strip()
    if not value:
        error(f"An access token is required (--token or {ACCESS_TOKEN_ENV})")
        raise typer.Exit(1)
    return value


def _code(user_code: str) -> str:
    code = normalize_pairing_code(user_code)
    if not code:
        error(f"Not a valid pairing code: {user_code}")
        raise typer.Exit(1)
    return code


@app.command("approve")
def approve_cmd(
    user_code: Annotated[str, typer.Argument(help="Pairing code shown by the CLI")],
    server: ServerOption = None,
    token: TokenOption = None,
) -> None:
    """Approve a pairing code."""
    code = _code(user_code)
    with DeviceLinkClient(server, access_token=_token(token)) as client:
        try:
            client.approve(code)
        except DeviceLinkClientError as e:
            error(f"Approval failed: {e}")
            raise typer.Exit(1) from e
        except httpx.HTTPError as e:
            error(f"Connection error: {e}")
            raise typer.Exit(1) from e
    success(f"Device {code} approved")


@app.command("deny")
def deny_cmd(
    user_code: Annotated[str, typer.Argument(help="Pairing code shown by the CLI")],
    server: ServerOption = None,
    token: TokenOption = None,
) -> None:
    """Deny a pairing code."""
    code = _code(user_code)
    with DeviceLinkClient(server, access_token=_token(token)) as client:
        try:
            client.deny(code)
        except DeviceLinkClientError as e:
            error(f"Denial failed: {e}")
            raise typer.Exit(1) from e
        except httpx.HTTPError as e:
            error(f"Connection error: {e}")
            raise typer.Exit(1) from e
    success(f"Device {code} denied")

"""Login, logout and whoami commands."""

from __future__ import annotations

from typing import Annotated

import httpx
import typer

from devicelink.cli.auth_store import (
    API_KEY_ENV,
    clear_credentials,
    credentials_path,
    get_api_key,
    read_credentials,
)
from devicelink.cli.client import DeviceLinkClient, DeviceLinkClientError
from devicelink.cli.common import error, hint, info, mask_secret, print_json, success
from devicelink.cli.device_flow import run_device_login
from devicelink.errors import (
    PairingDeniedError,
    PairingError,
    PairingExpiredError,
    PairingTimeoutError,
)


def _account_label(creds: dict) -> str:
    user = creds.get("user") if isinstance(creds.get("user"), dict) else {}
    return str(user.get("email") or user.get("name") or user.get("id") or "unknown")


def login(
    server: Annotated[
        str | None, typer.Option("--server", "-s", help="API base URL (default: DEVICELINK_API_URL)")
    ] = None,
    no_browser: Annotated[
        bool, typer.Option("--no-browser", help="Print the URL instead of opening a browser")
    ] = False,
    timeout: Annotated[
        int | None, typer.Option("--timeout", help="Give up after this many seconds")
    ] = None,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Pair again even if already logged in")
    ] = False,
    insecure: Annotated[
        bool, typer.Option("--insecure", help="Skip TLS verification (dev only)")
    ] = False,
) -> None:
    """Authenticate this machine by approving a pairing code in a browser."""
    existing = read_credentials()
    if existing.get("api_key") and not force:
        info(f"Already logged in as {_account_label(existing)}")
        info(f"API key: {mask_secret(str(existing['api_key']))}")
        hint("Run 'devicelink logout' to sign out, or 'devicelink login --force'.")
        return

    info("Requesting device code...")
    with DeviceLinkClient(server, verify=not insecure) as client:
        try:
            creds = run_device_login(client, browser=not no_browser, timeout_seconds=timeout)
        except (DeviceLinkClientError, httpx.HTTPError) as e:
            error(f"Connection error: {e}")
            hint(f"You can also set {API_KEY_ENV} manually.")
            raise typer.Exit(1) from e
        except PairingDeniedError as e:
            error("Device denied. Try again with 'devicelink login'.")
            raise typer.Exit(1) from e
        except PairingExpiredError as e:
            error("Code expired. Run 'devicelink login' again.")
            raise typer.Exit(1) from e
        except PairingTimeoutError as e:
            error("Timed out waiting for approval. Run 'devicelink login' again.")
            raise typer.Exit(1) from e
        except PairingError as e:
            error(str(e))
            if e.details:
                print_json(e.details)
            raise typer.Exit(1) from e
        except KeyboardInterrupt as e:
            error("Cancelled")
            raise typer.Exit(130) from e

    success(f"Logged in as {_account_label(creds)}")
    user = creds.get("user") or {}
    if user.get("plan"):
        info(f"Plan: {user['plan']}")
    workspaces = creds.get("workspaces") or []
    if workspaces:
        info("Workspaces: " + ", ".join(str(w.get("slug")) for w in workspaces))
    info(f"Credentials saved to: {credentials_path()}")


def logout() -> None:
    """Remove saved credentials."""
    if not clear_credentials():
        info("Not logged in.")
        return
    success(f"Logged out. Removed {credentials_path()}")


def whoami(
    json_out: Annotated[bool, typer.Option("--json", "-j", help="JSON output")] = False,
) -> None:
    """Show the account the stored credential belongs to."""
    creds = read_credentials()
    api_key = get_api_key()

    if json_out:
        print_json({**creds, "api_key": mask_secret(api_key) if api_key else None})
        return

    if not api_key:
        error("Not logged in")
        hint("Run 'devicelink login'")
        raise typer.Exit(1)

    if creds.get("api_key") != api_key:
        success(f"Using API key from {API_KEY_ENV}: {mask_secret(api_key)}")
        return

    success(f"Logged in as {_account_label(creds)}")
    info(f"API key: {mask_secret(api_key)}")
    if creds.get("issued_at"):
        info(f"Issued: {creds['issued_at']}")
    for ws in creds.get("workspaces") or []:
        info(f"Workspace {ws.get('slug')} ({ws.get('role') or 'member'})")

"""Credential storage for the CLI.

The credential issued by a completed pairing lives in
~/.devicelink/credentials.json as ``{api_key, user, workspaces, issued_at}``.
DEVICELINK_API_KEY, when set, takes priority over the file.
"""

from __future__ import annotations

import contextlib
import json
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

API_KEY_ENV = "DEVICELINK_API_KEY"


def credentials_path() -> Path:
    return Path.home() / ".devicelink" / "credentials.json"


def read_credentials(path: Path | None = None) -> dict[str, Any]:
    p = path or credentials_path()
    if not p.exists():
        return {}
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def write_credentials(data: dict[str, Any], path: Path | None = None) -> None:
    p = path or credentials_path()
    p.parent.mkdir(parents=True, exist_ok=True)
    if os.name != "nt":
        with contextlib.suppress(OSError):
            os.chmod(p.parent, 0o700)
    # Create with owner-only permissions so the key is never world-readable.
    fd = os.open(p, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(json.dumps(data, indent=2, sort_keys=True) + "\n")
    if os.name != "nt":
        os.chmod(p, 0o600)


def save_issued_credential(payload: dict[str, Any], path: Path | None = None) -> dict[str, Any]:
    """Persist a redeemed credential payload, stamping when it was issued."""
    creds = {
        "api_key": payload["api_key"],
        "user": payload.get("user") or {},
        "workspaces": payload.get("workspaces") or [],
        "issued_at": datetime.now(UTC).isoformat(),
    }
    write_credentials(creds, path)
    return creds


def clear_credentials(path: Path | None = None) -> bool:
    """Erase stored credentials. Returns False if there was nothing to erase."""
    p = path or credentials_path()
    if not p.exists():
        return False
    p.unlink()
    return True


def get_api_key(path: Path | None = None) -> str | None:
    """Get the API key. Priority: env var > credentials file."""
    env_key = os.environ.get(API_KEY_ENV, "").strip()
    if env_key:
        return env_key
    key = str(read_credentials(path).get("api_key") or "").strip()
    return key or None

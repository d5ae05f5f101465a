"""Console output helpers for the devicelink CLI."""

import json

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

PURPLE = "#e135ff"
CYAN = "#80ffea"
YELLOW = "#f1fa8c"
GREEN = "#50fa7b"
RED = "#ff6363"

# Styled output only; machine-readable output goes through print_json
console = Console()


def print_json(data: object) -> None:
    """Write JSON to stdout unwrapped so it stays parseable."""
    print(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def success(message: str) -> None:
    console.print(f"[{GREEN}]✓[/{GREEN}] {message}")


def error(message: str) -> None:
    console.print(f"[{RED}]✗[/{RED}] {message}")


def info(message: str) -> None:
    console.print(f"[{CYAN}]→[/{CYAN}] {message}")


def hint(message: str) -> None:
    console.print(f"[{YELLOW}]Hint:[/{YELLOW}] {message}")


def format_duration(seconds: int) -> str:
    """Render a lifetime like ``10 minutes`` or ``45 seconds``."""
    if seconds >= 60 and seconds % 60 == 0:
        minutes = seconds // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"


def pairing_panel(user_code: str, url: str, expires_in: int) -> Panel:
    """Panel showing the code a human types into the verification page."""
    body = Text.assemble(
        ("Code: ", "dim"),
        (user_code, f"bold {YELLOW}"),
        "\n\n",
        ("Open: ", "dim"),
        (url, CYAN),
        "\n",
        (f"Expires in {format_duration(expires_in)}", "dim"),
    )
    return Panel(
        body,
        title=f"[{PURPLE}]Pair this device[/{PURPLE}]",
        border_style=CYAN,
        expand=False,
    )


def mask_secret(value: str, visible: int = 8) -> str:
    """Keep the first ``visible`` characters of a secret."""
    if len(value) <= visible:
        return "*" * len(value)
    return value[:visible] + "..."

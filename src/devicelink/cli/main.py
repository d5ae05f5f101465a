"""Main CLI application - ties all subcommands together."""

from typing import Annotated

import typer

from devicelink import __version__
from devicelink.cli.auth import login, logout, whoami
from devicelink.cli.device import app as device_app

app = typer.Typer(
    name="devicelink",
    help="devicelink - pair headless machines through a browser",
    add_completion=False,
    no_args_is_help=True,
)

app.add_typer(device_app, name="device")
app.command("login")(login)
app.command("logout")(logout)
app.command("whoami")(whoami)


@app.command("serve")
def serve(
    host: Annotated[str | None, typer.Option("--host", help="Bind host")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Bind port")] = None,
) -> None:
    """Run the pairing API server."""
    from devicelink.main import run_server

    run_server(host=host, port=port)


@app.command("version")
def version() -> None:
    """Show the installed version."""
    print(__version__)


def main() -> None:
    app()


if __name__ == "__main__":
    main()

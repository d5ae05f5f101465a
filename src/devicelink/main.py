"""Entry point for the devicelink server.

Hosts the REST API at /api/*.
"""

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from starlette.applications import Starlette
from starlette.responses import RedirectResponse
from starlette.routing import Mount, Route

from devicelink.config import settings

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request

log = structlog.get_logger()


def configure_log_level(level: str) -> None:
    """Route structlog through stdlib logging at the requested level."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, level.upper(), logging.INFO))


def create_app() -> Starlette:
    """Create the server app.

    Routes:
        /api/*  - pairing API (FastAPI)
        /       - Redirect to API docs
    """
    from devicelink.api.app import create_api_app

    api_app = create_api_app()

    @asynccontextmanager
    async def lifespan(_app: Starlette) -> "AsyncGenerator[None]":
        # Mounted apps do not get lifespan events; run the API's explicitly.
        async with api_app.router.lifespan_context(api_app):
            yield

    async def root(_request: "Request") -> RedirectResponse:
        return RedirectResponse(url="/api/docs")

    return Starlette(
        routes=[
            Route("/", root),
            Mount("/api", app=api_app),
        ],
        lifespan=lifespan,
    )


def run_server(host: str | None = None, port: int | None = None) -> None:
    """Run the HTTP server."""
    import uvicorn

    host = host or settings.server_host
    port = port or settings.server_port
    configure_log_level(settings.log_level)

    log.info(
        "Starting devicelink server",
        host=host,
        port=port,
        grant_store=settings.grant_store,
        verification_url=settings.verification_url,
    )

    config = uvicorn.Config(
        create_app(),
        host=host,
        port=port,
        log_level="warning",
        access_log=False,
    )
    uvicorn.Server(config).run()


def main() -> None:
    """devicelink-server console script."""
    run_server()


if __name__ == "__main__":
    main()

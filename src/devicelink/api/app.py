"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta

import structlog
from fastapi import FastAPI

from devicelink import __version__
from devicelink.api.routes import device_router
from devicelink.config import Settings, settings as default_settings
from devicelink.grants.service import DeviceGrantService
from devicelink.grants.store import GrantStore, InMemoryGrantStore
from devicelink.profiles import HttpProfileLookup, ProfileLookup, StaticProfileLookup

log = structlog.get_logger()


def build_grant_store(settings: Settings) -> GrantStore:
    if settings.grant_store == "redis":
        from devicelink.grants.redis_store import RedisGrantStore

        return RedisGrantStore.from_url(
            settings.redis_url, sweep_interval=settings.sweep_interval_seconds
        )
    return InMemoryGrantStore(sweep_interval=settings.sweep_interval_seconds)


def build_profile_lookup(settings: Settings) -> ProfileLookup:
    if settings.profile_service_url:
        token = settings.profile_service_token.get_secret_value() or None
        return HttpProfileLookup(settings.profile_service_url, token=token)
    if settings.profile_directory_path is not None:
        return StaticProfileLookup.from_file(settings.profile_directory_path)
    log.warning("No profile service configured; approved pairings cannot be redeemed")
    return StaticProfileLookup()


def build_grant_service(settings: Settings) -> DeviceGrantService:
    return DeviceGrantService(
        build_grant_store(settings),
        build_profile_lookup(settings),
        verification_url=settings.verification_url,
        ttl=timedelta(seconds=settings.grant_ttl_seconds),
        interval=settings.poll_interval_seconds,
    )


def create_api_app(
    service: DeviceGrantService | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: Grant service to serve. Built from settings when omitted.
        settings: Settings used to build the service (defaults to the global ones).

    Returns:
        Configured FastAPI app. The grant store's sweeper runs for the
        lifetime of the app.
    """
    grant_service = service or build_grant_service(settings or default_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
        store = app.state.grant_service.store
        await store.start()
        try:
            yield
        finally:
            await store.stop()
            close = getattr(app.state.grant_service.profiles, "close", None)
            if close is not None:
                await close()

    app = FastAPI(
        title="devicelink API",
        description="Device authorization grants for headless clients",
        version=__version__,
        docs_url="/docs",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.grant_service = grant_service
    app.include_router(device_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """API root - basic info."""
        return {"name": "devicelink API", "version": __version__, "docs": "/api/docs"}

    return app

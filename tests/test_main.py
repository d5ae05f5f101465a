"""Tests for the server entry point."""

from fastapi.testclient import TestClient

from devicelink.api.app import build_grant_service
from devicelink.config import Settings
from devicelink.grants.store import InMemoryGrantStore
from devicelink.main import create_app
from devicelink.profiles import HttpProfileLookup, StaticProfileLookup


class TestCreateApp:
    def test_root_redirects_to_docs(self) -> None:
        with TestClient(create_app()) as client:
            resp = client.get("/", follow_redirects=False)
        assert resp.status_code in (302, 307)
        assert resp.headers["location"] == "/api/docs"

    def test_api_is_mounted(self) -> None:
        with TestClient(create_app()) as client:
            resp = client.post("/api/auth/device", json={})
            assert resp.status_code == 200
            assert resp.json()["verification_uri"].endswith("/device")

    def test_sweeper_runs_with_app(self) -> None:
        app = create_app()
        api_app = app.routes[1].app
        store = api_app.state.grant_service.store
        with TestClient(app):
            assert store.running
        assert not store.running


class TestBuildGrantService:
    def test_memory_store_and_static_profiles(self) -> None:
        service = build_grant_service(Settings(public_url="https://app.example.test"))
        assert isinstance(service.store, InMemoryGrantStore)
        assert isinstance(service.profiles, StaticProfileLookup)

    def test_http_profiles(self) -> None:
        service = build_grant_service(Settings(profile_service_url="https://users.example.test"))
        assert isinstance(service.profiles, HttpProfileLookup)

    def test_redis_store(self) -> None:
        from devicelink.grants.redis_store import RedisGrantStore

        service = build_grant_service(Settings(grant_store="redis"))
        assert isinstance(service.store, RedisGrantStore)

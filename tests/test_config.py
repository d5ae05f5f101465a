"""Tests for settings validation."""

from pathlib import Path

import pytest

from devicelink.config import Settings


class TestGrantStoreSafety:
    """The in-process store is instance-local and refused in production by default."""

    def test_memory_store_allowed_in_development(self) -> None:
        settings = Settings(environment="development", grant_store="memory")
        assert settings.grant_store == "memory"

    def test_memory_store_forbidden_in_production(self) -> None:
        with pytest.raises(ValueError, match="grant_store=memory is not shared"):
            Settings(environment="production", grant_store="memory")

    def test_memory_store_opt_in_for_single_instance(self) -> None:
        settings = Settings(
            environment="production",
            grant_store="memory",
            allow_memory_store_in_production=True,
        )
        assert settings.grant_store == "memory"

    def test_redis_store_allowed_in_production(self) -> None:
        settings = Settings(environment="production", grant_store="redis")
        assert settings.grant_store == "redis"


class TestGrantLifetime:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DEVICELINK_GRANT_TTL_SECONDS", raising=False)
        monkeypatch.delenv("DEVICELINK_POLL_INTERVAL_SECONDS", raising=False)
        settings = Settings()
        assert settings.grant_ttl_seconds == 600
        assert settings.poll_interval_seconds == 5

    @pytest.mark.parametrize("ttl", [0, 59, 3601])
    def test_ttl_bounds(self, ttl: int) -> None:
        with pytest.raises(ValueError):
            Settings(grant_ttl_seconds=ttl)

    def test_ttl_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DEVICELINK_GRANT_TTL_SECONDS", "900")
        assert Settings().grant_ttl_seconds == 900


class TestVerificationUrl:
    def test_joins_public_url_and_path(self) -> None:
        settings = Settings(public_url="https://app.example.test/", verification_path="device")
        assert settings.verification_url == "https://app.example.test/device"

    def test_nested_path(self) -> None:
        settings = Settings(public_url="https://example.test", verification_path="/cli/pair")
        assert settings.verification_url == "https://example.test/cli/pair"


class TestSecrets:
    def test_jwt_secret_falls_back_to_unprefixed_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DEVICELINK_JWT_SECRET", raising=False)
        monkeypatch.setenv("JWT_SECRET", "fallback-secret")
        assert Settings().jwt_secret.get_secret_value() == "fallback-secret"

    def test_prefixed_secret_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("DEVICELINK_JWT_SECRET", "primary")
        monkeypatch.setenv("JWT_SECRET", "fallback-secret")
        assert Settings().jwt_secret.get_secret_value() == "primary"

    def test_profile_directory_path(self, tmp_path: Path) -> None:
        settings = Settings(profile_directory_path=tmp_path / "profiles.json")
        assert settings.profile_directory_path == tmp_path / "profiles.json"


class TestLogging:
    def test_log_format_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("DEVICELINK_LOG_FORMAT", raising=False)
        assert Settings().log_format == "console"

    def test_rejects_unknown_log_format(self) -> None:
        with pytest.raises(ValueError):
            Settings(log_format="xml")

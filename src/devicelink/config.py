"""Configuration management for the devicelink server and CLI."""

import os
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """devicelink settings, read from DEVICELINK_* environment variables and .env."""

    model_config = SettingsConfigDict(
        env_prefix="DEVICELINK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # HTTP server
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment; production enforces a shared grant store",
    )
    server_host: str = Field(default="localhost", description="Server bind host")
    server_port: int = Field(default=3334, description="Server bind port")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Minimum level for server log output",
    )
    log_format: Literal["console", "json"] = Field(
        default="console",
        description="Log renderer (json for log shippers)",
    )

    # Public URL - the human opens the verification page here
    public_url: str = Field(
        default="http://localhost:3334",
        description="Public base URL used to build verification links",
    )
    verification_path: str = Field(
        default="/device",
        description="Path of the page where a human enters the pairing code",
    )

    # Grant lifecycle
    grant_ttl_seconds: int = Field(
        default=600,
        ge=60,
        le=3600,
        description="Lifetime of a pairing grant (fixed at creation)",
    )
    poll_interval_seconds: int = Field(
        default=5, ge=1, le=60, description="Suggested client polling interval"
    )
    sweep_interval_seconds: int = Field(
        default=300,
        ge=1,
        description="How often expired grants are swept from the store",
    )

    # Grant storage
    grant_store: Literal["memory", "redis"] = Field(
        default="memory",
        description="Grant store backend (memory for single instance, redis for shared)",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis URL used when grant_store=redis",
    )
    allow_memory_store_in_production: bool = Field(
        default=False,
        description="Permit the in-process store in production (single-instance deployments)",
    )

    @model_validator(mode="after")
    def validate_store_settings(self) -> "Settings":
        """Refuse an instance-local grant store in production unless opted in."""
        if (
            self.environment == "production"
            and self.grant_store == "memory"
            and not self.allow_memory_store_in_production
        ):
            raise ValueError(
                "grant_store=memory is not shared between instances. "
                "Set DEVICELINK_GRANT_STORE=redis or "
                "DEVICELINK_ALLOW_MEMORY_STORE_IN_PRODUCTION=true for a single instance."
            )
        return self

    # Caller authentication (approval / denial)
    jwt_secret: SecretStr = Field(
        default=SecretStr(""),
        description="JWT signing secret used to authenticate approvers",
    )
    jwt_algorithm: str = Field(
        default="HS256", description="Algorithm approver tokens are signed with"
    )
    jwt_issuer: str = Field(
        default="",
        description="Expected iss claim of approver tokens (empty = not checked)",
    )
    jwt_leeway_seconds: int = Field(
        default=30, ge=0, le=300, description="Clock skew tolerated when checking exp"
    )

    # Profile lookup service
    profile_service_url: str = Field(
        default="",
        description="Base URL of the user profile service (empty = static directory)",
    )
    profile_service_token: SecretStr = Field(
        default=SecretStr(""),
        description="Bearer token presented to the profile service",
    )
    profile_directory_path: Path | None = Field(
        default=None,
        description="JSON file of user profiles used when no profile service is configured",
    )

    @model_validator(mode="after")
    def use_shared_jwt_secret(self) -> "Settings":
        """Share the web app's JWT_SECRET when DEVICELINK_JWT_SECRET is unset."""
        shared = os.environ.get("JWT_SECRET", "")
        if shared and not self.jwt_secret.get_secret_value():
            object.__setattr__(self, "jwt_secret", SecretStr(shared))
        return self

    @property
    def verification_url(self) -> str:
        """Absolute URL of the page where pairing codes are approved."""
        return self.public_url.rstrip("/") + "/" + self.verification_path.lstrip("/")


# Shared by the server, the CLI and the auth helpers
settings = Settings()

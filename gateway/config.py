"""Gateway configuration management.

Configuration sources (in priority order):
1. Environment variables (GATEWAY_ prefix, ``__`` for nesting)
2. Config file (config.yaml)
3. Defaults
"""

from __future__ import annotations

import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)


class Role(str, Enum):
    """Role of an authenticated caller."""

    ADMIN = "admin"  # may mutate endpoints, keys and tags
    USER = "user"  # read-only


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8000


class DatabaseConfig(BaseModel):
    """Database configuration."""

    # Any async SQLAlchemy URL works, e.g. postgresql+asyncpg://
    url: str = "sqlite+aiosqlite:///./gateway.db"
    echo: bool = False


class LoggingConfig(BaseModel):
    """structlog output configuration."""

    level: Literal["debug", "info", "warning", "error"] = "info"
    json_output: bool = Field(default=False, alias="json")

    model_config = {"populate_by_name": True}


class PrincipalConfig(BaseModel):
    """A caller allowed to use the management API.

    Either ``token`` (plaintext) or ``token_hash`` (SHA-256 hex) must be set.
    """

    name: str
    role: Role = Role.USER
    token: str | None = None
    token_hash: str | None = None

    @model_validator(mode="after")
    def _require_token(self) -> PrincipalConfig:
        if not self.token and not self.token_hash:
            raise ValueError(f"principal '{self.name}' needs token or token_hash")
        return self


class SecurityConfig(BaseModel):
    """Management API authentication."""

    # Anonymous callers get anonymous_role; X-Actor names them in the activity log
    allow_anonymous: bool = True
    anonymous_role: Role = Role.ADMIN
    principals: list[PrincipalConfig] = Field(default_factory=list)


class EndpointsConfig(BaseModel):
    """Endpoint registry defaults."""

    default_rate_limit: int = Field(default=100, ge=1, le=10000)
    # Externally visible URL prefix; endpoint URL is {public_base_url}/{path or id}
    public_base_url: str = "http://localhost:8000/v1/invoke"


class ExecutorConfig(BaseModel):
    """External query executor (HTTP)."""

    # None = no executor configured; probes fail with execution_error
    base_url: str | None = None
    api_token: str | None = None
    connect_timeout: float = 5.0
    read_timeout: float = 60.0
    max_connections: int = 50
    max_keepalive_connections: int = 20


class ProbeConfig(BaseModel):
    """Probe / test invocation limits."""

    timeout_seconds: float = Field(default=30.0, gt=0)
    default_table_limit: int = Field(default=10, ge=1)
    invoke_table_limit: int = Field(default=1000, ge=1)
    max_table_limit: int = Field(default=1000, ge=1)


class ActivityConfig(BaseModel):
    """Activity log listing limits."""

    default_limit: int = 20
    max_limit: int = 200


class Settings(BaseSettings):
    """Gateway settings."""

    model_config = SettingsConfigDict(
        env_prefix="GATEWAY_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    endpoints: EndpointsConfig = Field(default_factory=EndpointsConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    activity: ActivityConfig = Field(default_factory=ActivityConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Nested sections are merged key by key, so an env var only
        # replaces the single value it names
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=_find_config_file()),
            file_secret_settings,
        )


def _find_config_file() -> Path | None:
    """Locate the YAML config file, if any.

    Looks for config file in order:
    1. GATEWAY_CONFIG_FILE environment variable
    2. ./config.yaml
    3. /etc/gateway/config.yaml
    """
    config_paths = [
        os.environ.get("GATEWAY_CONFIG_FILE"),
        Path("config.yaml"),
        Path("/etc/gateway/config.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            return path

    return None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Configuration is loaded from:
    1. Environment variables
    2. YAML config file (if exists)
    3. Defaults
    """
    return Settings()

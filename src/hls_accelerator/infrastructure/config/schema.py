"""Pydantic configuration models with validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .defaults import DEFAULT_USER_AGENT

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]


def _normalize_path(value: Any) -> Path:
    """
    Normalize a path-like value without causing filesystem side-effects.

    This function MUST NOT create directories or files.
    """
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise TypeError(f"Expected path-like value, got: {type(value)!r}")


class AppConfig(BaseModel):
    """
    Canonical application configuration (validated, final).

    Note:
    - YAML is expected to be sectioned (http/proxy/aria2/logging/cache/background).
    - Environment variables are handled by EnvOverrides(BaseSettings) to allow strict
      precedence control (defaults < YAML < ENV < CLI) in load.py.
    """

    # General
    app_name: str = Field(default="hls-accelerator", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    # HTTP (YAML section: http.*)
    http_timeout_seconds: float = Field(
        default=30.0,
        validation_alias=AliasChoices(
            "http_timeout_seconds",
            AliasPath("http", "timeout_seconds"),
        ),
        description="Timeout for upstream playlist and pass-through fetches.",
    )
    http_follow_redirects: bool = Field(
        default=True,
        validation_alias=AliasChoices(
            "http_follow_redirects",
            AliasPath("http", "follow_redirects"),
        ),
        description="Whether the upstream HTTP client follows redirects.",
    )
    http_user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        validation_alias=AliasChoices(
            "http_user_agent",
            AliasPath("http", "user_agent"),
        ),
        description="User-Agent forwarded upstream and to the fetch engine.",
    )
    http_headers: dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices(
            "http_headers",
            AliasPath("http", "headers"),
        ),
        description="Extra static headers forwarded upstream (Referer, Cookie, ...).",
    )
    http_max_concurrent_upstream: int = Field(
        default=50,
        validation_alias=AliasChoices(
            "http_max_concurrent_upstream",
            AliasPath("http", "max_concurrent_upstream"),
        ),
        description="Max parallel upstream fetches (stampede guard).",
    )

    # Proxy (YAML section: proxy.*)
    proxy_port: int = Field(
        default=8084,
        validation_alias=AliasChoices(
            "proxy_port",
            AliasPath("proxy", "port"),
        ),
        description="Port the proxy listens on.",
    )
    proxy_public_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "proxy_public_base_url",
            AliasPath("proxy", "public_base_url"),
        ),
        description=(
            "Proxy base used for rewrites outside a player request. "
            "Defaults to http://localhost:{proxy_port}/proxy."
        ),
    )

    # Fetch engine (YAML section: aria2.*)
    aria2_rpc_url: str = Field(
        default="http://localhost:6800/jsonrpc",
        validation_alias=AliasChoices(
            "aria2_rpc_url",
            AliasPath("aria2", "rpc_url"),
        ),
        description="aria2 JSON-RPC endpoint.",
    )
    aria2_secret: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "aria2_secret",
            AliasPath("aria2", "secret"),
        ),
        description="aria2 RPC secret token (--rpc-secret).",
    )
    aria2_timeout_seconds: float = Field(
        default=10.0,
        validation_alias=AliasChoices(
            "aria2_timeout_seconds",
            AliasPath("aria2", "timeout_seconds"),
        ),
        description="Timeout per RPC call in seconds.",
    )

    # Logging (YAML section: logging.*)
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices(
            "log_level",
            AliasPath("logging", "level"),
        ),
        description="Log level.",
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=AliasChoices(
            "log_format",
            AliasPath("logging", "format"),
        ),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    # Cache (YAML section: cache.*)
    cache_dir: Path = Field(
        default=Path("./cache"),
        validation_alias=AliasChoices(
            "cache_dir",
            AliasPath("cache", "dir"),
        ),
        description="Root directory holding one sub-directory per task.",
    )
    cache_incomplete_suffix: str = Field(
        default=".aria2",
        validation_alias=AliasChoices(
            "cache_incomplete_suffix",
            AliasPath("cache", "incomplete_suffix"),
        ),
        description="Sidecar suffix the fetch engine leaves next to partial files.",
    )
    database_path: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices(
            "database_path",
            AliasPath("cache", "database_path"),
        ),
        description="SQLite task database. Defaults to {cache_dir}/tasks.db.",
    )

    # Background work (YAML section: background.*)
    background_drain_timeout_seconds: float = Field(
        default=10.0,
        validation_alias=AliasChoices(
            "background_drain_timeout_seconds",
            AliasPath("background", "drain_timeout_seconds"),
        ),
        description="Max seconds shutdown waits for detached task registration.",
    )

    @field_validator("cache_dir", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Path:
        return _normalize_path(v)

    @field_validator("database_path", mode="before")
    @classmethod
    def _validate_optional_path(cls, v: Any) -> Path | None:
        if v is None:
            return None
        return _normalize_path(v)

    @field_validator("http_timeout_seconds", "aria2_timeout_seconds")
    @classmethod
    def _validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be > 0")
        return v

    @field_validator("proxy_port")
    @classmethod
    def _validate_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError("proxy_port must be between 1 and 65535")
        return v

    @field_validator("http_max_concurrent_upstream")
    @classmethod
    def _validate_concurrency(cls, v: int) -> int:
        if v < 1:
            raise ValueError("http_max_concurrent_upstream must be >= 1")
        return v

    @field_validator("cache_incomplete_suffix")
    @classmethod
    def _validate_suffix(cls, v: str) -> str:
        if not v or "/" in v:
            raise ValueError("cache_incomplete_suffix must be a non-empty file suffix")
        return v

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"
        if self.database_path is None:
            self.database_path = self.cache_dir / "tasks.db"
        if self.proxy_public_base_url is None:
            self.proxy_public_base_url = f"http://localhost:{self.proxy_port}/proxy"
        else:
            self.proxy_public_base_url = self.proxy_public_base_url.rstrip("/")
        return self

    def forwarded_headers(self) -> dict[str, str]:
        """Static header set sent with every upstream fetch and engine job."""
        headers = {"User-Agent": self.http_user_agent}
        headers.update(self.http_headers)
        return headers

    def to_sectioned_dict(self) -> dict[str, Any]:
        """
        Dump configuration in the sectioned shape used by config.yaml/docs.
        """
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "follow_redirects": self.http_follow_redirects,
                "user_agent": self.http_user_agent,
                "headers": dict(self.http_headers),
                "max_concurrent_upstream": self.http_max_concurrent_upstream,
            },
            "proxy": {
                "port": self.proxy_port,
                "public_base_url": self.proxy_public_base_url,
            },
            "aria2": {
                "rpc_url": self.aria2_rpc_url,
                "secret": self.aria2_secret,
                "timeout_seconds": self.aria2_timeout_seconds,
            },
            "logging": {"level": self.log_level, "format": self.log_format},
            "cache": {
                "dir": str(self.cache_dir),
                "incomplete_suffix": self.cache_incomplete_suffix,
                "database_path": str(self.database_path),
            },
            "background": {
                "drain_timeout_seconds": self.background_drain_timeout_seconds,
            },
        }


class EnvOverrides(BaseSettings):
    """
    Environment-variable overrides (all optional).

    Intended usage:
    - load.py creates EnvOverrides() to read HLSACCEL_* variables,
      converts to dict of set values, merges into YAML/defaults,
      then validates AppConfig.

    Supported env var examples (flat, explicit):
    - HLSACCEL_CACHE_DIR
    - HLSACCEL_ARIA2_RPC_URL
    - HLSACCEL_ARIA2_SECRET
    - HLSACCEL_LOG_LEVEL
    """

    model_config = SettingsConfigDict(
        env_prefix="HLSACCEL_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    http_timeout_seconds: Optional[float] = None
    http_follow_redirects: Optional[bool] = None
    http_user_agent: Optional[str] = None

    proxy_port: Optional[int] = None
    proxy_public_base_url: Optional[str] = None

    aria2_rpc_url: Optional[str] = None
    aria2_secret: Optional[str] = None
    aria2_timeout_seconds: Optional[float] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    cache_dir: Optional[Path] = None
    database_path: Optional[Path] = None

    @field_validator("cache_dir", "database_path", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Any:
        if v is None:
            return None
        return _normalize_path(v)

    def to_update_dict(self) -> dict[str, Any]:
        """
        Return only values that were actually provided (non-None), for merging.
        """
        return self.model_dump(exclude_none=True)

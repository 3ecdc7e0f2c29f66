"""
LiveCoord Configuration Module.

Centralizes all configuration settings using Pydantic Settings.
Requires Python 3.11+.
"""

from functools import lru_cache
from pathlib import Path
from typing import Annotated

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Load .env file into os.environ at module import time
# This ensures nested BaseSettings classes can read the values
_env_file = Path(__file__).parent.parent / ".env"
if _env_file.exists():
    load_dotenv(_env_file)
else:
    # Try current working directory
    load_dotenv()


def _split_csv(v: str | list[str]) -> list[str]:
    if isinstance(v, str):
        return [p.strip() for p in v.split(",") if p.strip()]
    return v


class WatcherSettings(BaseSettings):
    """File watcher configuration settings."""

    model_config = SettingsConfigDict(env_prefix="WATCHER_")

    root: Path = Field(default=Path("."), description="Served directory to watch")
    debounce_delay_ms: int = Field(default=500, ge=1, le=10000)
    recursive: bool = Field(default=True)
    enabled: bool = Field(default=True)

    ignore_patterns: Annotated[list[str], NoDecode] = Field(
        default=[
            ".git",
            "__pycache__",
            "node_modules",
            "*.swp",
            "*~",
            ".DS_Store",
        ],
        description="Filesystem patterns never reported as changes",
    )

    @field_validator("ignore_patterns", mode="before")
    @classmethod
    def parse_ignore_patterns(cls, v: str | list[str]) -> list[str]:
        """Parse ignore patterns from comma-separated string or list."""
        return _split_csv(v)


class ReloadSettings(BaseSettings):
    """Reload classification settings."""

    model_config = SettingsConfigDict(env_prefix="RELOAD_")

    inject_patterns: Annotated[list[str], NoDecode] = Field(
        default=["*.css", "*.jpg", "*.png"],
        description="Served paths that can be hot-injected without a reload",
    )
    ignore_patterns: Annotated[list[str], NoDecode] = Field(
        default=["*.map"],
        description="Served paths dropped from a batch before classification",
    )

    @field_validator("inject_patterns", "ignore_patterns", mode="before")
    @classmethod
    def parse_patterns(cls, v: str | list[str]) -> list[str]:
        """Parse patterns from comma-separated string or list."""
        return _split_csv(v)


class ServerSettings(BaseSettings):
    """HTTP/WebSocket server configuration settings."""

    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8090, ge=1, le=65535)
    bind_address: str | None = Field(
        default=None,
        description="host:port override taking precedence over host and port",
    )
    serve_static: bool = Field(default=True, description="Serve the watched root over HTTP")
    client_queue_size: int = Field(default=256, ge=1)
    debug: bool = Field(default=False)

    @property
    def effective_host(self) -> str:
        """Host part of the bind address."""
        if self.bind_address:
            return self.bind_address.rsplit(":", 1)[0]
        return self.host

    @property
    def effective_port(self) -> int:
        """Port part of the bind address."""
        if self.bind_address and ":" in self.bind_address:
            return int(self.bind_address.rsplit(":", 1)[1])
        return self.port

    @field_validator("bind_address")
    @classmethod
    def validate_bind_address(cls, v: str | None) -> str | None:
        """Require host:port with a numeric port."""
        if v is None or v == "":
            return None
        host, sep, port = v.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"bind address must look like host:port, got {v!r}")
        return v


class SupervisorSettings(BaseSettings):
    """Native server subprocess settings."""

    model_config = SettingsConfigDict(env_prefix="SUPERVISOR_")

    command: Annotated[list[str], NoDecode] = Field(
        default=[],
        description="Command line of the supervised server; empty disables it",
    )
    terminate_timeout: float = Field(default=5.0, ge=0.1)

    @field_validator("command", mode="before")
    @classmethod
    def parse_command(cls, v: str | list[str]) -> list[str]:
        """Accept a whitespace-separated command string or a list."""
        if isinstance(v, str):
            return v.split()
        return v


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO")
    format: str = Field(default="json")  # "json" or "console"


class Settings(BaseSettings):
    """Main application settings aggregating all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(default="LiveCoord")
    app_version: str = Field(default="0.1.0")
    environment: str = Field(default="development")

    # Sub-settings
    watcher: WatcherSettings = Field(default_factory=WatcherSettings)
    reload: ReloadSettings = Field(default_factory=ReloadSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    supervisor: SupervisorSettings = Field(default_factory=SupervisorSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() in ("development", "dev", "local")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns singleton instance of Settings for performance.
    Use dependency injection in FastAPI routes.
    """
    return Settings()


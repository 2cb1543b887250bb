"""
Cursor Sync Configuration System.

Type-safe configuration using Pydantic. Settings can be loaded from:
1. Environment variables (prefixed with CURSOR_SYNC_)
2. Config file (TOML or JSON)
3. CLI arguments (highest priority)

Example usage:
    from cursor_sync.config import Settings

    # Load from environment
    settings = Settings()

    # Or with explicit values
    settings = Settings(
        window={"default_lookback": "PT1H", "max_lookback": "P7D"},
        concurrency=4,
    )
"""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path
from typing import Any, Self

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Written in place of a real token when settings are saved
REDACTED = "***REDACTED***"


class WindowConfig(BaseModel):
    """Bounds used when planning sync windows."""

    default_lookback: timedelta = Field(
        default=timedelta(hours=1),
        description="Window size used for a cursor's first sync",
    )
    max_lookback: timedelta = Field(
        default=timedelta(days=7),
        description="Largest window requested for a lagging cursor",
    )

    @model_validator(mode="after")
    def validate_lookbacks(self) -> Self:
        """Ensure lookbacks are positive and ordered."""
        if self.default_lookback <= timedelta(0):
            raise ValueError("default_lookback must be positive")
        if self.max_lookback < self.default_lookback:
            raise ValueError("max_lookback must be >= default_lookback")
        return self


class StageTimeouts(BaseModel):
    """Per-stage deadlines in seconds (None = unbounded)."""

    planning: float | None = Field(default=30.0, gt=0)
    fetching: float | None = Field(default=300.0, gt=0)
    publishing: float | None = Field(default=300.0, gt=0)
    committing: float | None = Field(default=30.0, gt=0)

    def for_stage(self, stage: str) -> float | None:
        """Get the deadline for a stage name, if one is configured."""
        return getattr(self, stage, None)


class StoreConfig(BaseModel):
    """Cursor store configuration."""

    path: Path = Field(
        default=Path(".cursor-sync.db"),
        description="Path to the SQLite database holding cursors",
    )
    busy_timeout_seconds: float = Field(
        default=30.0,
        ge=0,
        description="How long a writer waits on a locked database",
    )


class SinkConfig(BaseModel):
    """Downstream SQLite sink configuration."""

    path: Path = Field(
        default=Path("records.db"),
        description="Path to the SQLite database receiving records",
    )
    table: str = Field(
        default="records",
        pattern=r"^[A-Za-z_][A-Za-z0-9_]*$",
        description="Table records are upserted into",
    )


class ProviderConfig(BaseModel):
    """Upstream HTTP provider configuration."""

    base_url: str = Field(
        default="",
        description="Endpoint returning records for a time window",
    )
    api_token: SecretStr = Field(
        default=SecretStr(""),
        description="Bearer token sent to the provider",
    )
    start_param: str = Field(default="start", description="Query param for window start")
    end_param: str = Field(default="end", description="Query param for window end")
    records_path: str = Field(
        default="",
        description="Dotted path to the record list in the response (empty = root)",
    )
    id_field: str = Field(default="id")
    start_field: str = Field(default="start")
    end_field: str = Field(default="end")
    max_retries: int = Field(default=3, ge=1, le=10)
    retry_delay_seconds: float = Field(default=1.0, ge=0)
    timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("api_token", mode="before")
    @classmethod
    def validate_token(cls, v: Any) -> SecretStr:
        """Handle token from various sources."""
        if isinstance(v, SecretStr):
            return v
        if isinstance(v, str) and v != REDACTED:
            return SecretStr(v)
        return SecretStr("")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Log level",
    )
    file: Path | None = Field(
        default=None,
        description="Log file path (None = console only)",
    )
    format: str = Field(
        default="rich",
        pattern="^(rich|json|simple)$",
        description="Log format: rich (colored), json, or simple",
    )
    max_file_size_mb: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Max log file size before rotation",
    )
    backup_count: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Number of rotated log files to keep",
    )


class Settings(BaseSettings):
    """
    Main settings class for Cursor Sync.

    Settings are loaded in this priority (highest first):
    1. Explicit constructor arguments
    2. Environment variables (CURSOR_SYNC_* prefix)
    3. Config file (if specified)
    4. Defaults

    Example:
        export CURSOR_SYNC_PROVIDER__BASE_URL="https://api.example.com/trips"
        export CURSOR_SYNC_WINDOW__MAX_LOOKBACK="P3D"
        settings = Settings()

        settings = Settings.from_file("config.toml")
    """

    model_config = SettingsConfigDict(
        env_prefix="CURSOR_SYNC_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    target_type: str = Field(
        default="default",
        description="Name of the downstream target cursors are tracked for",
    )
    concurrency: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Maximum cycles run at once by run_many",
    )
    dry_run: bool = Field(
        default=False,
        description="Fetch and resolve only; never publish or commit",
    )

    window: WindowConfig = Field(default_factory=WindowConfig)
    timeouts: StageTimeouts = Field(default_factory=StageTimeouts)
    store: StoreConfig = Field(default_factory=StoreConfig)
    sink: SinkConfig = Field(default_factory=SinkConfig)
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: Path | str) -> "Settings":
        """Load settings from a TOML or JSON config file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        content = path.read_text()

        if path.suffix in (".toml", ".tml"):
            import tomllib

            data = tomllib.loads(content)
        elif path.suffix == ".json":
            data = json.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")

        return cls.model_validate(data)

    def to_file(self, path: Path | str) -> None:
        """Save current settings to a config file."""
        path = Path(path)
        data = self.model_dump(mode="json", exclude_none=True)

        # Mask sensitive data; an unset token is left out entirely
        provider = data.get("provider", {})
        if self.provider.api_token.get_secret_value():
            provider["api_token"] = REDACTED
        else:
            provider.pop("api_token", None)

        if path.suffix in (".toml", ".tml"):
            # Basic TOML serialization
            lines = []
            for key, value in data.items():
                if not isinstance(value, dict):
                    lines.append(f"{key} = {json.dumps(value)}")
            for key, value in data.items():
                if isinstance(value, dict):
                    lines.append(f"\n[{key}]")
                    for k, v in value.items():
                        lines.append(f"{k} = {json.dumps(v)}")
            path.write_text("\n".join(lines) + "\n")
        else:
            path.write_text(json.dumps(data, indent=2))

    def validate_provider(self) -> list[str]:
        """Validate that the HTTP provider is usable. Returns list of errors."""
        errors = []
        if not self.provider.base_url:
            errors.append("provider.base_url is required")
        elif not self.provider.base_url.startswith(("http://", "https://")):
            errors.append("provider.base_url must be an http(s) URL")
        return errors


def load_settings(
    config_file: Path | str | None = None,
    **overrides: Any,
) -> Settings:
    """
    Load settings with optional config file and overrides.

    Args:
        config_file: Optional path to config file
        **overrides: Settings to override (highest priority)

    Returns:
        Configured Settings instance
    """
    if config_file:
        settings = Settings.from_file(config_file)
        if overrides:
            data = settings.model_dump()
            data.update(overrides)
            return Settings.model_validate(data)
        return settings
    return Settings(**overrides)

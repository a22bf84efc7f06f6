"""Configuration settings for execpack.

Uses pydantic-settings for config parsing from environment variables
and defaults. Configuration precedence: CLI flags > env vars > defaults.
"""

import logging
from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.console import Console
from rich.logging import RichHandler

from execpack.assets.validation import (
    DEFAULT_BLOCKED_EXTENSIONS,
    DEFAULT_MAX_ASSET_SIZE,
    DEFAULT_MAX_TOTAL_SIZE,
    DEFAULT_WARN_EXTENSIONS,
    DEFAULT_WARN_THRESHOLD,
    ValidationOptions,
)
from execpack.builds.compiler import resolve_target
from execpack.errors import ConfigurationError


class Settings(BaseSettings):
    """Application settings.

    Settings are loaded from environment variables with the EXECPACK_
    prefix. CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="EXECPACK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Output
    out_dir: Path = Field(
        default=Path("dist"),
        description="Output directory for the built executable",
    )
    binary_name: str = Field(
        default="app",
        min_length=1,
        description="Name of the executable",
    )
    embed_static: bool = Field(
        default=True,
        description="Embed static assets in the executable instead of "
        "copying them next to it",
    )
    target: str | None = Field(
        default=None,
        description="Target platform id (builds for the host when not set)",
    )

    # Build paths and tools
    staging_dir: Path = Field(
        default=Path(".execpack"),
        description="Working directory for intermediate build outputs",
    )
    framework_output: Path = Field(
        default=Path("build"),
        description="Directory holding the framework's client, prerendered "
        "and server output",
    )
    compiler: str = Field(
        default="pyinstaller",
        description="Compiler executable used to produce the binary",
    )
    compile_timeout: int = Field(
        default=1800,
        ge=60,
        description="Timeout for the compile step in seconds",
    )
    windows_hide_console: bool = Field(
        default=False,
        description="Hide the console window of Windows executables",
    )

    # Asset validation
    skip_validation: bool = Field(
        default=False,
        description="Skip asset validation entirely (not recommended)",
    )
    max_asset_size: int = Field(
        default=DEFAULT_MAX_ASSET_SIZE,
        ge=0,
        description="Maximum individual asset size in bytes",
    )
    max_total_size: int = Field(
        default=DEFAULT_MAX_TOTAL_SIZE,
        ge=0,
        description="Maximum total size of all embedded assets in bytes",
    )
    warn_threshold: int = Field(
        default=DEFAULT_WARN_THRESHOLD,
        ge=0,
        description="Warn about assets larger than this many bytes",
    )
    blocked_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_BLOCKED_EXTENSIONS),
        description="Extensions that fail validation",
    )
    warn_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_WARN_EXTENSIONS),
        description="Extensions that produce validation warnings",
    )
    allowed_extensions: list[str] | None = Field(
        default=None,
        description="If set, only these extensions pass validation",
    )

    # Runtime
    host: str = Field(default="0.0.0.0", description="Address to listen on")
    port: int = Field(
        default=3000,
        ge=0,
        le=65535,
        validation_alias=AliasChoices("EXECPACK_PORT", "PORT", "port"),
        description="Port to listen on",
    )
    grace_period: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait for in-flight requests on shutdown",
    )
    poll_interval: float = Field(
        default=0.1,
        gt=0,
        description="Seconds between in-flight request checks on shutdown",
    )
    open_browser: bool = Field(
        default=False,
        description="Open the default browser once the server is listening",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    @field_validator("target")
    @classmethod
    def validate_target(cls, v: str | None) -> str | None:
        """Validate target is a supported platform id."""
        if v is None:
            return v
        resolve_target(v)
        return v

    def validation_options(self) -> ValidationOptions:
        """Build asset validation options from these settings.

        Returns:
            ValidationOptions instance.
        """
        return ValidationOptions(
            max_asset_size=self.max_asset_size,
            max_total_size=self.max_total_size,
            warn_threshold=self.warn_threshold,
            blocked_extensions=self.blocked_extensions,
            warn_extensions=self.warn_extensions,
            allowed_extensions=self.allowed_extensions,
        )


def get_settings(**overrides: Any) -> Settings:
    """Get the application settings.

    Args:
        **overrides: Values taking precedence over the environment; ``None``
            values are ignored.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ConfigurationError: If a setting has an invalid value.
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


def configure_logging(level: str = "INFO") -> None:
    """Route log records through rich at the given level."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[
            RichHandler(
                console=Console(stderr=True), rich_tracebacks=True, show_path=False
            )
        ],
        force=True,
    )


__all__ = ["Settings", "configure_logging", "get_settings", "print_settings_json"]

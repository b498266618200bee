"""
Host settings loaded from the process environment using pydantic-settings.

These are the knobs that decide *where* configuration lives rather than
what it says:

  VESSEL_CWD=/path/to/project         working directory override
  VESSEL_HOME=/path/to/home           home directory override
  VESSEL_DEFAULT_PROVIDER=libvirt     provider used when none is requested
  VESSEL_STRICT_CONFIG=true           reject unknown config keys
  VESSEL_LOG=debug                    log level for the CLI host

Explicit Environment options always take precedence over these.
"""

import pathlib as _pathlib
import typing as _typing

import pydantic as _pydantic
import pydantic_settings as _pydantic_settings

import vessel.constants as _constants


class EnvironmentSettings(_pydantic_settings.BaseSettings):
    """
    Settings read from VESSEL_* environment variables.

    Read once per Environment construction; an instance is a snapshot.
    """

    model_config = _pydantic_settings.SettingsConfigDict(
        env_prefix="VESSEL_",
        extra="ignore",
    )

    cwd: _pathlib.Path | None = None
    """Working directory override (VESSEL_CWD)."""

    home: _pathlib.Path | None = None
    """Home directory override (VESSEL_HOME)."""

    default_provider: str = _constants.DEFAULT_PROVIDER
    """Provider used when machine() is called without one."""

    strict_config: bool = False
    """Reject unknown keys in config sources."""

    log: _typing.Literal["debug", "info", "warning", "error"] | None = None
    """Log level for the CLI host; None leaves logging unconfigured."""

    @_pydantic.field_validator("cwd", "home", mode="before")
    @classmethod
    def _empty_path_is_unset(cls, value: _typing.Any) -> _typing.Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @_pydantic.field_validator("log", mode="before")
    @classmethod
    def _normalize_level(cls, value: _typing.Any) -> _typing.Any:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value

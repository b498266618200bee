"""
Configuration module for Vessel.

Layered YAML sources are validated with Pydantic, upgraded from the legacy
schema when needed, and deep-merged per machine. Host settings come from
VESSEL_* environment variables via pydantic-settings.
"""

from vessel.config.loader import ConfigLoader, MachineDefinition, MergedConfig
from vessel.config.settings import EnvironmentSettings
from vessel.config.sources import ConfigLayer, ConfigSourceReader, RawConfigDocument
from vessel.config.types import GlobalConfig, MachineConfig, RootConfig

__all__ = [
    "ConfigLayer",
    "ConfigLoader",
    "ConfigSourceReader",
    "EnvironmentSettings",
    "GlobalConfig",
    "MachineConfig",
    "MachineDefinition",
    "MergedConfig",
    "RawConfigDocument",
    "RootConfig",
]

"""
Shared constants for Vessel.

This module provides a single source of truth for default values
that are used across multiple modules.
"""

# Paths and filenames
DEFAULT_HOME = "~/.vessel.d"
"""Default home directory (expanded to an absolute path at runtime)."""

DEFAULT_PROJECT_FILENAME = "Vesselfile"
"""Conventional filename of the project source."""

LOCAL_DATA_DIRNAME = ".vessel"
"""Name of the per-project data directory, created beside the project source."""

PRIVATE_KEY_FILENAME = "insecure_private_key"
"""Name of the bundled default SSH key copied into the home directory."""

HOME_SETUP_VERSION = "1.1"
"""Layout version written to <home>/setup_version."""

HOME_SUBDIRECTORIES = ("boxes", "data", "tmp")
"""Subdirectories that must exist under the home directory."""

# Machines and providers
DEFAULT_MACHINE_NAME = "default"
"""Name of the implicit machine synthesized when none are defined."""

DEFAULT_PROVIDER = "virtualbox"
"""Provider used when none is requested and VESSEL_DEFAULT_PROVIDER is unset."""

PROVIDER_ENTRY_POINT_GROUP = "vessel.providers"
"""Entry point group scanned for installed provider plugins."""

# Configuration schema versions
CURRENT_CONFIG_VERSION = "2"
LEGACY_CONFIG_VERSION = "1"

# Environment variables
ENV_CWD = "VESSEL_CWD"
ENV_HOME = "VESSEL_HOME"
ENV_DEFAULT_PROVIDER = "VESSEL_DEFAULT_PROVIDER"
ENV_LOG = "VESSEL_LOG"

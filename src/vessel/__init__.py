"""
Vessel - reproducible development environments

Resolves layered machine configuration, builds and caches machines on
pluggable virtualization providers, and runs their lifecycle actions as
onion-style pipelines.
"""

import importlib.metadata as _metadata

# Version is defined in pyproject.toml - read it and parse into tuple (primary representation)
_raw_version = _metadata.version("vessel")
__version_info__: tuple[int, int, int] = tuple(int(x) for x in _raw_version.split(".")[:3])  # type: ignore[assignment]
__version__: str = ".".join(str(x) for x in __version_info__)

from vessel.environment import Environment  # noqa: E402
from vessel.machine import Machine  # noqa: E402
from vessel.providers import Provider, ProviderRegistry  # noqa: E402

__all__ = [
    "__version__",
    "__version_info__",
    "Environment",
    "Machine",
    "Provider",
    "ProviderRegistry",
]

"""
Provider interface and registry.

Providers are the pluggable virtualization backends. This package only
defines the contract; concrete backends live in separate distributions and
register through the "vessel.providers" entry point group.
"""

from vessel.providers.base import MachineState, Provider
from vessel.providers.registry import ProviderFactory, ProviderRegistry

__all__ = [
    "MachineState",
    "Provider",
    "ProviderFactory",
    "ProviderRegistry",
]

"""
Utility classes and functions for Vessel.

General-purpose utilities that don't belong to a specific domain.
"""

import vessel.utils.deep_chain_map as deep_chain_map
from vessel.utils.deep_chain_map import DeepChainMap, deep_merge

__all__ = ["DeepChainMap", "deep_chain_map", "deep_merge"]

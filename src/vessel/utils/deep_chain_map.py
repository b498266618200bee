"""
DeepChainMap: a read-only ChainMap with deep merging at lookup time.

Unlike collections.ChainMap which returns the first dict containing a key,
DeepChainMap recursively merges values from every layer that contains it.

Merge rules:
- Dicts merge key-wise, recursively
- Lists replace wholesale (the higher-priority list wins)
- Scalars and type mismatches: the higher-priority value wins

Example:
    >>> system = {"ssh": {"username": "vessel", "port": None}}
    >>> project = {"ssh": {"port": 2200}}
    >>> dcm = DeepChainMap(project, system)  # project has priority
    >>> dcm["ssh"]
    {'username': 'vessel', 'port': 2200}
"""

from __future__ import annotations

import copy as _copy
import typing as _typing

# Provenance maps each key to the index of the layer its value came from,
# or to a nested provenance dict for merged sub-mappings. The key "." holds
# the layer index of a scalar or list value.
Provenance: _typing.TypeAlias = dict[str, _typing.Any]


class DeepChainMap(_typing.Mapping[str, _typing.Any]):
    """
    A read-only mapping over layered dicts, deep-merged on access.

    Layers are given in priority order (first = highest priority) and are
    stored by reference; DeepChainMap never modifies them. Merged values are
    cached per top-level key, and every read returns a deep copy so callers
    cannot corrupt the cache.

    Args:
        *maps: Dicts in priority order (first = highest priority).
    """

    def __init__(self, *maps: dict[str, _typing.Any]) -> None:
        self._layers: list[dict[str, _typing.Any]] = list(maps)
        self._cache: dict[str, _typing.Any] = {}
        self._provenance_cache: dict[str, Provenance] = {}

    @classmethod
    def from_ascending(cls, *maps: dict[str, _typing.Any]) -> DeepChainMap:
        """Build from layers given lowest precedence first."""
        return cls(*reversed(maps))

    @property
    def layers(self) -> list[dict[str, _typing.Any]]:
        """Deep copies of the source layers, highest priority first."""
        return [_copy.deepcopy(layer) for layer in self._layers]

    def add_layer(self, data: dict[str, _typing.Any], priority: int | None = None) -> None:
        """
        Add a new layer.

        Args:
            data: The dict to add as a layer.
            priority: Index to insert at. None = highest priority (index 0).
        """
        self._layers.insert(0 if priority is None else priority, data)
        self._cache.clear()
        self._provenance_cache.clear()

    def __getitem__(self, key: str) -> _typing.Any:
        if key not in self._cache:
            self._populate(key)
        return _copy.deepcopy(self._cache[key])

    def __iter__(self) -> _typing.Iterator[str]:
        seen: set[str] = set()
        for layer in self._layers:
            for key in layer:
                if key not in seen:
                    seen.add(key)
                    yield key

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and any(key in layer for layer in self._layers)

    def __repr__(self) -> str:
        return f"DeepChainMap({', '.join(repr(layer) for layer in self._layers)})"

    def get_with_provenance(self, key: str) -> tuple[_typing.Any, Provenance]:
        """
        Get a merged value along with provenance information.

        Returns:
            Tuple of (merged_value, provenance). Layer indices in the
            provenance refer to this map's layer order (0 = highest priority).

        Raises:
            KeyError: If no layer contains the key.
        """
        value = self[key]
        return value, _copy.deepcopy(self._provenance_cache[key])

    def provenance(self) -> Provenance:
        """Provenance for every top-level key."""
        return {key: self.get_with_provenance(key)[1] for key in self}

    def to_dict(self) -> dict[str, _typing.Any]:
        """Return a fully merged plain dict (deep copy)."""
        return {key: self[key] for key in self}

    def _populate(self, key: str) -> None:
        # Collect (layer_index, value) from lowest to highest priority
        values = [
            (index, layer[key])
            for index, layer in reversed(list(enumerate(self._layers)))
            if key in layer
        ]
        if not values:
            raise KeyError(key)

        first_index, first_value = values[0]
        result = _copy.deepcopy(first_value)
        provenance = _initial_provenance(result, first_index)
        for index, value in values[1:]:
            result, provenance = _merge_value(result, value, provenance, index)

        self._cache[key] = result
        self._provenance_cache[key] = provenance


def _initial_provenance(value: _typing.Any, layer_index: int) -> Provenance:
    if isinstance(value, dict):
        return {
            k: _initial_provenance(v, layer_index) if isinstance(v, dict) else layer_index
            for k, v in value.items()
        }
    return {".": layer_index}


def _merge_value(
    base: _typing.Any,
    override: _typing.Any,
    provenance: Provenance,
    layer_index: int,
) -> tuple[_typing.Any, Provenance]:
    """Merge override (higher priority) into base."""
    if not (isinstance(base, dict) and isinstance(override, dict)):
        return _copy.deepcopy(override), _initial_provenance(override, layer_index)

    result = dict(base)
    merged_provenance = dict(provenance)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            sub_provenance = provenance.get(key)
            result[key], merged_provenance[key] = _merge_value(
                result[key],
                value,
                sub_provenance if isinstance(sub_provenance, dict) else {},
                layer_index,
            )
        else:
            result[key] = _copy.deepcopy(value)
            merged_provenance[key] = (
                _initial_provenance(value, layer_index)
                if isinstance(value, dict)
                else layer_index
            )
    return result, merged_provenance


def deep_merge(*maps: dict[str, _typing.Any]) -> dict[str, _typing.Any]:
    """
    Deep-merge dicts given lowest precedence first.

    Convenience wrapper for one-shot merges that don't need provenance.
    """
    return DeepChainMap.from_ascending(*maps).to_dict()

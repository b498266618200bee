"""Configuration sources: reading, versioning and validating layers.

This module provides:

- ConfigSourceReader: reads a YAML source from disk, tracking line numbers
  so validation errors can point at the offending key.
- RawConfigDocument: the parsed, unvalidated content of one source.
- CurrentDocument / LegacyDocument: the versioned document sum type.
- ConfigLayer: a named, read-only layer in the current schema, ready to be
  merged by the loader.

Layers (lowest to highest precedence):
1. System defaults: bundled defaults/config.yaml
2. Home: <home>/Vesselfile
3. Project: <root>/Vesselfile (or the caller-specified filename)
4. Box: the Vesselfile shipped inside the machine's box
5. Machine: the `config` block of the machine's vm.define entry
"""

from __future__ import annotations

import copy as _copy
import dataclasses as _dataclasses
import logging as _logging
import pathlib as _pathlib
import threading as _threading
import types as _types
import typing as _typing

import pydantic as _pydantic
import yaml as _yaml

import vessel.config.legacy as legacy
import vessel.config.types as types
import vessel.constants as _constants
import vessel.errors as errors

_logger = _logging.getLogger(__name__)

# Maps key paths to (line, column) tuples, 1-indexed to match editors
LineRegistry = dict[tuple[str, ...], tuple[int, int]]


class _LineTrackingLoader(_yaml.SafeLoader):
    """YAML loader that records the line/column of every mapping key."""

    def __init__(self, stream: _typing.Any) -> None:
        super().__init__(stream)
        self._line_registry: LineRegistry = {}
        self._path_stack: list[str] = []

    def construct_mapping(
        self, node: _yaml.MappingNode, deep: bool = False
    ) -> dict[_typing.Any, _typing.Any]:
        if not self._path_stack:
            self._line_registry[()] = (node.start_mark.line + 1, node.start_mark.column + 1)

        result: dict[_typing.Any, _typing.Any] = {}
        for key_node, value_node in node.value:
            # deep=True so nested mappings are built while the stack has our prefix
            key = self.construct_object(key_node, deep=True)
            self._path_stack.append(str(key))
            self._line_registry[tuple(self._path_stack)] = (
                key_node.start_mark.line + 1,
                key_node.start_mark.column + 1,
            )
            result[key] = self.construct_object(value_node, deep=True)
            self._path_stack.pop()

        return result


def load_yaml_with_lines(content: str) -> tuple[_typing.Any, LineRegistry]:
    """
    Parse YAML content and track line numbers for all keys.

    Raises:
        yaml.YAMLError: If YAML is malformed.
    """
    loader = _LineTrackingLoader(content)
    try:
        data = loader.get_single_data()
    finally:
        loader.dispose()
    return data, loader._line_registry


@_dataclasses.dataclass(frozen=True)
class RawConfigDocument:
    """The parsed but unvalidated content of one config source."""

    origin: str
    """Path of the source, or a descriptive label for in-memory sources."""

    data: _typing.Mapping[str, _typing.Any]
    lines: _typing.Mapping[tuple[str, ...], tuple[int, int]] = _dataclasses.field(
        default_factory=dict
    )

    @property
    def version(self) -> str:
        """Schema version declared by the document (current if absent)."""
        value = self.data.get("version", _constants.CURRENT_CONFIG_VERSION)
        return str(value)

    def locate(self, path: _typing.Sequence[_typing.Any]) -> str:
        """Format ' (line N)' for the deepest known prefix of a key path."""
        keys = tuple(str(part) for part in path)
        while keys:
            if keys in self.lines:
                return f" (line {self.lines[keys][0]})"
            keys = keys[:-1]
        return ""


class ConfigSourceReader:
    """
    Reads configuration sources from disk.

    Parsed documents are memoized by resolved path, so a source shared by
    several machines (a box's Vesselfile) is read once per reader.
    """

    def __init__(self) -> None:
        self._cache: dict[_pathlib.Path, RawConfigDocument] = {}
        self._lock = _threading.Lock()

    def read(self, path: _pathlib.Path) -> RawConfigDocument:
        """
        Read and parse one YAML source.

        Raises:
            OSError: If the file cannot be read.
            ConfigInvalid: If the YAML is malformed or not a mapping.
        """
        resolved = path.resolve()
        with self._lock:
            cached = self._cache.get(resolved)
            if cached is not None:
                return cached

            _logger.debug("Reading config source %s", resolved)
            content = resolved.read_text(encoding="utf-8")
            document = parse_document(content, origin=str(resolved))
            self._cache[resolved] = document
            return document


def parse_document(content: str, origin: str) -> RawConfigDocument:
    """
    Parse YAML text into a RawConfigDocument.

    An empty document is treated as an empty mapping.

    Raises:
        ConfigInvalid: If the YAML is malformed or not a mapping.
    """
    try:
        parsed, lines = load_yaml_with_lines(content)
    except _yaml.YAMLError as e:
        raise errors.ConfigInvalid(origin, f"invalid YAML: {e}") from e

    if parsed is None:
        parsed = {}
    if not isinstance(parsed, dict):
        raise errors.ConfigInvalid(
            origin,
            f"config must be a YAML mapping, got {type(parsed).__name__}",
        )
    return RawConfigDocument(origin=origin, data=parsed, lines=lines)


# =============================================================================
# Versioned documents
# =============================================================================


@_dataclasses.dataclass(frozen=True)
class CurrentDocument:
    """A source written in the current schema."""

    raw: RawConfigDocument
    body: types.RootConfig


@_dataclasses.dataclass(frozen=True)
class LegacyDocument:
    """A source written in the legacy ("1") schema."""

    raw: RawConfigDocument
    body: legacy.V1Document


VersionedDocument = CurrentDocument | LegacyDocument


def classify(raw: RawConfigDocument) -> VersionedDocument:
    """
    Validate a raw document against the schema its version names.

    Raises:
        ConfigInvalid: On an unknown version or a schema violation.
    """
    version = raw.version
    try:
        if version == _constants.CURRENT_CONFIG_VERSION:
            return CurrentDocument(raw, types.RootConfig.model_validate(dict(raw.data)))
        if version == _constants.LEGACY_CONFIG_VERSION:
            return LegacyDocument(raw, legacy.V1Document.model_validate(dict(raw.data)))
    except _pydantic.ValidationError as e:
        raise errors.ConfigInvalid(raw.origin, format_validation_error(e, raw)) from e

    raise errors.ConfigInvalid(
        raw.origin,
        f"unsupported config version {version!r} (expected "
        f"{_constants.LEGACY_CONFIG_VERSION!r} or {_constants.CURRENT_CONFIG_VERSION!r})",
    )


def to_current(document: VersionedDocument) -> dict[str, _typing.Any]:
    """
    Return the current-schema data of a versioned document.

    Legacy documents are upgraded; current documents are returned as the
    keys they explicitly set.
    """
    match document:
        case CurrentDocument(raw=raw):
            data = dict(raw.data)
            data["version"] = _constants.CURRENT_CONFIG_VERSION
            return data
        case LegacyDocument(raw=raw, body=body):
            try:
                return legacy.upgrade_v1(body)
            except _pydantic.ValidationError as e:
                raise errors.ConfigInvalid(raw.origin, format_validation_error(e, raw)) from e
    raise TypeError(f"Unknown document type: {type(document).__name__}")


def format_validation_error(
    error: _pydantic.ValidationError,
    raw: RawConfigDocument | None = None,
) -> str:
    """Render a pydantic error as '<path>: <message>' lines with line numbers."""
    parts = []
    for item in error.errors():
        location = item.get("loc", ())
        dotted = ".".join(str(part) for part in location) or "<root>"
        where = raw.locate(location) if raw is not None else ""
        parts.append(f"{dotted}{where}: {item.get('msg', 'invalid value')}")
    return "; ".join(parts)


# =============================================================================
# Layers
# =============================================================================


@_dataclasses.dataclass(frozen=True)
class ConfigLayer:
    """
    A named, read-only source of declarations in the current schema.

    Attributes:
        name: Layer role ("system", "home", "project", "box", "machine:<name>").
        origin: Where the declarations came from (path or label).
        version: Schema version the source was written in.
        data: Current-schema data containing only explicitly set keys.
    """

    name: str
    origin: str
    version: str
    data: _typing.Mapping[str, _typing.Any]

    @property
    def upgraded(self) -> bool:
        """Whether the source was translated from the legacy schema."""
        return self.version != _constants.CURRENT_CONFIG_VERSION

    def as_dict(self) -> dict[str, _typing.Any]:
        """A mutable deep copy of the layer data."""
        return _copy.deepcopy(dict(self.data))


def build_layer(
    name: str,
    raw: RawConfigDocument,
    *,
    strict: bool = False,
    allow_definitions: bool = False,
) -> ConfigLayer:
    """
    Turn a raw document into a ConfigLayer.

    Validates against the declared schema, upgrades legacy documents, then
    validates the result against the current schema.

    Args:
        name: Layer role.
        raw: Parsed source.
        strict: Reject unknown keys instead of warning about them.
        allow_definitions: Whether vm.define is permitted in this layer.

    Raises:
        ConfigInvalid: On any parse, schema or placement problem.
    """
    document = classify(raw)
    data = to_current(document)

    if isinstance(document, LegacyDocument):
        _logger.info("Upgraded legacy config source %s", raw.origin)
        try:
            validated = types.RootConfig.model_validate(data)
        except _pydantic.ValidationError as e:
            raise errors.ConfigInvalid(raw.origin, format_validation_error(e)) from e
    else:
        validated = document.body

    if validated.vm.define and not allow_definitions:
        raise errors.ConfigInvalid(
            raw.origin,
            "machine definitions (vm.define) are only allowed in the project source",
        )

    audit_unknown_keys(validated, raw.origin, strict=strict)
    return ConfigLayer(
        name=name,
        origin=raw.origin,
        version=document.raw.version,
        data=_types.MappingProxyType(data),
    )


def audit_unknown_keys(config: types.ConfigBase, origin: str, *, strict: bool) -> None:
    """
    Report keys the schema does not know.

    Raises:
        ConfigInvalid: In strict mode, if any unknown key is present.
    """
    extras = config.collect_all_extra_fields()
    if not extras:
        return
    keys = ", ".join(sorted(extras))
    if strict:
        raise errors.ConfigInvalid(origin, f"unknown keys: {keys}")
    _logger.warning("Ignoring unknown keys in %s: %s", origin, keys)


def get_system_defaults_path() -> _pathlib.Path:
    """Path to the bundled system defaults."""
    return _pathlib.Path(__file__).parent / "defaults" / "config.yaml"

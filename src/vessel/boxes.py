"""
Box lookup.

Boxes are reusable machine images stored under <home>/boxes. This module
only answers existence and location questions; downloading, adding and
removing boxes is out of scope.

Layout:

    boxes/<name>/<provider>/metadata.json     current format
    boxes/<name>/box.ovf                      legacy format (virtualbox only)

A "/" in a box name is stored as "-VESSELSLASH-" on disk. Either format may
carry its own Vesselfile, which becomes the box config layer.
"""

from __future__ import annotations

import dataclasses as _dataclasses
import json as _json
import logging as _logging
import pathlib as _pathlib
import typing as _typing

import vessel.constants as _constants
import vessel.errors as errors

_logger = _logging.getLogger(__name__)

METADATA_FILENAME = "metadata.json"
LEGACY_MARKER = "box.ovf"
LEGACY_PROVIDER = "virtualbox"
SLASH_ESCAPE = "-VESSELSLASH-"


@_dataclasses.dataclass(frozen=True)
class Box:
    """
    An installed box.

    Attributes:
        name: Box name as written in config.
        provider: Provider the box is built for.
        directory: Directory holding the box files.
        metadata: Parsed metadata.json ({"provider": ...} for legacy boxes).
        legacy: Whether the box uses the legacy single-provider layout.
    """

    name: str
    provider: str
    directory: _pathlib.Path
    metadata: dict[str, _typing.Any] = _dataclasses.field(default_factory=dict)
    legacy: bool = False

    @property
    def config_path(self) -> _pathlib.Path:
        """Path of the config source a box may carry."""
        return self.directory / _constants.DEFAULT_PROJECT_FILENAME

    @property
    def has_config(self) -> bool:
        return self.config_path.is_file()


class BoxCollection:
    """Read-only view of the boxes installed under one directory."""

    def __init__(self, directory: _pathlib.Path) -> None:
        self._directory = _pathlib.Path(directory)

    def directory(self) -> _pathlib.Path:
        """Directory the collection is bound to."""
        return self._directory

    def find(self, name: str, provider: str) -> Box | None:
        """
        Locate an installed box.

        Args:
            name: Box name.
            provider: Provider the box must support.

        Returns:
            The Box, or None if no matching box is installed.

        Raises:
            ConfigInvalid: If the box's metadata.json is malformed.
        """
        box_root = self._directory / _escape(name)
        if not box_root.is_dir():
            return None

        provider_dir = box_root / provider
        if (provider_dir / METADATA_FILENAME).is_file():
            return self._load(name, provider, provider_dir)

        if provider == LEGACY_PROVIDER and (box_root / LEGACY_MARKER).is_file():
            _logger.debug("Found legacy box '%s' at %s", name, box_root)
            return Box(
                name=name,
                provider=LEGACY_PROVIDER,
                directory=box_root,
                metadata={"provider": LEGACY_PROVIDER},
                legacy=True,
            )
        return None

    def require(self, name: str, provider: str, machine: str | None = None) -> Box:
        """
        Locate an installed box or fail.

        Raises:
            BoxNotFound: If no matching box is installed.
        """
        box = self.find(name, provider)
        if box is None:
            raise errors.BoxNotFound(name, provider, machine)
        return box

    def all(self) -> list[Box]:
        """Every installed box, sorted by name then provider."""
        if not self._directory.is_dir():
            return []

        boxes: list[Box] = []
        for box_root in sorted(self._directory.iterdir()):
            if not box_root.is_dir():
                continue
            name = _unescape(box_root.name)
            if (box_root / LEGACY_MARKER).is_file():
                box = self.find(name, LEGACY_PROVIDER)
                if box is not None:
                    boxes.append(box)
                continue
            for provider_dir in sorted(box_root.iterdir()):
                if (provider_dir / METADATA_FILENAME).is_file():
                    boxes.append(self._load(name, provider_dir.name, provider_dir))
        return boxes

    def __iter__(self) -> _typing.Iterator[Box]:
        return iter(self.all())

    def _load(self, name: str, provider: str, directory: _pathlib.Path) -> Box:
        path = directory / METADATA_FILENAME
        try:
            metadata = _json.loads(path.read_text(encoding="utf-8"))
        except _json.JSONDecodeError as e:
            raise errors.ConfigInvalid(path, f"malformed box metadata: {e}") from e
        except OSError as e:
            raise errors.ConfigInvalid(path, f"cannot read box metadata: {e}") from e
        if not isinstance(metadata, dict):
            raise errors.ConfigInvalid(path, "box metadata must be a JSON object")
        return Box(name=name, provider=provider, directory=directory, metadata=metadata)


def _escape(name: str) -> str:
    return name.replace("/", SLASH_ESCAPE)


def _unescape(dirname: str) -> str:
    return dirname.replace(SLASH_ESCAPE, "/")

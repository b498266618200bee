"""Tests for box lookup."""

import pathlib as _pathlib
import typing as _typing

import pytest as _pytest

import vessel.boxes as boxes
import vessel.errors as errors

BoxInstaller = _typing.Callable[..., _pathlib.Path]


@_pytest.fixture
def collection(home_dir: _pathlib.Path) -> boxes.BoxCollection:
    return boxes.BoxCollection(home_dir / "boxes")


class TestFind:
    """BoxCollection.find() and require()."""

    def test_missing_directory(self, collection: boxes.BoxCollection) -> None:
        """A collection whose directory does not exist is empty."""
        assert collection.find("base", "virtualbox") is None
        assert collection.all() == []

    def test_current_format(
        self,
        collection: boxes.BoxCollection,
        home_dir: _pathlib.Path,
        box_installer: BoxInstaller,
    ) -> None:
        """Boxes are found per provider with their metadata."""
        box_installer(home_dir, "base", "virtualbox", metadata={"provider": "virtualbox", "v": 2})

        box = collection.find("base", "virtualbox")

        assert box is not None
        assert box.metadata == {"provider": "virtualbox", "v": 2}
        assert box.legacy is False
        assert box.has_config is False
        assert collection.find("base", "other") is None

    def test_legacy_format_is_virtualbox_only(
        self,
        collection: boxes.BoxCollection,
        home_dir: _pathlib.Path,
        box_installer: BoxInstaller,
    ) -> None:
        """A box.ovf directory is a legacy virtualbox box."""
        box_installer(home_dir, "old", legacy=True)

        box = collection.find("old", "virtualbox")

        assert box is not None
        assert box.legacy is True
        assert box.metadata == {"provider": "virtualbox"}
        assert collection.find("old", "other") is None

    def test_slash_in_name(
        self,
        collection: boxes.BoxCollection,
        home_dir: _pathlib.Path,
        box_installer: BoxInstaller,
    ) -> None:
        """Namespaced names are escaped on disk and unescaped on listing."""
        box_installer(home_dir, "acme/base", "virtualbox")

        assert collection.find("acme/base", "virtualbox") is not None
        assert [b.name for b in collection.all()] == ["acme/base"]

    def test_box_config_source(
        self,
        collection: boxes.BoxCollection,
        home_dir: _pathlib.Path,
        box_installer: BoxInstaller,
    ) -> None:
        """A Vesselfile inside the box directory is its config source."""
        directory = box_installer(home_dir, "base", config_source={"ssh": {"port": 100}})

        box = collection.require("base", "virtualbox")

        assert box.has_config is True
        assert box.config_path == directory / "Vesselfile"

    def test_require_missing(self, collection: boxes.BoxCollection) -> None:
        """require() raises BoxNotFound naming the machine."""
        with _pytest.raises(errors.BoxNotFound) as exc_info:
            collection.require("base", "virtualbox", machine="web")

        assert exc_info.value.box == "base"
        assert exc_info.value.machine == "web"

    def test_malformed_metadata(
        self,
        collection: boxes.BoxCollection,
        home_dir: _pathlib.Path,
        box_installer: BoxInstaller,
    ) -> None:
        """Broken metadata.json is a configuration error."""
        directory = box_installer(home_dir, "base")
        (directory / "metadata.json").write_text("{nope", encoding="utf-8")

        with _pytest.raises(errors.ConfigInvalid, match="malformed box metadata"):
            collection.find("base", "virtualbox")

    def test_metadata_must_be_object(
        self,
        collection: boxes.BoxCollection,
        home_dir: _pathlib.Path,
        box_installer: BoxInstaller,
    ) -> None:
        """metadata.json must hold a JSON object."""
        box_installer(home_dir, "base", metadata=["virtualbox"])  # type: ignore[arg-type]

        with _pytest.raises(errors.ConfigInvalid, match="must be a JSON object"):
            collection.find("base", "virtualbox")


class TestAll:
    """BoxCollection.all()."""

    def test_sorted_listing(
        self,
        collection: boxes.BoxCollection,
        home_dir: _pathlib.Path,
        box_installer: BoxInstaller,
    ) -> None:
        """Boxes are listed by name, then provider."""
        box_installer(home_dir, "zeta", "virtualbox")
        box_installer(home_dir, "alpha", "other")
        box_installer(home_dir, "alpha", "virtualbox")
        box_installer(home_dir, "legacy", legacy=True)
        (home_dir / "boxes" / "stray-file").write_text("", encoding="utf-8")

        listed = [(b.name, b.provider, b.legacy) for b in collection]

        assert listed == [
            ("alpha", "other", False),
            ("alpha", "virtualbox", False),
            ("legacy", "virtualbox", True),
            ("zeta", "virtualbox", False),
        ]

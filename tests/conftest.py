"""
Shared pytest fixtures for Vessel tests.

This file is automatically loaded by pytest. Fixtures defined here are
available to all test files without explicit imports.
"""

from __future__ import annotations

import json as _json
import os as _os
import pathlib as _pathlib
import typing as _typing

import pytest as _pytest
import yaml as _yaml

import vessel.action as action
import vessel.config as config
import vessel.environment as environment
import vessel.providers as providers

# Environment keys that should be cleared for isolated tests
ENV_KEYS_TO_CLEAR = [
    "VESSEL_CWD",
    "VESSEL_HOME",
    "VESSEL_DEFAULT_PROVIDER",
    "VESSEL_STRICT_CONFIG",
    "VESSEL_LOG",
]


@_pytest.fixture(autouse=True)
def _isolate_vessel_env(monkeypatch: _pytest.MonkeyPatch) -> None:
    """Keep the developer's VESSEL_* variables out of every test."""
    for key in ENV_KEYS_TO_CLEAR:
        monkeypatch.delenv(key, raising=False)


# =============================================================================
# Paths and sources
# =============================================================================


@_pytest.fixture
def home_dir(tmp_path: _pathlib.Path) -> _pathlib.Path:
    """Home directory path (not created; Environment sets it up)."""
    return tmp_path / "home"


@_pytest.fixture
def project_dir(tmp_path: _pathlib.Path) -> _pathlib.Path:
    """An empty project directory."""
    path = tmp_path / "project"
    path.mkdir()
    return path


def write_source(
    directory: _pathlib.Path,
    content: dict[str, _typing.Any] | str,
    filename: str = "Vesselfile",
) -> _pathlib.Path:
    """Write a YAML config source (dict is dumped, str written as-is)."""
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    text = content if isinstance(content, str) else _yaml.safe_dump(content, sort_keys=False)
    path.write_text(text, encoding="utf-8")
    return path


@_pytest.fixture
def vesselfile() -> _typing.Callable[..., _pathlib.Path]:
    """
    Factory writing a Vesselfile.

    Usage:
        def test_x(vesselfile, project_dir):
            vesselfile(project_dir, {"ssh": {"port": 2222}})
    """
    return write_source


def install_box(
    home: _pathlib.Path,
    name: str,
    provider: str = "virtualbox",
    *,
    config_source: dict[str, _typing.Any] | str | None = None,
    legacy: bool = False,
    metadata: dict[str, _typing.Any] | None = None,
) -> _pathlib.Path:
    """Create a box on disk the way BoxCollection expects to find it."""
    box_root = home / "boxes" / name.replace("/", "-VESSELSLASH-")
    if legacy:
        directory = box_root
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "box.ovf").write_text("<ovf/>", encoding="utf-8")
    else:
        directory = box_root / provider
        directory.mkdir(parents=True, exist_ok=True)
        payload = metadata if metadata is not None else {"provider": provider}
        (directory / "metadata.json").write_text(_json.dumps(payload), encoding="utf-8")
    if config_source is not None:
        write_source(directory, config_source)
    return directory


@_pytest.fixture
def box_installer() -> _typing.Callable[..., _pathlib.Path]:
    """Factory creating installed boxes (see install_box)."""
    return install_box


# =============================================================================
# Providers
# =============================================================================


class FakeProvider(providers.Provider):
    """
    Provider double that records the actions it is asked for.

    Supports "up" (sets an id and records it) and "halt"; everything else
    is unsupported.
    """

    parallel = True

    def __init__(self, machine: _typing.Any) -> None:
        super().__init__(machine)
        self.calls: list[str] = []
        self.ssh = {"host": "127.0.0.1", "port": 2222, "username": "provider-user"}

    def action(self, name: str) -> action.Builder | None:
        if name == "up":
            return action.Builder().use(self._boot)
        if name == "halt":
            return action.Builder().use(self._record("halt"))
        return None

    def _boot(self, context: action.ActionContext, proceed: action.Proceed) -> _typing.Any:
        self.calls.append("up")
        context["machine"].id = "fake-id"
        return proceed()

    def _record(self, name: str) -> _typing.Callable[..., _typing.Any]:
        def stage(context: action.ActionContext, proceed: action.Proceed) -> _typing.Any:  # noqa: ARG001
            self.calls.append(name)
            return proceed()

        return stage

    def state(self) -> providers.MachineState:
        if self.machine.id is None:
            return providers.MachineState.not_created()
        return providers.MachineState("running", "running")

    def ssh_info(self) -> dict[str, _typing.Any] | None:
        return dict(self.ssh) if self.machine.id is not None else None


class OtherFakeProvider(FakeProvider):
    """Second provider so tests can resolve one machine two ways."""


@_pytest.fixture
def fake_provider() -> type[FakeProvider]:
    """The FakeProvider class."""
    return FakeProvider


@_pytest.fixture
def provider_registry() -> providers.ProviderRegistry:
    """Registry with 'virtualbox' and 'other' fake providers."""
    return providers.ProviderRegistry(
        {"virtualbox": FakeProvider, "other": OtherFakeProvider},
    )


# =============================================================================
# Environments
# =============================================================================


@_pytest.fixture
def make_env(
    project_dir: _pathlib.Path,
    home_dir: _pathlib.Path,
    provider_registry: providers.ProviderRegistry,
) -> _typing.Callable[..., environment.Environment]:
    """
    Factory building an Environment isolated under tmp_path.

    Keyword arguments override the defaults (cwd=project_dir,
    home_path=home_dir, the fake provider registry).
    """

    def _make(**kwargs: _typing.Any) -> environment.Environment:
        kwargs.setdefault("cwd", project_dir)
        kwargs.setdefault("home_path", home_dir)
        kwargs.setdefault("provider_registry", provider_registry)
        kwargs.setdefault("settings", config.EnvironmentSettings())
        return environment.Environment(**kwargs)

    return _make


@_pytest.fixture
def clean_environ() -> dict[str, str]:
    """Process environment without VESSEL_* variables (for CliRunner)."""
    return {k: v for k, v in _os.environ.items() if not k.startswith("VESSEL_")}

"""Tests for ProviderRegistry."""

import logging as _logging
import typing as _typing
import unittest.mock as _mock

import pytest as _pytest

import vessel.errors as errors
import vessel.providers as providers


class _Concrete(providers.Provider):
    def action(self, name: str) -> _typing.Any:
        return None


class _Abstract(providers.Provider):
    """Forgets to implement action()."""


class TestRegistration:
    """register() and conformance checks."""

    def test_register_and_lookup(self) -> None:
        """A registered class is returned by lookup()."""
        registry = providers.ProviderRegistry()

        registry.register("fake", _Concrete)

        assert registry.lookup("fake") is _Concrete
        assert "fake" in registry
        assert len(registry) == 1

    def test_initial_mapping(self) -> None:
        """Providers passed to the constructor are registered."""
        registry = providers.ProviderRegistry({"b": _Concrete, "a": _Concrete})

        assert registry.names() == ["a", "b"]

    def test_duplicate_name_rejected(self) -> None:
        """Registering a taken name fails unless replace=True."""
        registry = providers.ProviderRegistry({"fake": _Concrete})

        class _Other(_Concrete):
            pass

        with _pytest.raises(errors.ProviderInvalid, match="already registered"):
            registry.register("fake", _Other)

        registry.register("fake", _Other, replace=True)
        assert registry.lookup("fake") is _Other

    def test_abstract_class_rejected(self) -> None:
        """Classes missing required operations fail at registration."""
        registry = providers.ProviderRegistry()

        with _pytest.raises(errors.ProviderInvalid, match="abstract methods not implemented: action"):
            registry.register("broken", _Abstract)

        assert "broken" not in registry

    @_pytest.mark.parametrize("factory", [object, "virtualbox", _Concrete(_mock.MagicMock())])
    def test_non_provider_rejected(self, factory: _typing.Any) -> None:
        """Only Provider subclasses can be registered."""
        with _pytest.raises(errors.ProviderInvalid, match="not a Provider subclass"):
            providers.ProviderRegistry().register("x", factory)

    @_pytest.mark.parametrize("name", ["", "  ", None])
    def test_invalid_name_rejected(self, name: _typing.Any) -> None:
        """Names must be non-empty strings."""
        with _pytest.raises(errors.ProviderInvalid):
            providers.ProviderRegistry().register(name, _Concrete)

    def test_unregister(self) -> None:
        """unregister() reports whether anything was removed."""
        registry = providers.ProviderRegistry({"fake": _Concrete})

        assert registry.unregister("fake") is True
        assert registry.unregister("fake") is False
        assert registry.get("fake") is None


class TestLookup:
    """lookup() failures."""

    def test_unknown_provider(self) -> None:
        """Unknown names raise ProviderNotFound listing what is available."""
        registry = providers.ProviderRegistry({"virtualbox": _Concrete})

        with _pytest.raises(errors.ProviderNotFound) as exc_info:
            registry.lookup("libvirt")

        assert exc_info.value.provider == "libvirt"
        assert exc_info.value.available == ["virtualbox"]
        assert isinstance(exc_info.value, LookupError)


class TestEntryPoints:
    """load_entry_points()."""

    @staticmethod
    def _entry_point(name: str, loaded: _typing.Any = None, error: Exception | None = None) -> _mock.MagicMock:
        entry_point = _mock.MagicMock()
        entry_point.name = name
        entry_point.value = f"pkg:{name}"
        if error is not None:
            entry_point.load.side_effect = error
        else:
            entry_point.load.return_value = loaded
        return entry_point

    def test_loads_conforming_providers(self) -> None:
        """Entry points resolving to Provider classes are registered."""
        registry = providers.ProviderRegistry()
        entry_points = [self._entry_point("libvirt", _Concrete)]

        with _mock.patch("importlib.metadata.entry_points", return_value=entry_points) as ep:
            loaded = registry.load_entry_points()

        ep.assert_called_once_with(group="vessel.providers")
        assert loaded == ["libvirt"]
        assert registry.lookup("libvirt") is _Concrete

    def test_explicit_registration_wins(self) -> None:
        """An already registered name is not overwritten or loaded."""

        class _Explicit(_Concrete):
            pass

        registry = providers.ProviderRegistry({"libvirt": _Explicit})
        entry_point = self._entry_point("libvirt", _Concrete)

        with _mock.patch("importlib.metadata.entry_points", return_value=[entry_point]):
            loaded = registry.load_entry_points()

        assert loaded == []
        entry_point.load.assert_not_called()
        assert registry.lookup("libvirt") is _Explicit

    def test_broken_entry_points_are_skipped(self, caplog: _pytest.LogCaptureFixture) -> None:
        """Import failures and non-conforming plugins are logged, not raised."""
        registry = providers.ProviderRegistry()
        entry_points = [
            self._entry_point("crashes", error=ImportError("no module")),
            self._entry_point("abstract", _Abstract),
            self._entry_point("good", _Concrete),
        ]

        with (
            _mock.patch("importlib.metadata.entry_points", return_value=entry_points),
            caplog.at_level(_logging.WARNING, logger="vessel.providers.registry"),
        ):
            loaded = registry.load_entry_points()

        assert loaded == ["good"]
        assert "crashes" in caplog.text
        assert "abstract" in caplog.text

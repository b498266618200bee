"""
Provider registry.

Maps provider names to Provider classes. A registry is an explicit object
injected into the Environment; there is no process-wide global. Installed
plugins can contribute providers through the "vessel.providers" entry point
group:

    [project.entry-points."vessel.providers"]
    libvirt = "vessel_libvirt:LibvirtProvider"
"""

from __future__ import annotations

import importlib.metadata as _metadata
import inspect as _inspect
import logging as _logging
import threading as _threading
import typing as _typing

import vessel.constants as _constants
import vessel.errors as errors
import vessel.providers.base as base

_logger = _logging.getLogger(__name__)

ProviderFactory = type[base.Provider]


class ProviderRegistry:
    """
    Thread-safe name -> Provider class registry.

    Conformance (a concrete Provider subclass) is checked once, when a
    factory is registered; lookups never re-check.
    """

    def __init__(self, providers: _typing.Mapping[str, ProviderFactory] | None = None) -> None:
        """
        Args:
            providers: Initial name -> factory entries to register.
        """
        self._factories: dict[str, ProviderFactory] = {}
        self._lock = _threading.RLock()
        for name, factory in (providers or {}).items():
            self.register(name, factory)

    def register(
        self,
        name: str,
        factory: ProviderFactory,
        *,
        replace: bool = False,
    ) -> None:
        """
        Register a provider class under a name.

        Args:
            name: Provider name used in config and machine() lookups.
            factory: A concrete Provider subclass.
            replace: Allow overwriting an existing registration.

        Raises:
            ProviderInvalid: If the factory does not conform or the name is taken.
        """
        if not isinstance(name, str) or not name.strip():
            raise errors.ProviderInvalid(str(name), "provider names must be non-empty strings")
        if not isinstance(factory, type) or not issubclass(factory, base.Provider):
            raise errors.ProviderInvalid(name, f"{factory!r} is not a Provider subclass")
        if _inspect.isabstract(factory):
            missing = ", ".join(sorted(factory.__abstractmethods__))
            raise errors.ProviderInvalid(name, f"abstract methods not implemented: {missing}")

        with self._lock:
            if name in self._factories and not replace:
                raise errors.ProviderInvalid(name, "a provider with this name is already registered")
            self._factories[name] = factory
        _logger.debug("Registered provider: %s -> %s", name, factory.__qualname__)

    def unregister(self, name: str) -> bool:
        """
        Remove a registration.

        Returns:
            True if the provider was registered.
        """
        with self._lock:
            return self._factories.pop(name, None) is not None

    def lookup(self, name: str) -> ProviderFactory:
        """
        Get the provider class registered under a name.

        Raises:
            ProviderNotFound: If no provider has this name.
        """
        with self._lock:
            factory = self._factories.get(name)
            if factory is None:
                raise errors.ProviderNotFound(name, sorted(self._factories))
            return factory

    def get(self, name: str) -> ProviderFactory | None:
        """Get the provider class for a name, or None."""
        with self._lock:
            return self._factories.get(name)

    def names(self) -> list[str]:
        """Registered provider names, sorted."""
        with self._lock:
            return sorted(self._factories)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._factories

    def __len__(self) -> int:
        with self._lock:
            return len(self._factories)

    def load_entry_points(
        self,
        group: str = _constants.PROVIDER_ENTRY_POINT_GROUP,
    ) -> list[str]:
        """
        Register providers advertised by installed packages.

        Entry points whose name is already registered are skipped, so
        explicit registrations win. An entry point that fails to import or
        does not conform is logged and skipped.

        Returns:
            Names of the providers registered by this call.
        """
        loaded: list[str] = []
        for entry_point in _metadata.entry_points(group=group):
            if entry_point.name in self:
                _logger.debug(
                    "Skipping entry point provider '%s' - already registered",
                    entry_point.name,
                )
                continue
            try:
                factory = entry_point.load()
            except Exception as e:
                _logger.warning(
                    "Failed to import provider '%s' from %s: %s",
                    entry_point.name,
                    entry_point.value,
                    e,
                )
                continue
            try:
                self.register(entry_point.name, factory)
            except errors.ProviderInvalid as e:
                _logger.warning("%s", e)
                continue
            loaded.append(entry_point.name)
        return loaded

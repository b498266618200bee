"""
Configuration loader and merged configuration.

The loader reads the ordered config sources, upgrades legacy documents,
discovers machine definitions in the project source and hands back a
MergedConfig. MergedConfig deep-merges layers on demand:

    system < home < project < box < machine

Dicts merge key-wise, lists replace wholesale, later layers win on scalar
conflicts. The merge itself is done by DeepChainMap; Pydantic validates the
merged result (fail-fast on errors).
"""

from __future__ import annotations

import dataclasses as _dataclasses
import logging as _logging
import pathlib as _pathlib
import threading as _threading
import typing as _typing

import pydantic as _pydantic

import vessel.config.sources as sources
import vessel.config.types as types
import vessel.constants as _constants
import vessel.errors as errors
import vessel.utils as utils

_logger = _logging.getLogger(__name__)


@_dataclasses.dataclass(frozen=True)
class MachineDefinition:
    """
    A machine declared in the project source.

    Attributes:
        name: Unique machine name.
        provider: Preferred provider, or None to use the environment default.
        primary: Whether this machine is the default command target.
        autostart: Whether batch "up" style commands include it by default.
        layer: The per-machine override layer, or None if it has no overrides.
    """

    name: str
    provider: str | None = None
    primary: bool = False
    autostart: bool = True
    layer: sources.ConfigLayer | None = None


class MergedConfig:
    """
    The result of folding config layers.

    Holds the global configuration plus everything needed to compute the
    configuration of any defined machine. Immutable after construction;
    per-machine results are memoized.
    """

    def __init__(
        self,
        layers: _typing.Sequence[sources.ConfigLayer],
        definitions: _typing.Sequence[MachineDefinition],
    ) -> None:
        """
        Args:
            layers: Shared layers, lowest precedence first (system, home, project).
            definitions: Machine definitions in declaration order.
        """
        self._layers = tuple(layers)
        self._definitions = tuple(definitions)
        self._by_name = {d.name: d for d in self._definitions}
        self._machine_cache: dict[tuple[str, str | None], types.MachineConfig] = {}
        self._lock = _threading.Lock()
        self._global = _validate(
            types.GlobalConfig,
            utils.deep_merge(*(layer.as_dict() for layer in self._layers)),
            "merged global configuration",
        )

    @property
    def global_config(self) -> types.GlobalConfig:
        """Configuration shared by all machines."""
        return self._global

    @property
    def layers(self) -> tuple[sources.ConfigLayer, ...]:
        """Shared layers, lowest precedence first."""
        return self._layers

    @property
    def definitions(self) -> tuple[MachineDefinition, ...]:
        """Machine definitions in declaration order."""
        return self._definitions

    @property
    def machine_names(self) -> list[str]:
        """Machine names in declaration order."""
        return [d.name for d in self._definitions]

    def definition(self, name: str) -> MachineDefinition:
        """
        Look up a machine definition.

        Raises:
            MachineNotFound: If no machine has this name.
        """
        try:
            return self._by_name[name]
        except KeyError:
            raise errors.MachineNotFound(name, self.machine_names) from None

    @property
    def primary_machine_name(self) -> str | None:
        """
        The primary machine's name, or None when it is undefined.

        Undefined means several machines are declared and none is flagged.
        """
        flagged = [d.name for d in self._definitions if d.primary]
        if flagged:
            return flagged[0]
        if len(self._definitions) == 1:
            return self._definitions[0].name
        return None

    def require_primary(self) -> str:
        """
        The primary machine's name.

        Raises:
            AmbiguousPrimaryMachine: If several machines exist and none is flagged.
        """
        name = self.primary_machine_name
        if name is None:
            raise errors.AmbiguousPrimaryMachine(self.machine_names)
        return name

    def machine_layers(
        self,
        name: str,
        box_layer: sources.ConfigLayer | None = None,
    ) -> list[sources.ConfigLayer]:
        """All layers that apply to a machine, lowest precedence first."""
        definition = self.definition(name)
        layers = list(self._layers)
        if box_layer is not None:
            layers.append(box_layer)
        if definition.layer is not None:
            layers.append(definition.layer)
        return layers

    def for_machine(
        self,
        name: str,
        box_layer: sources.ConfigLayer | None = None,
    ) -> types.MachineConfig:
        """
        Compute the configuration of one machine.

        Args:
            name: Machine name.
            box_layer: Layer loaded from the machine's box, if any.

        Raises:
            MachineNotFound: If the machine is not defined.
            ConfigInvalid: If the merged result fails validation.
        """
        key = (name, box_layer.origin if box_layer is not None else None)
        with self._lock:
            cached = self._machine_cache.get(key)
            if cached is not None:
                return cached

            merged = self._chain(name, box_layer).to_dict()
            merged.setdefault("vm", {})["name"] = name
            config = _validate(
                types.MachineConfig,
                merged,
                f"merged configuration for machine '{name}'",
            )
            self._machine_cache[key] = config
            return config

    def provenance(
        self,
        name: str | None = None,
        box_layer: sources.ConfigLayer | None = None,
    ) -> dict[str, str]:
        """
        Which layer supplied each setting.

        Returns:
            Flat dict of dotted key path -> layer name, e.g.
            {"ssh.port": "machine:web", "ssh.username": "system"}.
        """
        if name is None:
            layers = list(self._layers)
            chain = utils.DeepChainMap.from_ascending(*(layer.as_dict() for layer in layers))
        else:
            layers = self.machine_layers(name, box_layer)
            chain = self._chain(name, box_layer)
        # DeepChainMap indexes layers highest priority first
        names = [layer.name for layer in reversed(layers)]
        result: dict[str, str] = {}
        _flatten_provenance(chain.provenance(), names, (), result)
        result.pop("version", None)
        return result

    def _chain(
        self,
        name: str,
        box_layer: sources.ConfigLayer | None,
    ) -> utils.DeepChainMap:
        layers = self.machine_layers(name, box_layer)
        return utils.DeepChainMap.from_ascending(*(layer.as_dict() for layer in layers))


class ConfigLoader:
    """
    Loads layered configuration sources into a MergedConfig.

    Sources are optional except for the bundled system defaults; a missing
    home or project source simply contributes no layer.
    """

    def __init__(
        self,
        *,
        project_path: _pathlib.Path | None = None,
        home_path: _pathlib.Path | None = None,
        system_path: _pathlib.Path | None = None,
        reader: sources.ConfigSourceReader | None = None,
        strict: bool = False,
    ) -> None:
        """
        Initialize the loader.

        Args:
            project_path: Path of the project source, if one exists.
            home_path: Path of the home-directory source, if any.
            system_path: Override for the system defaults (for testing).
            reader: Source reader; shared so parsed files are memoized.
            strict: Reject unknown keys instead of warning about them.
        """
        self._project_path = project_path
        self._home_path = home_path
        self._system_path = system_path or sources.get_system_defaults_path()
        self._reader = reader or sources.ConfigSourceReader()
        self._strict = strict

    @property
    def strict(self) -> bool:
        return self._strict

    def load(self) -> MergedConfig:
        """
        Read every source and build the merged configuration.

        Raises:
            ConfigInvalid: If a source fails to parse or validate.
            DuplicateMachine: If two definitions share a name.
            MultiplePrimaryMachines: If more than one definition is primary.
        """
        layers = [self._read_layer("system", self._system_path, required=True)]

        if self._home_path is not None and self._home_path.is_file():
            layers.append(self._read_layer("home", self._home_path))

        definitions: list[MachineDefinition] = []
        if self._project_path is not None and self._project_path.is_file():
            project = self._read_layer("project", self._project_path, allow_definitions=True)
            definitions = self._discover_machines(project)
            layers.append(_without_definitions(project))

        if not definitions:
            definitions = [MachineDefinition(name=_constants.DEFAULT_MACHINE_NAME)]

        _logger.debug(
            "Loaded %d config layers, machines: %s",
            len(layers),
            ", ".join(d.name for d in definitions),
        )
        return MergedConfig(layers, definitions)

    def load_box_layer(self, path: _pathlib.Path) -> sources.ConfigLayer:
        """
        Read the config source shipped inside a box.

        Raises:
            ConfigInvalid: If the source fails to parse or validate.
        """
        return self._read_layer("box", path)

    def _read_layer(
        self,
        name: str,
        path: _pathlib.Path,
        *,
        required: bool = False,
        allow_definitions: bool = False,
    ) -> sources.ConfigLayer:
        try:
            raw = self._reader.read(path)
        except FileNotFoundError as e:
            if required:
                raise errors.ConfigInvalid(
                    path, "source not found (possible installation problem)"
                ) from e
            raise errors.ConfigInvalid(path, "source not found") from e
        except OSError as e:
            raise errors.ConfigInvalid(path, f"cannot read file: {e}") from e
        return sources.build_layer(
            name,
            raw,
            strict=self._strict,
            allow_definitions=allow_definitions,
        )

    def _discover_machines(self, project: sources.ConfigLayer) -> list[MachineDefinition]:
        """Collect machine definitions from the project layer, in file order."""
        vm = project.data.get("vm") or {}
        entries = _validate_definitions(vm.get("define") or [], project.origin)

        definitions: list[MachineDefinition] = []
        seen: set[str] = set()
        for entry in entries:
            if entry.name in seen:
                raise errors.DuplicateMachine(entry.name, project.origin)
            seen.add(entry.name)

            layer = None
            if entry.config:
                fragment = sources.RawConfigDocument(
                    origin=f"{project.origin} (machine '{entry.name}')",
                    data=entry.config,
                )
                layer = sources.build_layer(
                    f"machine:{entry.name}",
                    fragment,
                    strict=self._strict,
                )
            definitions.append(
                MachineDefinition(
                    name=entry.name,
                    provider=entry.provider,
                    primary=entry.primary,
                    autostart=entry.autostart,
                    layer=layer,
                )
            )

        primaries = [d.name for d in definitions if d.primary]
        if len(primaries) > 1:
            raise errors.MultiplePrimaryMachines(primaries)
        return definitions


def _validate_definitions(
    entries: list[_typing.Any],
    origin: str,
) -> list[types.MachineDefinitionConfig]:
    try:
        return [types.MachineDefinitionConfig.model_validate(entry) for entry in entries]
    except _pydantic.ValidationError as e:
        raise errors.ConfigInvalid(origin, sources.format_validation_error(e)) from e


def _without_definitions(layer: sources.ConfigLayer) -> sources.ConfigLayer:
    """Copy of a layer with vm.define removed (definitions are not inherited)."""
    data = layer.as_dict()
    vm = data.get("vm")
    if isinstance(vm, dict):
        vm.pop("define", None)
    return _dataclasses.replace(layer, data=data)


_ModelT = _typing.TypeVar("_ModelT", bound=types.RootConfig)


def _validate(model: type[_ModelT], data: dict[str, _typing.Any], source: str) -> _ModelT:
    try:
        return model.model_validate(data)
    except _pydantic.ValidationError as e:
        raise errors.ConfigInvalid(source, sources.format_validation_error(e)) from e


def _flatten_provenance(
    provenance: dict[str, _typing.Any],
    names: list[str],
    prefix: tuple[str, ...],
    out: dict[str, str],
) -> None:
    for key, value in provenance.items():
        path = prefix if key == "." else prefix + (key,)
        if isinstance(value, dict):
            _flatten_provenance(value, names, path, out)
        else:
            out[".".join(path)] = names[value]

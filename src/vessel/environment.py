"""
Environment: the top-level orchestrator.

An Environment represents one logical invocation against one project. It
owns the paths (cwd, home, local data), lazily loads the layered
configuration exactly once, resolves and caches machines by
(name, provider), and hands out the action runner.

Option precedence for every path and setting is:

    explicit constructor option > VESSEL_* environment variable > default
"""

from __future__ import annotations

import contextlib as _contextlib
import logging as _logging
import os as _os
import pathlib as _pathlib
import threading as _threading
import typing as _typing

import vessel.action as action_module
import vessel.boxes as boxes
import vessel.config as config
import vessel.constants as _constants
import vessel.errors as errors
import vessel.machine as machine_module
import vessel.providers as providers
import vessel.ui as ui

_logger = _logging.getLogger(__name__)

MachineKey = tuple[str, str]


def get_bundled_private_key_path() -> _pathlib.Path:
    """Path to the default private key shipped with the package."""
    return _pathlib.Path(__file__).parent / "keys" / _constants.PRIVATE_KEY_FILENAME


class Environment:
    """
    One project environment.

    Paths are fixed at construction, except that the default local data
    directory follows the loaded configuration. Configuration is loaded on
    first use and then held for the lifetime of the instance; `unload()` is
    the only way to drop it.

    Example:
        env = Environment(cwd="~/src/project", provider_registry=registry)
        for name in env.machine_names():
            print(name, env.machine(name).state.id)
    """

    DEFAULT_HOME: _typing.ClassVar[_pathlib.Path] = _pathlib.Path(
        _constants.DEFAULT_HOME
    ).expanduser()
    """Home directory used when neither home_path nor VESSEL_HOME is given."""

    def __init__(
        self,
        *,
        cwd: str | _os.PathLike[str] | None = None,
        home_path: str | _os.PathLike[str] | None = None,
        ui_class: type[ui.Interface] | None = None,
        vagrantfile_name: str | _typing.Sequence[str] | None = None,
        project_filename: str | _typing.Sequence[str] | None = None,
        provider_registry: providers.ProviderRegistry | None = None,
        local_data_path: str | _os.PathLike[str] | None = None,
        default_provider: str | None = None,
        strict: bool | None = None,
        settings: config.EnvironmentSettings | None = None,
    ) -> None:
        """
        Build an environment.

        Args:
            cwd: Working directory (default: VESSEL_CWD, then the process cwd).
            home_path: Home directory (default: VESSEL_HOME, then DEFAULT_HOME).
            ui_class: UI sink class, instantiated without arguments
                (default: ui.Silent).
            vagrantfile_name: Project source filename(s) to look for.
            project_filename: Alias of vagrantfile_name.
            provider_registry: Provider registry. When omitted, an empty
                registry is created and filled from installed entry points.
            local_data_path: Per-project data directory
                (default: <root_path or cwd>/<vessel.dotfile_name>).
            default_provider: Provider for machine() calls that name none
                (default: VESSEL_DEFAULT_PROVIDER, then "virtualbox").
            strict: Reject unknown config keys (default: VESSEL_STRICT_CONFIG).
            settings: Pre-loaded environment-variable settings (for testing).

        Raises:
            EnvironmentNonExistentCWD: If the working directory does not exist.
            HomeDirectoryNotAccessible: If the home directory cannot be set up.
        """
        self._settings = settings or config.EnvironmentSettings()

        self.cwd = self._resolve_cwd(cwd)

        names = vagrantfile_name if vagrantfile_name is not None else project_filename
        if names is None:
            names = _constants.DEFAULT_PROJECT_FILENAME
        self.project_filenames: tuple[str, ...] = (
            (names,) if isinstance(names, str) else tuple(names)
        )

        self.ui: ui.Interface = (ui_class or ui.Silent)()

        self.home_path = self._resolve_home(home_path)
        self.setup_home_path()

        self.root_path = self._find_root_path()
        self._local_data_path = (
            _pathlib.Path(local_data_path).expanduser().resolve()
            if local_data_path is not None
            else None
        )

        self._default_provider = default_provider or self._settings.default_provider
        self._strict = self._settings.strict_config if strict is None else strict

        if provider_registry is None:
            provider_registry = providers.ProviderRegistry()
            provider_registry.load_entry_points()
        self._providers = provider_registry

        self._config_lock = _threading.Lock()
        self._config: config.MergedConfig | None = None
        self._loader: config.ConfigLoader | None = None

        self._machines_lock = _threading.Lock()
        self._machines: dict[MachineKey, machine_module.Machine] = {}
        self._machine_locks: dict[MachineKey, _threading.Lock] = {}

        self._runner_lock = _threading.Lock()
        self._runner: action_module.Runner | None = None
        self._boxes: boxes.BoxCollection | None = None

        _logger.debug(
            "Environment: cwd=%s home=%s root=%s",
            self.cwd,
            self.home_path,
            self.root_path,
        )

    def __repr__(self) -> str:
        return f"<Environment cwd={str(self.cwd)!r}>"

    # =========================================================================
    # Paths
    # =========================================================================

    def _resolve_cwd(self, cwd: str | _os.PathLike[str] | None) -> _pathlib.Path:
        if cwd is None:
            cwd = self._settings.cwd
        path = _pathlib.Path.cwd() if cwd is None else _pathlib.Path(cwd).expanduser()
        if not path.is_dir():
            raise errors.EnvironmentNonExistentCWD(path)
        return path.resolve()

    def _resolve_home(self, home_path: str | _os.PathLike[str] | None) -> _pathlib.Path:
        if home_path is None:
            home_path = self._settings.home
        path = self.DEFAULT_HOME if home_path is None else _pathlib.Path(home_path)
        return path.expanduser().resolve()

    def _find_root_path(self) -> _pathlib.Path | None:
        """Walk up from cwd to the first directory holding a project source."""
        for directory in (self.cwd, *self.cwd.parents):
            for name in self.project_filenames:
                if (directory / name).is_file():
                    return directory
        return None

    def setup_home_path(self) -> None:
        """
        Create the home directory layout if needed.

        Idempotent: existing directories, the setup_version marker and the
        content of an existing private key are left untouched. The key is
        always brought to mode 0600.

        Raises:
            HomeDirectoryNotAccessible: On any filesystem error.
        """
        try:
            self.home_path.mkdir(parents=True, exist_ok=True)
            for name in _constants.HOME_SUBDIRECTORIES:
                (self.home_path / name).mkdir(exist_ok=True)

            version_file = self.home_path / "setup_version"
            if not version_file.exists():
                version_file.write_text(_constants.HOME_SETUP_VERSION, encoding="utf-8")

            key_path = self.default_private_key_path
            if not key_path.exists():
                _logger.info("Copying default private key to %s", key_path)
                fd = _os.open(key_path, _os.O_WRONLY | _os.O_CREAT | _os.O_EXCL, 0o600)
                with _os.fdopen(fd, "wb") as target:
                    target.write(get_bundled_private_key_path().read_bytes())
            # Keys from older setups may be readable by others
            if key_path.stat().st_mode & 0o777 != 0o600:
                _logger.debug("Restricting permissions of %s to 0600", key_path)
                key_path.chmod(0o600)
        except OSError as e:
            raise errors.HomeDirectoryNotAccessible(self.home_path, str(e)) from e

    @property
    def boxes_path(self) -> _pathlib.Path:
        return self.home_path / "boxes"

    @property
    def data_path(self) -> _pathlib.Path:
        return self.home_path / "data"

    @property
    def tmp_path(self) -> _pathlib.Path:
        return self.home_path / "tmp"

    @property
    def default_private_key_path(self) -> _pathlib.Path:
        return self.home_path / _constants.PRIVATE_KEY_FILENAME

    @property
    def local_data_path(self) -> _pathlib.Path:
        """
        Per-project state directory.

        Named by the `vessel.dotfile_name` setting unless an explicit path
        was given, so reading it loads the configuration.
        """
        if self._local_data_path is not None:
            return self._local_data_path
        dotfile_name = self.config.global_config.vessel.dotfile_name
        return (self.root_path or self.cwd) / dotfile_name

    @property
    def project_path(self) -> _pathlib.Path | None:
        """Path of the project source, or None when there is no project."""
        if self.root_path is None:
            return None
        for name in self.project_filenames:
            candidate = self.root_path / name
            if candidate.is_file():
                return candidate
        return None

    # =========================================================================
    # Collaborators
    # =========================================================================

    @property
    def providers(self) -> providers.ProviderRegistry:
        """The provider registry this environment resolves against."""
        return self._providers

    @property
    def default_provider(self) -> str:
        return self._default_provider

    def boxes(self) -> boxes.BoxCollection:
        """The boxes installed under the home directory."""
        if self._boxes is None:
            self._boxes = boxes.BoxCollection(self.boxes_path)
        return self._boxes

    def action_runner(self) -> action_module.Runner:
        """
        The action runner for this environment.

        Every run is seeded with `ui` and `env` (this environment).
        """
        with self._runner_lock:
            if self._runner is None:
                self._runner = action_module.Runner(
                    defaults=lambda: {"ui": self.ui, "env": self},
                )
            return self._runner

    # =========================================================================
    # Configuration
    # =========================================================================

    @property
    def config(self) -> config.MergedConfig:
        """Merged configuration, loaded on first access."""
        with self._config_lock:
            if self._config is None:
                self._config = self._config_loader().load()
            return self._config

    def _config_loader(self) -> config.ConfigLoader:
        if self._loader is None:
            self._loader = config.ConfigLoader(
                project_path=self.project_path,
                home_path=self._home_source_path(),
                reader=config.ConfigSourceReader(),
                strict=self._strict,
            )
        return self._loader

    def _home_source_path(self) -> _pathlib.Path | None:
        for name in self.project_filenames:
            candidate = self.home_path / name
            if candidate.is_file():
                return candidate
        return None

    def unload(self) -> None:
        """Drop the loaded configuration and every cached machine."""
        with self._config_lock:
            self._config = None
            self._loader = None
        with self._machines_lock:
            self._machines.clear()
            self._machine_locks.clear()

    # =========================================================================
    # Machines
    # =========================================================================

    def machine_names(self) -> list[str]:
        """Defined machine names, in declaration order."""
        return self.config.machine_names

    @property
    def primary_machine_name(self) -> str | None:
        """Name of the primary machine, or None when it is ambiguous."""
        return self.config.primary_machine_name

    def primary_machine(self, provider: str | None = None) -> machine_module.Machine | None:
        """
        The primary machine.

        Returns None when several machines are defined and none is flagged
        primary. Use `config.require_primary()` to get an error instead.
        """
        name = self.primary_machine_name
        if name is None:
            return None
        return self.machine(name, provider)

    primary_vm = primary_machine

    def machine(self, name: str, provider: str | None = None) -> machine_module.Machine:
        """
        Resolve a machine, building it on first use.

        Repeated calls with the same (name, provider) return the same
        instance. Concurrent first calls for one key build it once.

        Args:
            name: Machine name.
            provider: Provider name. Defaults to the machine definition's
                provider, then the environment's default provider.

        Raises:
            MachineNotFound: If the machine is not defined.
            ProviderNotFound: If the provider is not registered.
            BoxNotFound: If the machine's configured box is not installed.
            ConfigInvalid: If the machine's merged configuration is invalid.
        """
        definition = self.config.definition(name)
        provider_name = provider or definition.provider or self.default_provider
        provider_cls = self._providers.lookup(provider_name)

        key = (name, provider_name)
        with self._machines_lock:
            cached = self._machines.get(key)
            if cached is not None:
                return cached
            key_lock = self._machine_locks.setdefault(key, _threading.Lock())

        with key_lock:
            with self._machines_lock:
                cached = self._machines.get(key)
            if cached is not None:
                return cached

            built = self._build_machine(name, provider_name, provider_cls)
            with self._machines_lock:
                self._machines[key] = built
            return built

    def _build_machine(
        self,
        name: str,
        provider_name: str,
        provider_cls: providers.ProviderFactory,
    ) -> machine_module.Machine:
        merged = self.config
        machine_config = merged.for_machine(name)

        box = None
        box_name = machine_config.vm.box
        if box_name:
            box = self.boxes().require(box_name, provider_name, machine=name)
            box_layer = self._box_layer(box)
            if box_layer is not None:
                machine_config = merged.for_machine(name, box_layer)

        _logger.debug("Building machine '%s' (%s)", name, provider_name)
        return machine_module.Machine(
            name=name,
            provider_name=provider_name,
            provider_cls=provider_cls,
            config=machine_config,
            data_dir=self.local_data_path / "machines" / name / provider_name,
            env=self,
            box=box,
        )

    def _box_layer(self, box: boxes.Box | None) -> config.ConfigLayer | None:
        if box is None or not box.has_config:
            return None
        return self._config_loader().load_box_layer(box.config_path)

    def config_provenance(
        self,
        name: str | None = None,
        provider: str | None = None,
    ) -> dict[str, str]:
        """
        Which layer supplied each setting.

        Args:
            name: Machine to report on, or None for the global configuration.
            provider: Provider used to resolve the machine (and so its box).

        Returns:
            Flat dict of dotted key path -> layer name.
        """
        if name is None:
            return self.config.provenance()
        resolved = self.machine(name, provider)
        return self.config.provenance(name, self._box_layer(resolved.box))

    def active_machines(self) -> list[MachineKey]:
        """
        (name, provider) pairs that have a persisted id.

        Ordered by machine declaration, then provider name.
        """
        machines_dir = self.local_data_path / "machines"
        active: list[MachineKey] = []
        for name in self.machine_names():
            machine_dir = machines_dir / name
            if not machine_dir.is_dir():
                continue
            for provider_dir in sorted(machine_dir.iterdir()):
                id_file = provider_dir / machine_module.ID_FILENAME
                if id_file.is_file() and id_file.read_text(encoding="utf-8").strip():
                    active.append((name, provider_dir.name))
        return active

    @_contextlib.contextmanager
    def batch(
        self,
        parallel: bool = True,
        max_workers: int | None = None,
    ) -> _typing.Iterator[action_module.BatchAction]:
        """
        Collect machine actions and run them together on exit.

        Example:
            with env.batch() as batch:
                for name in env.machine_names():
                    batch.add(env.machine(name), "up")

        Raises:
            BatchActionError: If any action failed.
        """
        batch = action_module.BatchAction(parallel=parallel, max_workers=max_workers)
        yield batch
        batch.run()

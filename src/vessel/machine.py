"""
Machine: a named environment instance bound to one provider.

Machines are built and cached by Environment.machine(); callers never
construct them directly. A machine is immutable after construction except
for its persisted id, which `reload()` re-reads from disk.
"""

from __future__ import annotations

import logging as _logging
import pathlib as _pathlib
import threading as _threading
import typing as _typing

import pydantic as _pydantic

import vessel.action as action_module
import vessel.config.sources as sources
import vessel.errors as errors
import vessel.providers as providers
import vessel.ui as ui

if _typing.TYPE_CHECKING:
    import vessel.boxes as boxes
    import vessel.config.types as types
    import vessel.environment as environment

_logger = _logging.getLogger(__name__)

ID_FILENAME = "id"


class Machine:
    """
    A resolved machine.

    Attributes:
        name: Machine name.
        provider_name: Name the provider was registered under.
        provider: Provider instance controlling this machine.
        config: Fully merged configuration.
        provider_config: Validated `vm.providers.<provider_name>` settings.
        box: The installed box, or None if no box is configured.
        data_dir: Per-machine state directory.
        env: The owning Environment.
    """

    def __init__(
        self,
        *,
        name: str,
        provider_name: str,
        provider_cls: providers.ProviderFactory,
        config: types.MachineConfig,
        data_dir: _pathlib.Path,
        env: environment.Environment,
        box: boxes.Box | None = None,
    ) -> None:
        self.name = name
        self.provider_name = provider_name
        self.config = config
        self.box = box
        self.data_dir = data_dir
        self.env = env
        self.ui: ui.Interface = ui.Prefixed(env.ui, name)
        self.provider_config = _validate_provider_config(provider_cls, provider_name, config)

        self._lock = _threading.Lock()
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            self._id = self._read_id()
        except OSError as e:
            raise errors.LocalDataNotAccessible(self.data_dir, str(e)) from e

        self.provider: providers.Provider = provider_cls(self)
        _logger.debug(
            "Created machine '%s' with provider '%s' (id=%s)",
            name,
            provider_name,
            self._id,
        )

    # =========================================================================
    # Identity
    # =========================================================================

    @property
    def id(self) -> str | None:
        """Provider-assigned id, persisted in data_dir/id. None if not created."""
        with self._lock:
            return self._id

    @id.setter
    def id(self, value: str | None) -> None:
        path = self.data_dir / ID_FILENAME
        with self._lock:
            try:
                if value is None:
                    path.unlink(missing_ok=True)
                else:
                    path.write_text(str(value), encoding="utf-8")
            except OSError as e:
                raise errors.LocalDataNotAccessible(self.data_dir, str(e)) from e
            self._id = None if value is None else str(value)
        self.provider.machine_id_changed()

    def reload(self) -> None:
        """Re-read the persisted id from disk."""
        with self._lock:
            self._id = self._read_id()

    def _read_id(self) -> str | None:
        path = self.data_dir / ID_FILENAME
        if not path.is_file():
            return None
        value = path.read_text(encoding="utf-8").strip()
        return value or None

    # =========================================================================
    # Provider delegation
    # =========================================================================

    def action(self, name: str, **extra: _typing.Any) -> action_module.ActionContext:
        """
        Run a provider lifecycle action through the environment's runner.

        Args:
            name: Action name, e.g. "up".
            **extra: Values added to the action context.

        Returns:
            The final action context.

        Raises:
            UnimplementedProviderAction: If the provider has no such action.
            PipelineError: If a stage failed.
        """
        runnable = self.provider.action(name)
        if runnable is None:
            raise errors.UnimplementedProviderAction(name, self.provider_name)

        context = {
            "machine": self,
            "machine_action": name,
            "action_name": f"machine_action_{name}",
            "ui": self.ui,
        }
        context.update(extra)
        return self.env.action_runner().run(runnable, context)

    @property
    def state(self) -> providers.MachineState:
        """Provider-reported state."""
        return self.provider.state()

    def ssh_info(self) -> dict[str, _typing.Any] | None:
        """
        Connection info, or None if the provider reports the machine unreachable.

        Values set under `ssh` in the config take precedence over what the
        provider reports. The private key defaults to the home directory key.
        """
        info = self.provider.ssh_info()
        if info is None:
            return None

        ssh = self.config.ssh
        result = dict(info)
        if ssh.host is not None:
            result["host"] = ssh.host
        if ssh.port is not None:
            result["port"] = ssh.port
        result.setdefault("port", ssh.guest_port)
        result["username"] = ssh.username

        key_path = ssh.private_key_path or result.get("private_key_path")
        if key_path:
            path = _pathlib.Path(key_path).expanduser()
            if not path.is_absolute():
                path = (self.env.root_path or self.env.cwd) / path
            result["private_key_path"] = path
        else:
            result["private_key_path"] = self.env.default_private_key_path

        result["forward_agent"] = ssh.forward_agent
        result["forward_x11"] = ssh.forward_x11
        return result

    def __repr__(self) -> str:
        return f"<Machine {self.name!r} provider={self.provider_name!r}>"


def _validate_provider_config(
    provider_cls: providers.ProviderFactory,
    provider_name: str,
    config: types.MachineConfig,
) -> _typing.Any:
    settings = config.provider_settings(provider_name)
    model = provider_cls.config_class
    if model is None:
        return settings
    try:
        return model.model_validate(settings)
    except _pydantic.ValidationError as e:
        raise errors.ConfigInvalid(
            f"vm.providers.{provider_name} of machine '{config.name}'",
            sources.format_validation_error(e),
        ) from e

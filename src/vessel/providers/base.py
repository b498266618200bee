"""
Abstract base class for virtualization providers.

A provider realizes lifecycle operations (up, halt, destroy, ...) for one
Machine. Every backend implements this interface; the ProviderRegistry maps
names to provider classes and checks conformance once, at registration.
"""

from __future__ import annotations

import abc as _abc
import dataclasses as _dataclasses
import typing as _typing

import pydantic as _pydantic

if _typing.TYPE_CHECKING:
    import vessel.action as action
    import vessel.machine as machine_module


@_dataclasses.dataclass(frozen=True)
class MachineState:
    """
    Provider-reported state of a machine.

    Attributes:
        id: Short machine-readable state (e.g. "running", "not_created").
        short_description: One-line human readable description.
        long_description: Longer explanation, may be empty.
    """

    id: str
    short_description: str = ""
    long_description: str = ""

    NOT_CREATED: _typing.ClassVar[str] = "not_created"
    UNKNOWN: _typing.ClassVar[str] = "unknown"

    @classmethod
    def not_created(cls) -> MachineState:
        return cls(
            cls.NOT_CREATED,
            "not created",
            "The environment has not yet been created.",
        )

    @classmethod
    def unknown(cls) -> MachineState:
        return cls(cls.UNKNOWN, "unknown")

    @property
    def is_created(self) -> bool:
        return self.id != self.NOT_CREATED


class Provider(_abc.ABC):
    """
    Abstract base for virtualization providers.

    Subclasses are registered by class; the Environment instantiates one
    provider per Machine, passing the Machine to the constructor.

    Class attributes:
        config_class: Optional Pydantic model used to validate the machine's
            `vm.providers.<name>` settings. When None the raw mapping is used.
        parallel: Whether batch actions may run this provider's machines
            concurrently.
    """

    config_class: _typing.ClassVar[type[_pydantic.BaseModel] | None] = None
    parallel: _typing.ClassVar[bool] = False

    def __init__(self, machine: machine_module.Machine) -> None:
        self._machine = machine

    @property
    def machine(self) -> machine_module.Machine:
        """The machine this provider instance controls."""
        return self._machine

    @_abc.abstractmethod
    def action(self, name: str) -> action.Runnable | None:
        """
        Return the pipeline implementing a lifecycle action.

        Args:
            name: Action name, e.g. "up", "halt", "destroy".

        Returns:
            A Builder, Pipeline or stage to run, or None if unsupported.
        """
        ...

    def state(self) -> MachineState:
        """Current state of the machine. Defaults to unknown."""
        return MachineState.unknown()

    def ssh_info(self) -> dict[str, _typing.Any] | None:
        """
        Connection info for the machine, or None if it is not reachable.

        Expected keys are "host" and "port"; "username" and
        "private_key_path" are optional and may be overridden by config.
        """
        return None

    def machine_id_changed(self) -> None:  # noqa: B027
        """Called after the machine's persisted id changes."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} machine={self._machine.name!r}>"

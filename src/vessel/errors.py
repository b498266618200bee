"""
Error taxonomy for the Vessel core.

Every error raised by the core derives from VesselError so a hosting
program can catch one type, print the message and exit non-zero.

- ConstructionError: the Environment or a machine could not be built (bad cwd, home or local data)
- ConfigError: parse, schema, merge and primary-machine failures
- ResolutionError: a name did not resolve (machine, provider, box, action)
- PipelineError: a stage failed while running an action pipeline
"""

from __future__ import annotations

import pathlib as _pathlib
import typing as _typing


class VesselError(Exception):
    """Base class for all errors raised by Vessel."""

    exit_code = 1


# =============================================================================
# Construction
# =============================================================================


class ConstructionError(VesselError):
    """The environment or one of its machines could not be constructed."""


class EnvironmentNonExistentCWD(ConstructionError):
    """The requested working directory does not exist."""

    def __init__(self, cwd: _pathlib.Path) -> None:
        self.cwd = cwd
        super().__init__(
            f"The working directory '{cwd}' does not exist. Check the --cwd "
            "option or the VESSEL_CWD environment variable."
        )


class HomeDirectoryNotAccessible(ConstructionError):
    """The home directory cannot be created or written."""

    def __init__(self, home_path: _pathlib.Path, reason: str = "") -> None:
        self.home_path = home_path
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"The home directory '{home_path}' is not accessible{detail}. "
            "Set VESSEL_HOME to a writable directory."
        )


class LocalDataNotAccessible(ConstructionError):
    """The per-project state directory cannot be created or written."""

    def __init__(self, path: _pathlib.Path, reason: str = "") -> None:
        self.path = path
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(
            f"The local data directory '{path}' is not accessible{detail}. "
            "Remove any file in its place or set vessel.dotfile_name."
        )


# =============================================================================
# Configuration
# =============================================================================


class ConfigError(VesselError):
    """Configuration could not be loaded, validated or merged."""


class ConfigInvalid(ConfigError):
    """A configuration source failed to parse or validate."""

    def __init__(self, source: str | _pathlib.Path, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration in {source}: {reason}")


class DuplicateMachine(ConfigError):
    """Two machine definitions share a name."""

    def __init__(self, name: str, source: str | _pathlib.Path | None = None) -> None:
        self.name = name
        self.source = source
        where = f" in {source}" if source else ""
        super().__init__(f"Machine '{name}' is defined more than once{where}.")


class MultiplePrimaryMachines(ConfigError):
    """More than one machine definition is flagged primary."""

    def __init__(self, names: _typing.Sequence[str]) -> None:
        self.names = list(names)
        super().__init__(
            "Only one machine may be marked primary, but these are: "
            + ", ".join(self.names)
        )


class AmbiguousPrimaryMachine(ConfigError):
    """Several machines are defined and none is flagged primary."""

    def __init__(self, names: _typing.Sequence[str]) -> None:
        self.names = list(names)
        super().__init__(
            "This is a multi-machine environment with no primary machine. "
            "Name a machine explicitly, one of: " + ", ".join(self.names)
        )


# =============================================================================
# Resolution
# =============================================================================


class ResolutionError(VesselError, LookupError):
    """A machine, provider, box or action name could not be resolved."""


class MachineNotFound(ResolutionError):
    """No machine definition carries the requested name."""

    def __init__(self, name: str, known: _typing.Sequence[str] = ()) -> None:
        self.name = name
        self.known = list(known)
        hint = f" Known machines: {', '.join(self.known)}." if self.known else ""
        super().__init__(f"The machine '{name}' is not defined.{hint}")


class ProviderNotFound(ResolutionError):
    """The provider name is not registered."""

    def __init__(self, provider: str, available: _typing.Sequence[str] = ()) -> None:
        self.provider = provider
        self.available = list(available)
        hint = (
            f" Available providers: {', '.join(self.available)}."
            if self.available
            else " No providers are registered."
        )
        super().__init__(f"The provider '{provider}' could not be found.{hint}")


class BoxNotFound(ResolutionError):
    """The box configured for a machine is not installed for its provider."""

    def __init__(self, box: str, provider: str, machine: str | None = None) -> None:
        self.box = box
        self.provider = provider
        self.machine = machine
        owner = f" (configured for machine '{machine}')" if machine else ""
        super().__init__(
            f"The box '{box}' is not installed for provider '{provider}'{owner}."
        )


class UnimplementedProviderAction(ResolutionError):
    """The provider does not implement the requested lifecycle action."""

    def __init__(self, action: str, provider: str) -> None:
        self.action = action
        self.provider = provider
        super().__init__(
            f"The provider '{provider}' does not support the action '{action}'."
        )


# =============================================================================
# Providers
# =============================================================================


class ProviderInvalid(VesselError):
    """A provider factory does not conform to the Provider interface."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Provider '{name}' cannot be registered: {reason}")


# =============================================================================
# Pipelines
# =============================================================================


class PipelineError(VesselError):
    """
    A stage failed while an action pipeline was running.

    Attributes:
        stage: Name of the stage that raised.
        context: The context as populated when the failure happened.
        original: The exception the stage raised (also chained as __cause__).
    """

    def __init__(
        self,
        stage: str,
        context: _typing.Any,
        original: BaseException,
    ) -> None:
        self.stage = stage
        self.context = context
        self.original = original
        super().__init__(f"Stage '{stage}' failed: {original}")


class BatchActionError(VesselError):
    """One or more machine actions in a batch failed."""

    def __init__(self, failures: _typing.Sequence[tuple[str, str, BaseException]]) -> None:
        self.failures = list(failures)
        lines = [
            f"  {machine} ({action}): {error}" for machine, action, error in self.failures
        ]
        super().__init__("Some machine actions failed:\n" + "\n".join(lines))

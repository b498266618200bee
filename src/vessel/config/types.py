"""Configuration type definitions for the current ("2") config schema.

This module defines the Pydantic models used to validate configuration
sources and to represent merged configuration:

- VesselConfig: dotfile_name, host
- SSHConfig: username, host, port, private key, forwarding, retries
- VMConfig: box, hostname, networks, synced folders, provisioners,
  per-provider settings and machine definitions
- NFSConfig, PackageConfig: small auxiliary sections
- RootConfig: a whole document; GlobalConfig and MachineConfig are the
  merged results handed out by the loader

Design decision: All types use `extra="allow"` to preserve unknown fields.
The loader audits them with `collect_all_extra_fields()`: it warns by
default and rejects them in strict mode. Models are frozen because merged
configuration never changes after it has been loaded.
"""

import typing as _typing

import pydantic as _pydantic

import vessel.constants as _constants

# =============================================================================
# Base class with introspection
# =============================================================================


class ConfigBase(_pydantic.BaseModel):
    """
    Base class for all config types.

    Unknown fields are kept in `model_extra` rather than silently dropped,
    so typos can be reported. Types whose extras are legitimate options
    (networks, provisioners) set ACCEPTS_OPTIONS to skip the audit.
    """

    model_config = _pydantic.ConfigDict(extra="allow", frozen=True)

    ACCEPTS_OPTIONS: _typing.ClassVar[bool] = False

    def get_extra_fields(self) -> dict[str, _typing.Any]:
        """Return fields that were provided but not in the schema."""
        return dict(self.model_extra) if self.model_extra else {}

    def collect_all_extra_fields(
        self,
        prefix: str = "",
    ) -> dict[str, _typing.Any]:
        """
        Recursively collect unknown fields from this config and nested configs.

        Returns a flat dict with dotted paths as keys, e.g.:
            {"ssh.prot": 2222, "vm.synced_folders.src.guestpth": "/src"}

        Args:
            prefix: Dotted path prefix (used in recursion).
        """
        result: dict[str, _typing.Any] = {}

        if not self.ACCEPTS_OPTIONS:
            for key, value in self.get_extra_fields().items():
                result[f"{prefix}.{key}" if prefix else key] = value

        for field_name in self.__class__.model_fields:
            value = getattr(self, field_name, None)
            child_prefix = f"{prefix}.{field_name}" if prefix else field_name

            if isinstance(value, ConfigBase):
                result.update(value.collect_all_extra_fields(child_prefix))
            elif isinstance(value, dict):
                for key, item in value.items():
                    if isinstance(item, ConfigBase):
                        result.update(item.collect_all_extra_fields(f"{child_prefix}.{key}"))
            elif isinstance(value, list):
                for index, item in enumerate(value):
                    if isinstance(item, ConfigBase):
                        result.update(
                            item.collect_all_extra_fields(f"{child_prefix}[{index}]")
                        )

        return result


# =============================================================================
# Sections
# =============================================================================


class VesselConfig(ConfigBase):
    """
    Settings about Vessel itself.

    YAML section: vessel.*
    """

    dotfile_name: str = _constants.LOCAL_DATA_DIRNAME
    """Name of the per-project data directory."""

    host: str = "detect"
    """Host platform adapter, or "detect"."""


class SSHConfig(ConfigBase):
    """
    SSH connection settings.

    YAML section: ssh.*
    Values set here override what the provider reports.
    """

    username: str = "vessel"
    host: str | None = None
    port: int | None = _pydantic.Field(default=None, ge=1, le=65535)
    guest_port: int = _pydantic.Field(default=22, ge=1, le=65535)
    private_key_path: str | None = None
    forward_agent: bool = False
    forward_x11: bool = False
    shell: str = "bash -l"
    max_tries: int = _pydantic.Field(default=100, ge=1)
    timeout: int = _pydantic.Field(default=30, ge=1)


class NetworkConfig(ConfigBase):
    """One network declaration; remaining keys are type-specific options."""

    ACCEPTS_OPTIONS: _typing.ClassVar[bool] = True

    type: _typing.Literal["forwarded_port", "private_network", "public_network"]


class SyncedFolderConfig(ConfigBase):
    """A folder shared between host and guest."""

    hostpath: str
    guestpath: str
    disabled: bool = False
    nfs: bool = False
    create: bool = False
    owner: str | None = None
    group: str | None = None


class ProvisionerConfig(ConfigBase):
    """One provisioner declaration; remaining keys are provisioner options."""

    ACCEPTS_OPTIONS: _typing.ClassVar[bool] = True

    type: str


class MachineDefinitionConfig(ConfigBase):
    """
    An entry of vm.define.

    `config` is a full document fragment applied on top of every other
    layer for this machine only.
    """

    model_config = _pydantic.ConfigDict(extra="forbid", frozen=True)

    name: str = _pydantic.Field(min_length=1)
    provider: str | None = None
    primary: bool = False
    autostart: bool = True
    config: dict[str, _typing.Any] = _pydantic.Field(default_factory=dict)

    @_pydantic.field_validator("name", mode="before")
    @classmethod
    def _coerce_name(cls, value: _typing.Any) -> _typing.Any:
        # YAML reads `name: 1` as an int
        return str(value) if isinstance(value, int) else value


class VMConfig(ConfigBase):
    """
    Virtual machine settings.

    YAML section: vm.*
    """

    name: str | None = None
    """Machine name; filled in by the loader for per-machine configuration."""

    box: str | None = None
    box_url: str | None = None
    hostname: str | None = None
    guest: str = "linux"
    base_mac: str | None = None
    boot_timeout: int = _pydantic.Field(default=300, ge=1)
    graceful_halt_timeout: int = _pydantic.Field(default=60, ge=1)

    networks: list[NetworkConfig] = _pydantic.Field(default_factory=list)
    synced_folders: dict[str, SyncedFolderConfig] = _pydantic.Field(default_factory=dict)
    provisioners: list[ProvisionerConfig] = _pydantic.Field(default_factory=list)

    providers: dict[str, dict[str, _typing.Any]] = _pydantic.Field(default_factory=dict)
    """Provider name -> provider-specific settings (validated by the provider)."""

    define: list[MachineDefinitionConfig] = _pydantic.Field(default_factory=list)
    """Machine definitions, in declaration order. Project source only."""


class NFSConfig(ConfigBase):
    """
    NFS export settings.

    YAML section: nfs.*
    """

    map_uid: int | None = None
    map_gid: int | None = None


class PackageConfig(ConfigBase):
    """
    Packaging settings.

    YAML section: package.*
    """

    name: str = "package.box"


# =============================================================================
# Documents
# =============================================================================


class RootConfig(ConfigBase):
    """A complete current-schema configuration tree."""

    version: str = _constants.CURRENT_CONFIG_VERSION

    vessel: VesselConfig = _pydantic.Field(default_factory=VesselConfig)
    ssh: SSHConfig = _pydantic.Field(default_factory=SSHConfig)
    vm: VMConfig = _pydantic.Field(default_factory=VMConfig)
    nfs: NFSConfig = _pydantic.Field(default_factory=NFSConfig)
    package: PackageConfig = _pydantic.Field(default_factory=PackageConfig)

    @_pydantic.field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: _typing.Any) -> _typing.Any:
        return str(value) if isinstance(value, int) else value

    def to_dict(self) -> dict[str, _typing.Any]:
        """Plain dict form (for YAML/JSON output)."""
        return self.model_dump(mode="json")


class GlobalConfig(RootConfig):
    """Merged configuration shared by every machine (no box or machine layer)."""


class MachineConfig(RootConfig):
    """Merged configuration for one machine."""

    @property
    def name(self) -> str | None:
        """The machine this configuration belongs to."""
        return self.vm.name

    def provider_settings(self, provider: str) -> dict[str, _typing.Any]:
        """Raw settings declared under vm.providers.<provider>."""
        return dict(self.vm.providers.get(provider, {}))

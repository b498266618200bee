"""Legacy ("1") configuration schema and its upgrade to the current schema.

Version 1 documents are closed: every field is listed here and unknown keys
are rejected. `upgrade_v1` translates a validated version 1 document into a
current-schema fragment. The translation is pure and only emits keys the
legacy document actually set, so upgraded layers merge exactly like
current-schema layers.

Field mapping (v1 -> v2):
    vagrant.dotfile_name            -> vessel.dotfile_name
    vagrant.host                    -> vessel.host
    ssh.<field>                     -> ssh.<field>   (forwarded_port_key dropped)
    vm.box / box_url / base_mac     -> vm.box / box_url / base_mac
    vm.guest                        -> vm.guest
    vm.host_name                    -> vm.hostname
    vm.boot_mode ("gui")            -> vm.providers.virtualbox.gui
    vm.customizations               -> vm.providers.virtualbox.customize
    vm.forward_ports[]              -> vm.networks[] (type forwarded_port)
    vm.network_adapters[] hostonly  -> vm.networks[] (type private_network)
    vm.network_adapters[] bridged   -> vm.networks[] (type public_network)
    vm.shared_folders               -> vm.synced_folders
    vm.provisioners                 -> vm.provisioners
    vm.define[].config              -> vm.define[].config (upgraded recursively)
    nfs.*, package.*                -> unchanged
"""

from __future__ import annotations

import typing as _typing

import pydantic as _pydantic

import vessel.constants as _constants

_LEGACY_PROVIDER = "virtualbox"


class _LegacyBase(_pydantic.BaseModel):
    model_config = _pydantic.ConfigDict(extra="forbid", frozen=True)


class V1VagrantSection(_LegacyBase):
    dotfile_name: str | None = None
    host: str | None = None


class V1SSHSection(_LegacyBase):
    username: str | None = None
    host: str | None = None
    port: int | None = None
    guest_port: int | None = None
    private_key_path: str | None = None
    forward_agent: bool | None = None
    forward_x11: bool | None = None
    shell: str | None = None
    max_tries: int | None = None
    timeout: int | None = None
    forwarded_port_key: str | None = None


class V1ForwardPort(_LegacyBase):
    guestport: int
    hostport: int
    name: str | None = None
    protocol: _typing.Literal["tcp", "udp"] = "tcp"
    auto: bool = False
    adapter: int = 1


class V1NetworkAdapter(_LegacyBase):
    type: _typing.Literal["hostonly", "bridged"]
    ip: str | None = None
    netmask: str | None = None
    mac: str | None = None
    bridge: str | None = None
    adapter: int | None = None


class V1SharedFolder(_LegacyBase):
    guestpath: str
    hostpath: str
    nfs: bool = False
    create: bool = False
    owner: str | None = None
    group: str | None = None


class V1Provisioner(_pydantic.BaseModel):
    """Provisioner options are passed through unchanged."""

    model_config = _pydantic.ConfigDict(extra="allow", frozen=True)

    type: str


class V1Define(_LegacyBase):
    name: str
    primary: bool = False
    autostart: bool = True
    config: dict[str, _typing.Any] = _pydantic.Field(default_factory=dict)

    @_pydantic.field_validator("name", mode="before")
    @classmethod
    def _coerce_name(cls, value: _typing.Any) -> _typing.Any:
        return str(value) if isinstance(value, int) else value


class V1VMSection(_LegacyBase):
    box: str | None = None
    box_url: str | None = None
    host_name: str | None = None
    base_mac: str | None = None
    guest: str | None = None
    boot_mode: _typing.Literal["headless", "gui"] | None = None
    forward_ports: list[V1ForwardPort] = _pydantic.Field(default_factory=list)
    network_adapters: list[V1NetworkAdapter] = _pydantic.Field(default_factory=list)
    shared_folders: dict[str, V1SharedFolder] = _pydantic.Field(default_factory=dict)
    customizations: list[list[_typing.Any]] = _pydantic.Field(default_factory=list)
    provisioners: list[V1Provisioner] = _pydantic.Field(default_factory=list)
    define: list[V1Define] = _pydantic.Field(default_factory=list)


class V1NFSSection(_LegacyBase):
    map_uid: int | None = None
    map_gid: int | None = None


class V1PackageSection(_LegacyBase):
    name: str | None = None


class V1Document(_LegacyBase):
    """A complete version 1 configuration document."""

    version: _typing.Literal["1"] = _constants.LEGACY_CONFIG_VERSION
    vagrant: V1VagrantSection = _pydantic.Field(default_factory=V1VagrantSection)
    ssh: V1SSHSection = _pydantic.Field(default_factory=V1SSHSection)
    vm: V1VMSection = _pydantic.Field(default_factory=V1VMSection)
    nfs: V1NFSSection = _pydantic.Field(default_factory=V1NFSSection)
    package: V1PackageSection = _pydantic.Field(default_factory=V1PackageSection)

    @_pydantic.field_validator("version", mode="before")
    @classmethod
    def _coerce_version(cls, value: _typing.Any) -> _typing.Any:
        return str(value) if isinstance(value, int) else value


def upgrade_v1(document: V1Document) -> dict[str, _typing.Any]:
    """
    Translate a version 1 document into a current-schema fragment.

    Only fields explicitly set in the legacy document appear in the result.

    Args:
        document: A validated version 1 document.

    Returns:
        Plain dict in the current schema, tagged version "2".
    """
    result: dict[str, _typing.Any] = {"version": _constants.CURRENT_CONFIG_VERSION}

    vessel = _set_fields(document.vagrant, ("dotfile_name", "host"))
    if vessel:
        result["vessel"] = vessel

    ssh = _set_fields(
        document.ssh,
        (
            "username",
            "host",
            "port",
            "guest_port",
            "private_key_path",
            "forward_agent",
            "forward_x11",
            "shell",
            "max_tries",
            "timeout",
        ),
    )
    if ssh:
        result["ssh"] = ssh

    vm = _upgrade_vm(document.vm)
    if vm:
        result["vm"] = vm

    for section in ("nfs", "package"):
        values = _set_fields(getattr(document, section))
        if values:
            result[section] = values

    return result


def _upgrade_vm(vm: V1VMSection) -> dict[str, _typing.Any]:
    result = _set_fields(vm, ("box", "box_url", "base_mac", "guest"))
    fields_set = vm.model_fields_set

    if "host_name" in fields_set:
        result["hostname"] = vm.host_name

    virtualbox: dict[str, _typing.Any] = {}
    if "boot_mode" in fields_set and vm.boot_mode is not None:
        virtualbox["gui"] = vm.boot_mode == "gui"
    if "customizations" in fields_set:
        virtualbox["customize"] = [list(command) for command in vm.customizations]
    if virtualbox:
        result["providers"] = {_LEGACY_PROVIDER: virtualbox}

    if "forward_ports" in fields_set or "network_adapters" in fields_set:
        networks = [_upgrade_forward_port(port) for port in vm.forward_ports]
        networks.extend(_upgrade_adapter(adapter) for adapter in vm.network_adapters)
        result["networks"] = networks

    if "shared_folders" in fields_set:
        result["synced_folders"] = {
            name: folder.model_dump(exclude_unset=False)
            for name, folder in vm.shared_folders.items()
        }

    if "provisioners" in fields_set:
        result["provisioners"] = [p.model_dump() for p in vm.provisioners]

    if "define" in fields_set:
        result["define"] = [_upgrade_define(definition) for definition in vm.define]

    return result


def _upgrade_forward_port(port: V1ForwardPort) -> dict[str, _typing.Any]:
    network: dict[str, _typing.Any] = {
        "type": "forwarded_port",
        "guest": port.guestport,
        "host": port.hostport,
        "protocol": port.protocol,
        "auto_correct": port.auto,
        "adapter": port.adapter,
    }
    if port.name is not None:
        network["id"] = port.name
    return network


def _upgrade_adapter(adapter: V1NetworkAdapter) -> dict[str, _typing.Any]:
    kind = "private_network" if adapter.type == "hostonly" else "public_network"
    network: dict[str, _typing.Any] = {"type": kind}
    network.update(
        adapter.model_dump(exclude={"type"}, exclude_none=True)
    )
    return network


def _upgrade_define(definition: V1Define) -> dict[str, _typing.Any]:
    fragment = V1Document.model_validate(
        {"version": _constants.LEGACY_CONFIG_VERSION, **definition.config}
    )
    upgraded = upgrade_v1(fragment)
    upgraded.pop("version")
    return {
        "name": definition.name,
        "primary": definition.primary,
        "autostart": definition.autostart,
        "config": upgraded,
    }


def _set_fields(
    model: _pydantic.BaseModel,
    names: _typing.Iterable[str] | None = None,
) -> dict[str, _typing.Any]:
    """Values of explicitly set fields, optionally restricted to `names`."""
    wanted = model.model_fields_set if names is None else set(names) & model.model_fields_set
    return {name: getattr(model, name) for name in model.__class__.model_fields if name in wanted}

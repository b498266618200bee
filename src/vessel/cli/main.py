"""
Main CLI entry point for Vessel.

A thin host around Environment: it builds one environment per invocation,
reports on machines, configuration and boxes, and turns every VesselError
into a message on stderr plus a non-zero exit status.
"""

import json as _json
import logging as _logging
import pathlib as _pathlib
import sys as _sys
import typing as _typing

import click as _click
import yaml as _yaml

import vessel
import vessel.config as config
import vessel.environment as environment
import vessel.errors as errors
import vessel.ui as ui

_logger = _logging.getLogger(__name__)

# Custom Click context settings for better help formatting
CONTEXT_SETTINGS: dict[str, _typing.Any] = {
    "help_option_names": ["-h", "--help"],
    "max_content_width": 100,
}


class VesselGroup(_click.Group):
    """Click group that reports VesselError as a clean failure."""

    def invoke(self, ctx: _click.Context) -> _typing.Any:
        try:
            return super().invoke(ctx)
        except errors.VesselError as e:
            _logger.debug("Command failed", exc_info=True)
            _click.echo(f"Error: {e}", err=True)
            ctx.exit(e.exit_code)


def _configure_logging(level: str | None) -> None:
    if level is None:
        return
    _logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=_sys.stderr,
    )


def _get_env(ctx: _click.Context) -> environment.Environment:
    """Build the Environment on first use within this invocation."""
    obj: dict[str, _typing.Any] = ctx.ensure_object(dict)
    env = obj.get("env")
    if env is None:
        ui_class = ui.Colored if _sys.stdout.isatty() else ui.Basic
        env = environment.Environment(
            cwd=obj.get("cwd"),
            home_path=obj.get("home"),
            ui_class=ui_class,
            provider_registry=obj.get("provider_registry"),
            strict=obj.get("strict"),
            settings=obj.get("settings"),
        )
        obj["env"] = env
    return env


@_click.group(cls=VesselGroup, context_settings=CONTEXT_SETTINGS)
@_click.version_option(vessel.__version__, "-v", "--version", prog_name="vessel")
@_click.option(
    "--cwd",
    type=_click.Path(path_type=_pathlib.Path),
    default=None,
    help="Working directory (default: VESSEL_CWD or the current directory)",
)
@_click.option(
    "--home",
    type=_click.Path(path_type=_pathlib.Path),
    default=None,
    help="Home directory (default: VESSEL_HOME or ~/.vessel.d)",
)
@_click.option(
    "--strict/--no-strict",
    default=None,
    help="Reject unknown configuration keys",
)
@_click.pass_context
def cli(
    ctx: _click.Context,
    cwd: _pathlib.Path | None,
    home: _pathlib.Path | None,
    strict: bool | None,
) -> None:
    """
    Vessel - reproducible development environments.

    \b
    Examples:
        vessel machines                      # List defined machines
        vessel status                        # State of every machine
        vessel config show --machine web     # Merged config of one machine
        vessel config show --provenance      # Which source set each value
        vessel box list                      # Installed boxes
    """
    obj: dict[str, _typing.Any] = ctx.ensure_object(dict)
    settings = obj.get("settings") or config.EnvironmentSettings()
    obj["settings"] = settings
    _configure_logging(settings.log)

    if cwd is not None:
        obj["cwd"] = cwd
    if home is not None:
        obj["home"] = home
    if strict is not None:
        obj["strict"] = strict


@cli.command()
@_click.pass_context
def machines(ctx: _click.Context) -> None:
    """List defined machines in declaration order.

    The primary machine is marked with '*'.
    """
    env = _get_env(ctx)
    primary = env.primary_machine_name
    for definition in env.config.definitions:
        marker = "*" if definition.name == primary else " "
        provider = definition.provider or env.default_provider
        _click.echo(f"{marker} {definition.name} ({provider})")


@cli.command()
@_click.argument("names", nargs=-1)
@_click.option("--provider", type=str, default=None, help="Provider to resolve machines with")
@_click.pass_context
def status(ctx: _click.Context, names: tuple[str, ...], provider: str | None) -> None:
    """Show the state of machines (default: all)."""
    env = _get_env(ctx)
    for name in names or env.machine_names():
        resolved = env.machine(name, provider)
        state = resolved.state
        description = state.short_description or state.id
        _click.echo(f"{name:<24}{description} ({resolved.provider_name})")


@cli.group(name="config")
def config_cmd() -> None:
    """Configuration inspection commands."""


@config_cmd.command(name="show")
@_click.option("--machine", "machine_name", type=str, default=None, help="Show one machine's config")
@_click.option("--provider", type=str, default=None, help="Provider used to resolve the machine")
@_click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@_click.option("--provenance", is_flag=True, help="Show which source set each value")
@_click.pass_context
def config_show(
    ctx: _click.Context,
    machine_name: str | None,
    provider: str | None,
    as_json: bool,
    provenance: bool,
) -> None:
    """Show the effective configuration.

    Without --machine, shows the configuration shared by every machine
    (system, home and project sources). With --machine, the box and
    per-machine sources are folded in too.

    Examples:
        vessel config show                        # Global config as YAML
        vessel config show --machine web --json   # One machine, as JSON
        vessel config show --provenance           # key: source, per line
    """
    env = _get_env(ctx)

    if provenance:
        data: dict[str, _typing.Any] = env.config_provenance(machine_name, provider)
        if as_json:
            _click.echo(_json.dumps(data, indent=2, sort_keys=True))
        else:
            for key in sorted(data):
                _click.echo(f"{key}: {data[key]}")
        return

    if machine_name is None:
        data = env.config.global_config.to_dict()
    else:
        data = env.machine(machine_name, provider).config.to_dict()

    if as_json:
        _click.echo(_json.dumps(data, indent=2))
    else:
        _click.echo(_yaml.safe_dump(data, default_flow_style=False, sort_keys=False), nl=False)


@cli.group(name="box")
def box_cmd() -> None:
    """Box inspection commands."""


@box_cmd.command(name="list")
@_click.pass_context
def box_list(ctx: _click.Context) -> None:
    """List installed boxes."""
    env = _get_env(ctx)
    installed = env.boxes().all()
    if not installed:
        _click.echo("There are no installed boxes.")
        return
    for box in installed:
        suffix = " [legacy]" if box.legacy else ""
        _click.echo(f"{box.name} ({box.provider}){suffix}")


def main() -> None:
    """Main entry point with correct program name."""
    cli(prog_name="vessel")


if __name__ == "__main__":
    main()

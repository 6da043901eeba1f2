"""CLI main entry point."""

import json
import signal
import sys
from pathlib import Path

import click

from .commands import detect, install, plan, uninstall, upgrade
from .config import ENV_VARS, PARSERS, get_config_path, load_config, save_config, unset_config
from .formatters import print_config_yaml
from .prompts import ConfigurationPrompter
from .provision import Mode
from .shared.logging import configure_logging
from .shared.paths import get_log_file


@click.group(invoke_without_command=True)
@click.version_option(package_name="lampkit-cli")
@click.option("-v", "--verbose", count=True, help="Increase verbosity (-v info, -vv debug)")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Installer log file (default: ~/Desktop or ~/lampkit-installer.log)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: int, log_file: Path | None) -> None:
    """Provision LAMP/LEMP web hosts on Debian and RHEL families."""
    ctx.ensure_object(dict)
    settings = load_config()
    if verbose >= 2:
        level = "debug"
    elif verbose == 1:
        level = "info"
    else:
        level = settings.log_level

    ctx.obj["settings"] = settings
    ctx.obj["verbose"] = verbose
    ctx.obj["log_level"] = level
    ctx.obj["log_file"] = log_file or (Path(settings.log_file).expanduser() if settings.log_file else get_log_file())
    configure_logging(level)

    if ctx.invoked_subcommand is None:
        # No subcommand: ask which operation to run
        mode = ConfigurationPrompter().prompt_mode()
        command = {Mode.INSTALL: install, Mode.UPGRADE: upgrade, Mode.UNINSTALL: uninstall}[mode]
        ctx.invoke(command)


cli.add_command(install)
cli.add_command(upgrade)
cli.add_command(uninstall)
cli.add_command(plan)
cli.add_command(detect)


@cli.group()
def config() -> None:
    """Manage lampkit settings."""
    pass


@config.command("show")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
def config_show(json_output: bool) -> None:
    """Show current settings and where each value comes from."""
    settings = load_config()
    values = settings.as_dict()
    sources = {key: settings.get_source(key) for key in values}

    if json_output:
        click.echo(json.dumps({"values": values, "sources": sources}, indent=2))
        return

    click.echo("lampkit Configuration")
    click.echo(f"File: {get_config_path()}\n")
    print_config_yaml(values)
    click.echo("Sources:")
    for key, source in sources.items():
        click.echo(f"  {key}: {source} ({ENV_VARS[key]})")


@config.command("set")
@click.argument("key", type=click.Choice(sorted(PARSERS)))
@click.argument("value")
def config_set(key: str, value: str) -> None:
    """Persist a setting in ~/.lampkit/config.yaml."""
    try:
        save_config(key, value)
    except ValueError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)
    click.echo(f"✓ {key} = {value}")


@config.command("unset")
@click.argument("key", type=click.Choice(sorted(PARSERS)))
def config_unset(key: str) -> None:
    """Remove a setting, restoring its default."""
    if unset_config(key):
        click.echo(f"✓ {key} removed")
    else:
        click.echo(f"{key} is not set in {get_config_path()}")


def _interrupt(signum, frame) -> None:
    raise KeyboardInterrupt(f"signal {signum}")


def main() -> None:
    """Main entry point."""
    # SIGTERM takes the same cleanup path as Ctrl+C
    signal.signal(signal.SIGTERM, _interrupt)
    cli(obj={})


if __name__ == "__main__":
    main()

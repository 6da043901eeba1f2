"""Provisioning commands for lampkit.

This module provides the `lampkit install`, `lampkit upgrade`,
`lampkit uninstall`, `lampkit plan` and `lampkit detect` commands.
Configuration is collected first; the host is only touched once the
pipeline runs.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click

from ..config import CLIConfig
from ..formatters import (
    print_error_banner,
    print_facts,
    print_pipeline_result,
    print_plan,
    print_progress,
    print_uninstall_plan,
    print_uninstall_result,
    print_violations,
)
from ..prompts import AnswersError, ConfigurationPrompter, load_answers, resolve_credentials
from ..provision import (
    CommandRunner,
    CompatibilityError,
    CompatibilityValidator,
    ConfirmationDeclined,
    Configuration,
    Credentials,
    InstallContext,
    InstallProfile,
    Mode,
    PlatformFacts,
    PlatformProbe,
    ProvisioningPipeline,
    ProvisionError,
    RetryPolicy,
    SystemUpdate,
    UninstallPlan,
    resolve_for_platform,
)
from ..provision.errors import EXIT_GENERIC, EXIT_INTERRUPTED
from ..provision.models import DEFAULT_DOC_ROOT
from ..provision.installers import RuntimeVersionResolver
from ..shared.logging import configure_logging, get_logger

logger = get_logger(__name__)

answers_option = click.option(
    "--answers",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML answers file (skips the interactive questions)",
)
yes_option = click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")


def _absolute_path(ctx: click.Context, param: click.Parameter, value: str) -> str:
    if not value.startswith("/"):
        raise click.BadParameter("must be an absolute path")
    return value


def is_root() -> bool:
    return os.geteuid() == 0


def _require_root() -> None:
    if not is_root():
        click.echo("✗ This command must be run as root (try sudo).", err=True)
        sys.exit(EXIT_GENERIC)


def _start_run_logging(obj: dict) -> Path:
    log_file: Path = obj["log_file"]
    configure_logging(obj["log_level"], log_file=log_file)
    return log_file


def _detect_platform() -> PlatformFacts:
    try:
        return PlatformProbe().detect()
    except ProvisionError as e:
        print_error_banner(None, e.message)
        sys.exit(e.exit_code)


def _artifact_dir(settings: CLIConfig) -> Path | None:
    return Path(settings.artifact_dir).expanduser() if settings.artifact_dir else None


def _collect_configuration(
    mode: Mode,
    facts: PlatformFacts,
    runner: CommandRunner,
    settings: CLIConfig,
    answers: Path | None,
) -> Configuration:
    php_version = RuntimeVersionResolver(runner, facts).resolve()
    artifact_dir = _artifact_dir(settings)
    if answers:
        config = load_answers(answers, mode, php_version, resolve_credentials(), artifact_dir)
    else:
        config = ConfigurationPrompter().prompt_configuration(mode, php_version, artifact_dir)
    return resolve_for_platform(config, facts)


def _build_context(
    config: Configuration, facts: PlatformFacts, runner: CommandRunner, settings: CLIConfig
) -> InstallContext:
    retry = RetryPolicy(attempts=settings.retry_attempts, backoff_seconds=settings.retry_backoff)
    return InstallContext.create(config, facts, runner=runner, retry=retry)


def _run_provisioning(obj: dict, mode: Mode, answers: Path | None, yes: bool) -> None:
    """Shared body of install and upgrade."""
    _require_root()
    log_file = _start_run_logging(obj)
    settings: CLIConfig = obj["settings"]

    facts = _detect_platform()
    runner = CommandRunner()
    try:
        config = _collect_configuration(mode, facts, runner, settings, answers)
        logger.info("configuration collected", config=repr(config))
        if mode == Mode.UPGRADE and not yes:
            if not click.confirm("Upgrade the system and re-apply the configuration?", default=False):
                click.echo("Upgrade aborted.")
                return
        ctx = _build_context(config, facts, runner, settings)
        pipeline = ProvisioningPipeline(ctx, on_progress=print_progress, kafka_version=settings.kafka_version)
        result = pipeline.run(mode)
    except AnswersError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(EXIT_GENERIC)
    except CompatibilityError as e:
        print_violations(e.violations)
        sys.exit(e.exit_code)
    except ProvisionError as e:
        print_error_banner(None, e.message, log_file)
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        click.echo("\n✗ Interrupted. Temporary files removed; applied changes were kept.", err=True)
        sys.exit(EXIT_INTERRUPTED)

    print_pipeline_result(result, log_file)
    if not result.success:
        sys.exit(result.exit_code)


@click.command()
@answers_option
@click.pass_context
def install(ctx: click.Context, answers: Path | None) -> None:
    """Provision the web stack on this host.

    \b
    Examples:
      sudo lampkit install                       # Interactive
      sudo lampkit install --answers site.yaml   # Unattended
    """
    _run_provisioning(ctx.obj, Mode.INSTALL, answers, yes=True)


@click.command()
@answers_option
@yes_option
@click.pass_context
def upgrade(ctx: click.Context, answers: Path | None, yes: bool) -> None:
    """Update system packages and re-apply the configuration.

    Data and existing services are kept; every step is replayed and only
    changes what differs.
    """
    _run_provisioning(ctx.obj, Mode.UPGRADE, answers, yes)


@click.command()
@yes_option
@click.option(
    "--doc-root",
    default=DEFAULT_DOC_ROOT,
    show_default=True,
    callback=_absolute_path,
    help="Document root used at install time (kept, never deleted)",
)
@click.pass_context
def uninstall(ctx: click.Context, yes: bool, doc_root: str) -> None:
    """Remove installed packages and configuration.

    Database data directories and the document root are kept.
    """
    _require_root()
    log_file = _start_run_logging(ctx.obj)
    settings: CLIConfig = ctx.obj["settings"]
    facts = _detect_platform()

    config_kwargs = {}
    artifact_dir = _artifact_dir(settings)
    if artifact_dir is not None:
        config_kwargs["artifact_dir"] = artifact_dir
    config = Configuration(
        mode=Mode.UNINSTALL,
        install_profile=InstallProfile.STANDARD,
        credentials=Credentials(db_password=""),
        domains=(),
        php_version="",
        doc_root=doc_root,
        **config_kwargs,
    )
    runner = CommandRunner()
    context = _build_context(config, facts, runner, settings)

    def confirm(plan: UninstallPlan) -> bool:
        print_uninstall_plan(plan, log_file)
        return yes or ConfigurationPrompter().confirm_uninstall()

    pipeline = ProvisioningPipeline(context, on_progress=print_progress, confirm=confirm)
    try:
        result = pipeline.run(Mode.UNINSTALL)
    except ConfirmationDeclined as e:
        click.echo(e.message)
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        click.echo("\n✗ Interrupted.", err=True)
        sys.exit(EXIT_INTERRUPTED)
    print_uninstall_result(result, log_file)


@click.command()
@click.option(
    "--answers",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML answers file",
)
@click.option("--mode", type=click.Choice(["install", "upgrade"]), default="install")
@click.pass_context
def plan(ctx: click.Context, answers: Path, mode: str) -> None:
    """Show the steps a run would execute, without changing anything."""
    facts = _detect_platform()
    run_mode = Mode(mode)
    php_version = RuntimeVersionResolver(CommandRunner(), facts).fallback()
    try:
        config = load_answers(answers, run_mode, php_version, Credentials(db_password=""))
    except AnswersError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(EXIT_GENERIC)
    config = resolve_for_platform(config, facts)

    violations = CompatibilityValidator().validate(config)
    if violations:
        print_violations(violations)
        sys.exit(CompatibilityError(violations).exit_code)

    context = _build_context(config, facts, CommandRunner(), ctx.obj["settings"])
    pipeline = ProvisioningPipeline(context, kafka_version=ctx.obj["settings"].kafka_version)
    steps = pipeline.plan()
    if run_mode == Mode.UPGRADE:
        steps = [SystemUpdate(), *steps]
    print_plan(steps)


@click.command()
def detect() -> None:
    """Show the detected platform."""
    print_facts(_detect_platform())

"""CLI output formatting helpers.

Plain output goes through click.echo; the failure banner uses rich.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Any

import click
import yaml
from rich.console import Console

from .provision import (
    CompatibilityViolation,
    PipelineResult,
    PlatformFacts,
    Progress,
    UninstallPlan,
    UninstallResult,
)
from .provision.installers import Step
from .shared.logging import redact

PROGRESS_BAR_WIDTH = 50

error_console = Console(stderr=True)


def render_progress_bar(progress: Progress, width: int = PROGRESS_BAR_WIDTH) -> str:
    """Render `step: [####----] NN%`.

    Args:
        progress: Current position
        width: Bar width in characters

    Returns:
        Single line without terminal control characters
    """
    if progress.total <= 0:
        return f"{progress.step}: [No steps defined]"
    current = min(progress.current, progress.total)
    percent = current * 100 // progress.total
    filled = current * width // progress.total
    bar = "#" * filled + "-" * (width - filled)
    return f"{progress.step}: [{bar}] {percent}%"


def print_progress(progress: Progress) -> None:
    """Redraw the progress line in place; newline once complete."""
    done = progress.current >= progress.total
    click.echo("\r" + click.style(render_progress_bar(progress), fg="red") + "\033[K", nl=done)


def print_config_yaml(data: dict[str, Any], section: str | None = None) -> None:
    """Print a mapping as YAML.

    Args:
        data: Data to print
        section: Optional section name for header
    """
    if section:
        click.echo(f"{section}:")
        yaml_str = yaml.dump(data, default_flow_style=False, sort_keys=False)
        for line in yaml_str.splitlines():
            click.echo(f"  {line}")
    else:
        click.echo(yaml.dump(data, default_flow_style=False, sort_keys=False))


def print_facts(facts: PlatformFacts) -> None:
    """Print detected platform facts."""
    data = {
        key: value.value if isinstance(value, Enum) else value
        for key, value in asdict(facts).items()
    }
    print_config_yaml(data, section="Platform")


def print_plan(steps: Sequence[Step]) -> None:
    """Print the steps a run would execute."""
    click.echo(f"Plan ({len(steps)} steps):")
    for i, step in enumerate(steps, 1):
        click.echo(f"  {i:>2}. {step.name}")


def print_violations(violations: Sequence[CompatibilityViolation]) -> None:
    """Print compatibility violations.

    Args:
        violations: Violations reported by the validator
    """
    click.echo("Incompatible configuration:", err=True)
    for v in violations:
        click.echo(f"  ✗ {v.message} [{v.rule}]", err=True)


def print_uninstall_plan(plan: UninstallPlan, log_file: Path | None = None) -> None:
    """Print what an uninstall removes and what it leaves in place."""
    click.echo("WARNING: The following packages and directories will be removed:")
    click.echo("Packages (if installed):")
    for package in plan.packages:
        click.echo(f"   - {package}")
    click.echo("Configuration/application files and directories:")
    if plan.paths:
        for path in plan.paths:
            click.echo(f"   - {path}")
    else:
        click.echo("   (none found)")
    click.echo()
    click.echo("The following are NOT removed:")
    for path in plan.preserved:
        click.echo(f"   - {path}")
    if log_file:
        click.echo(f"   - {log_file}")
    click.echo("Back these up and remove them manually if desired.")


def print_warnings(warnings: Sequence[str]) -> None:
    if not warnings:
        return
    click.echo(f"\nWarnings ({len(warnings)}):")
    for w in warnings:
        click.echo(f"  ⚠ {redact(w)}")


def print_pipeline_result(result: PipelineResult, log_file: Path | None = None) -> None:
    """Print the outcome of an install or upgrade run."""
    print_warnings(result.warnings)
    if result.success:
        click.echo("\n" + "=" * 50)
        click.echo(f"✓ Provisioning complete ({len(result.completed)} steps)")
        if log_file:
            click.echo(f"\n  Log file: {log_file}")
        click.echo("=" * 50 + "\n")
    else:
        print_error_banner(result.failed_step, result.error or "unknown error", log_file)


def print_uninstall_result(result: UninstallResult, log_file: Path | None = None) -> None:
    """Print the outcome of an uninstall run."""
    print_warnings(result.warnings)
    click.echo(
        f"\n✓ Uninstall complete: {len(result.removed_packages)} packages, "
        f"{len(result.removed_paths)} paths removed"
    )
    if log_file:
        click.echo(f"  Log file: {log_file}")


def print_error_banner(step: str | None, reason: str, log_file: Path | None = None) -> None:
    """Print a failure banner to stderr.

    Args:
        step: Name of the step that failed, if any
        reason: Error message (secrets are masked)
        log_file: Installer log location
    """
    if step:
        error_console.print(f"[red]Error:[/red] step [bold]{step}[/bold] failed")
    else:
        error_console.print("[red]Error:[/red] provisioning failed")
    error_console.print(f"  {redact(reason)}", markup=False)
    if log_file:
        error_console.print(f"[dim]Details:[/dim] {log_file}")

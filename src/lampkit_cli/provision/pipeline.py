"""Provisioning pipeline for the install and upgrade commands.

This module provides the fixed step sequence and its runner:
- Step plan filtered by the configuration
- Progress reporting after every completed step
- First fatal error stops the run; non-fatal service failures become warnings
- Filesystem, archive and network errors fail the step that raised them
- Temporary artifacts removed on completion and on interrupt
"""

from __future__ import annotations

import tarfile
from collections.abc import Callable
from dataclasses import dataclass, field

import httpx

from lampkit_cli.config import DEFAULT_KAFKA_VERSION
from lampkit_cli.shared.logging import get_logger

from .context import InstallContext
from .errors import EXIT_OK, ProvisionError, ServiceControlFailed, StepFailed
from .installers import (
    AdminPanelInstaller,
    AnsiblePlaybookGenerator,
    CacheInstaller,
    DatabaseInstaller,
    DeploymentUserSetup,
    DockerComposeGenerator,
    FirewallInstaller,
    FtpInstaller,
    PerformanceTuner,
    PrerequisitesInstaller,
    QueueInstaller,
    RuntimeInstaller,
    SecurityHardener,
    Step,
    VirtualHostSetup,
    WebServerInstaller,
)
from .models import Mode, Progress
from .uninstaller import UninstallPlan, Uninstaller, UninstallResult
from .validator import CompatibilityValidator

logger = get_logger(__name__)


@dataclass
class PipelineResult:
    """Result of an install or upgrade run."""

    success: bool
    completed: list[str] = field(default_factory=list)
    failed_step: str | None = None
    error: str | None = None
    exit_code: int = EXIT_OK
    warnings: list[str] = field(default_factory=list)


class SystemUpdate(Step):
    """Refresh package metadata and upgrade installed packages."""

    name = "System Update"

    def run(self, ctx: InstallContext) -> None:
        ctx.packages.update()


class ProvisioningPipeline:
    """Run the provisioning steps in their fixed order."""

    def __init__(
        self,
        ctx: InstallContext,
        on_progress: Callable[[Progress], None] | None = None,
        validator: CompatibilityValidator | None = None,
        confirm: Callable[[UninstallPlan], bool] | None = None,
        kafka_version: str = DEFAULT_KAFKA_VERSION,
    ):
        """Initialize pipeline.

        Args:
            ctx: Context shared by every step.
            on_progress: Called with a Progress after each completed step.
            validator: Compatibility checks run before any step.
            confirm: Asked before an uninstall touches the host.
            kafka_version: Kafka release installed when Kafka is selected.
        """
        self.ctx = ctx
        self.on_progress = on_progress
        self.validator = validator or CompatibilityValidator()
        self.confirm = confirm
        self.kafka_version = kafka_version

    def plan(self) -> list[Step]:
        """Steps that apply to the configuration, in execution order."""
        steps: list[Step] = [
            PrerequisitesInstaller(),
            RuntimeInstaller(),
            DatabaseInstaller(),
            FtpInstaller(),
            CacheInstaller(),
            QueueInstaller(self.kafka_version),
            WebServerInstaller(),
            VirtualHostSetup(),
            AdminPanelInstaller(),
            PerformanceTuner(),
            FirewallInstaller(),
            SecurityHardener(),
            DeploymentUserSetup(),
            DockerComposeGenerator(),
            AnsiblePlaybookGenerator(),
        ]
        return [step for step in steps if step.enabled(self.ctx.config)]

    def install(self) -> PipelineResult:
        """Validate, then run the install plan.

        Raises:
            CompatibilityError: Before any step runs.
        """
        self.validator.check(self.ctx.config)
        return self._execute(self.plan())

    def upgrade(self) -> PipelineResult:
        """Update the system, then replay the install plan.

        Raises:
            CompatibilityError: Before any step runs.
        """
        self.validator.check(self.ctx.config)
        return self._execute([SystemUpdate(), *self.plan()])

    def run(self, mode: Mode) -> PipelineResult | UninstallResult:
        """Dispatch on mode."""
        if mode == Mode.INSTALL:
            return self.install()
        if mode == Mode.UPGRADE:
            return self.upgrade()
        confirm = self.confirm or (lambda plan: False)
        return Uninstaller(self.ctx, confirm, on_progress=self.on_progress).run()

    def _report(self, current: int, total: int, step: str) -> None:
        if self.on_progress:
            self.on_progress(Progress(current, total, step))

    def _execute(self, steps: list[Step]) -> PipelineResult:
        ctx = self.ctx
        total = len(steps)
        completed: list[str] = []
        logger.info("provisioning started", mode=ctx.config.mode.value, steps=[s.name for s in steps])

        try:
            for index, step in enumerate(steps, 1):
                logger.info("step started", step=step.name, index=index, total=total)
                try:
                    step.run(ctx)
                except ServiceControlFailed as e:
                    if e.fatal:
                        return self._failed(step, e, completed)
                    ctx.warn(e.message, step=step.name)
                except ProvisionError as e:
                    return self._failed(step, e, completed)
                except (OSError, tarfile.TarError, httpx.HTTPError) as e:
                    logger.debug("step raised", step=step.name, exc_info=True)
                    return self._failed(step, StepFailed(step.name, e), completed)
                completed.append(step.name)
                self._report(index, total, step.name)
        except KeyboardInterrupt:
            logger.warning("provisioning interrupted", completed=completed)
            raise
        finally:
            ctx.temp.cleanup()

        logger.info("provisioning finished", steps=len(completed), warnings=len(ctx.warnings))
        return PipelineResult(success=True, completed=completed, warnings=list(ctx.warnings))

    def _failed(self, step: Step, error: ProvisionError, completed: list[str]) -> PipelineResult:
        logger.error("step failed", step=step.name, error=error.message)
        return PipelineResult(
            success=False,
            completed=completed,
            failed_step=step.name,
            error=error.message,
            exit_code=error.exit_code,
            warnings=list(self.ctx.warnings),
        )

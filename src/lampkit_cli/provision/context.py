"""Shared context handed to every provisioning step."""

from __future__ import annotations

import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from lampkit_cli.shared.logging import get_logger

from .download import download_file
from .models import Configuration, PlatformFacts
from .packages import PackageManager, RetryPolicy
from .runner import CommandRunner
from .services import ServiceController

logger = get_logger(__name__)


class TemporaryArtifacts:
    """Registry of temporary files removed on completion or interrupt."""

    def __init__(self) -> None:
        self._paths: list[Path] = []

    def register(self, path: Path) -> Path:
        path = Path(path)
        if path not in self._paths:
            self._paths.append(path)
        return path

    @property
    def paths(self) -> list[Path]:
        return list(self._paths)

    def cleanup(self) -> list[Path]:
        """Delete every registered path that still exists.

        Returns:
            Paths that were removed.
        """
        removed = []
        for path in self._paths:
            try:
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                    removed.append(path)
                elif path.exists() or path.is_symlink():
                    path.unlink()
                    removed.append(path)
            except OSError as e:
                logger.warning("failed to remove temporary file", path=str(path), error=str(e))
        if removed:
            logger.info("cleaned up temporary files", paths=[str(p) for p in removed])
        self._paths.clear()
        return removed


@dataclass
class InstallContext:
    """Everything a step needs: choices, platform, and host adapters.

    All managed paths go through `path()` so the filesystem root can be
    redirected.
    """

    config: Configuration
    facts: PlatformFacts
    runner: CommandRunner
    packages: PackageManager
    services: ServiceController
    root: Path = Path("/")
    fetch: Callable[[str, Path], None] = download_file
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    sleep: Callable[[float], None] = time.sleep
    temp: TemporaryArtifacts = field(default_factory=TemporaryArtifacts)
    warnings: list[str] = field(default_factory=list)

    @classmethod
    def create(
        cls,
        config: Configuration,
        facts: PlatformFacts,
        runner: CommandRunner | None = None,
        retry: RetryPolicy | None = None,
        root: Path = Path("/"),
        sleep: Callable[[float], None] = time.sleep,
        **kwargs,
    ) -> InstallContext:
        """Build a context with adapters chosen for the platform."""
        runner = runner or CommandRunner()
        retry = retry or RetryPolicy()
        return cls(
            config=config,
            facts=facts,
            runner=runner,
            packages=PackageManager.for_platform(facts, runner, retry, sleep),
            sleep=sleep,
            services=ServiceController(runner),
            root=Path(root),
            retry=retry,
            **kwargs,
        )

    def path(self, absolute: str | Path) -> Path:
        """Map an absolute host path under the context root."""
        return self.root / str(absolute).lstrip("/")

    def warn(self, message: str, **context) -> None:
        """Record a non-fatal problem."""
        self.warnings.append(message)
        logger.warning(message, **context)

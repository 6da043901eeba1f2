"""Package manager adapters.

This module provides install/update/remove/is_installed over apt-get and
dnf/yum, with one repository-bootstrap recovery and a bounded retry for
failed installs.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from lampkit_cli.shared.logging import get_logger

from .errors import PackageInstallFailed, SystemUpdateFailed
from .models import PackageFamily, PlatformFacts
from .runner import CommandResult, CommandRunner

logger = get_logger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with fixed backoff."""

    attempts: int = 3
    backoff_seconds: float = 5.0


class PackageManager:
    """Distro package manager adapter.

    Use `PackageManager.for_platform` to get the adapter for a host.
    """

    def __init__(
        self,
        runner: CommandRunner,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.runner = runner
        self.retry = retry or RetryPolicy()
        self._sleep = sleep

    @staticmethod
    def for_platform(
        facts: PlatformFacts,
        runner: CommandRunner,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> PackageManager:
        """Create the adapter matching the platform's package family."""
        if facts.package_family == PackageFamily.DEBIAN:
            return AptPackageManager(runner, retry, sleep)
        return DnfPackageManager(runner, retry, sleep, tool=facts.package_tool)

    # Family-specific primitives

    def _install_cmd(self, packages: list[str]) -> CommandResult:
        raise NotImplementedError

    def _remove_cmd(self, packages: list[str]) -> CommandResult:
        raise NotImplementedError

    def is_installed(self, package: str) -> bool:
        """Check whether a package is installed. Never mutates."""
        raise NotImplementedError

    def update(self) -> None:
        """Refresh the package index and upgrade installed packages.

        Raises:
            SystemUpdateFailed: If the refresh or upgrade fails.
        """
        raise NotImplementedError

    def bootstrap_repositories(self) -> None:
        """Repair or extend repository configuration (best effort)."""
        raise NotImplementedError

    def autoremove(self) -> None:
        """Remove orphaned dependencies (best effort)."""
        raise NotImplementedError

    def installed_matching(self, prefix: str) -> list[str]:
        """List installed packages whose name starts with prefix."""
        raise NotImplementedError

    # Shared behaviour

    def install(self, packages: Iterable[str]) -> list[str]:
        """Install packages that are not already present.

        On failure, one repository bootstrap is attempted and the install is
        retried under the retry policy.

        Args:
            packages: Package names (or package file URLs).

        Returns:
            Packages that were actually installed (empty when all present).

        Raises:
            PackageInstallFailed: When every attempt failed.
        """
        wanted = list(dict.fromkeys(packages))
        missing = [p for p in wanted if not self.is_installed(p)]
        if not missing:
            logger.debug("packages already installed", packages=wanted)
            return []

        logger.info("installing packages", packages=missing)
        result = self._install_cmd(missing)
        if result.ok:
            return missing

        logger.warning(
            "package install failed, bootstrapping repositories",
            packages=missing,
            error=result.describe(),
        )
        self.bootstrap_repositories()

        for attempt in range(1, self.retry.attempts + 1):
            result = self._install_cmd(missing)
            if result.ok:
                logger.info("packages installed after retry", packages=missing, attempt=attempt)
                return missing
            logger.warning(
                "package install retry failed",
                packages=missing,
                attempt=attempt,
                attempts=self.retry.attempts,
                error=result.describe(),
            )
            if attempt < self.retry.attempts:
                self._sleep(self.retry.backoff_seconds)

        raise PackageInstallFailed(missing, result.describe())

    def remove(self, packages: Iterable[str]) -> list[str]:
        """Remove packages that are confirmed installed.

        Absent packages are skipped without invoking the remove tool.

        Returns:
            Packages that were removed.
        """
        present = [p for p in dict.fromkeys(packages) if self.is_installed(p)]
        removed = []
        for package in present:
            result = self._remove_cmd([package])
            if result.ok:
                logger.info("removed package", package=package)
                removed.append(package)
            else:
                logger.warning("failed to remove package", package=package, error=result.describe())
        return removed


class AptPackageManager(PackageManager):
    """apt-get / dpkg adapter for the Debian family."""

    def _install_cmd(self, packages: list[str]) -> CommandResult:
        return self.runner.run(["apt-get", "install", "-y", *packages], env=APT_ENV)

    def _remove_cmd(self, packages: list[str]) -> CommandResult:
        return self.runner.run(["apt-get", "purge", "-y", *packages], env=APT_ENV)

    def is_installed(self, package: str) -> bool:
        result = self.runner.run(["dpkg-query", "-W", "-f=${Status}", package])
        return result.ok and "install ok installed" in result.stdout

    def update(self) -> None:
        result = self.runner.run(["apt-get", "update"], env=APT_ENV)
        if result.ok:
            result = self.runner.run(["apt-get", "upgrade", "-y"], env=APT_ENV)
        if not result.ok:
            raise SystemUpdateFailed(f"System update failed: {result.describe()}")

    def bootstrap_repositories(self) -> None:
        for argv in (
            ["apt-get", "install", "-f", "-y"],
            ["dpkg", "--configure", "-a"],
            ["apt-get", "update"],
        ):
            result = self.runner.run(argv, env=APT_ENV)
            if not result.ok:
                logger.warning("repository bootstrap command failed", argv=argv, error=result.describe())

    def autoremove(self) -> None:
        self.runner.run(["apt-get", "autoremove", "-y"], env=APT_ENV)
        self.runner.run(["apt-get", "autoclean"], env=APT_ENV)

    def installed_matching(self, prefix: str) -> list[str]:
        result = self.runner.run(["dpkg-query", "-W", "-f=${Package} ${Status}\n", f"{prefix}*"])
        if not result.ok:
            return []
        names = []
        for line in result.stdout.splitlines():
            name, _, status = line.partition(" ")
            if name.startswith(prefix) and status.endswith("installed") and "not-installed" not in status:
                names.append(name)
        return names


class DnfPackageManager(PackageManager):
    """dnf (or yum) / rpm adapter for the RHEL family."""

    def __init__(
        self,
        runner: CommandRunner,
        retry: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        tool: str = "dnf",
    ):
        super().__init__(runner, retry, sleep)
        self.tool = tool

    def _install_cmd(self, packages: list[str]) -> CommandResult:
        return self.runner.run([self.tool, "install", "-y", *packages])

    def _remove_cmd(self, packages: list[str]) -> CommandResult:
        return self.runner.run([self.tool, "remove", "-y", *packages])

    def is_installed(self, package: str) -> bool:
        # Package URLs are installed by file; rpm answers for the package name
        name = package.rsplit("/", 1)[-1].removesuffix(".rpm") if package.endswith(".rpm") else package
        if name.startswith("remi-release"):
            name = "remi-release"
        return self.runner.run(["rpm", "-q", name]).ok

    def update(self) -> None:
        result = self.runner.run([self.tool, "upgrade", "-y"])
        if not result.ok:
            raise SystemUpdateFailed(f"System update failed: {result.describe()}")

    def bootstrap_repositories(self) -> None:
        if not self.runner.run(["rpm", "-q", "epel-release"]).ok:
            result = self._install_cmd(["epel-release"])
            if not result.ok:
                logger.warning("failed to install EPEL repository", error=result.describe())
        if self.tool == "dnf":
            enabled = self.runner.run(["dnf", "config-manager", "--set-enabled", "crb"]).ok
            if not enabled:
                enabled = self.runner.run(["dnf", "config-manager", "--set-enabled", "powertools"]).ok
            if not enabled:
                logger.warning("failed to enable CRB/PowerTools repository")
        self.runner.run([self.tool, "makecache"])

    def autoremove(self) -> None:
        self.runner.run([self.tool, "autoremove", "-y"])

    def installed_matching(self, prefix: str) -> list[str]:
        result = self.runner.run(["rpm", "-qa", "--qf", "%{NAME}\n", f"{prefix}*"])
        if not result.ok:
            return []
        return [line.strip() for line in result.stdout.splitlines() if line.strip().startswith(prefix)]

"""Removal of everything the installer may have put on the host.

Data directories and the document root are never deleted; the plan names
them so the operator knows they stay.
"""

from __future__ import annotations

import re
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from lampkit_cli.shared.logging import get_logger

from .context import InstallContext
from .errors import ConfirmationDeclined
from .installers.artifacts import COMPOSE_ENV_FILE, COMPOSE_FILE, PLAYBOOK_FILE
from .models import FirewallTool, Progress

logger = get_logger(__name__)

SERVICES = (
    "apache2",
    "httpd",
    "nginx",
    "caddy",
    "lighttpd",
    "mysql",
    "mysqld",
    "mariadb",
    "postgresql",
    "mongod",
    "redis",
    "redis-server",
    "memcached",
    "varnish",
    "rabbitmq-server",
    "kafka",
    "zookeeper",
    "vsftpd",
    "fail2ban",
    "unattended-upgrades",
)

PACKAGES = (
    "apache2",
    "apache2-utils",
    "httpd",
    "nginx",
    "caddy",
    "lighttpd",
    "mysql-server",
    "mariadb-server",
    "percona-server-server",
    "postgresql",
    "postgresql-server",
    "mongodb-org",
    "phpmyadmin",
    "certbot",
    "vsftpd",
    "unattended-upgrades",
    "fail2ban",
    "redis-server",
    "redis",
    "memcached",
    "varnish",
    "rabbitmq-server",
    "openjdk-11-jdk",
    "java-11-openjdk-devel",
)

CONFIG_PATHS = (
    "/etc/apache2",
    "/etc/httpd",
    "/etc/nginx",
    "/etc/caddy",
    "/etc/lighttpd",
    "/etc/php",
    "/etc/mysql",
    "/etc/my.cnf",
    "/etc/my.cnf.d",
    "/etc/alternatives/my.cnf",
    "/etc/postgresql",
    "/etc/mongodb",
    "/etc/mongod.conf",
    "/etc/phpmyadmin",
    "/etc/phpMyAdmin",
    "/usr/share/phpmyadmin",
    "/usr/share/phpMyAdmin",
    "/etc/vsftpd",
    "/etc/vsftpd.conf",
    "/etc/redis",
    "/etc/redis.conf",
    "/etc/memcached.conf",
    "/etc/varnish",
    "/etc/rabbitmq",
    "/opt/kafka",
    "/etc/systemd/system/zookeeper.service",
    "/etc/systemd/system/kafka.service",
    "/etc/letsencrypt",
    "/etc/fail2ban",
    "/etc/unattended-upgrades",
)

DATA_PATHS = (
    "/var/lib/mysql",
    "/var/lib/pgsql",
    "/var/lib/postgresql",
    "/var/lib/mongodb",
    "/var/lib/rabbitmq",
)

# php8.2, php8.2-fpm, php-mysqlnd; not phpmyadmin
PHP_PACKAGE = re.compile(r"^php[0-9.]*(-[a-zA-Z0-9]+)*$")


@dataclass
class UninstallPlan:
    """What an uninstall would touch, shown before confirmation."""

    services: list[str]
    packages: list[str]
    paths: list[Path]
    preserved: list[str]


@dataclass
class UninstallResult:
    """Result of an uninstall run."""

    success: bool
    removed_packages: list[str] = field(default_factory=list)
    removed_paths: list[Path] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class Uninstaller:
    """Stop services, disable the firewall, remove packages and configuration."""

    STAGES = 6

    def __init__(
        self,
        ctx: InstallContext,
        confirm: Callable[[UninstallPlan], bool],
        on_progress: Callable[[Progress], None] | None = None,
    ):
        self.ctx = ctx
        self.confirm = confirm
        self.on_progress = on_progress

    def plan(self) -> UninstallPlan:
        """Build the removal plan. Never mutates."""
        ctx = self.ctx
        packages = list(PACKAGES)
        packages.append(ctx.facts.firewall_tool.value)
        if ctx.facts.is_rhel:
            packages.append("phpMyAdmin")
        packages += [p for p in ctx.packages.installed_matching("php") if PHP_PACKAGE.match(p)]

        artifact_dir = ctx.config.artifact_dir
        paths = [ctx.path(p) for p in CONFIG_PATHS]
        paths += [artifact_dir / name for name in (COMPOSE_FILE, COMPOSE_ENV_FILE, PLAYBOOK_FILE)]

        return UninstallPlan(
            services=list(SERVICES),
            packages=list(dict.fromkeys(packages)),
            paths=[p for p in paths if p.exists() or p.is_symlink()],
            preserved=[*DATA_PATHS, ctx.config.doc_root],
        )

    def run(self) -> UninstallResult:
        """Remove everything in the plan after confirmation.

        Raises:
            ConfirmationDeclined: When confirm returns False; nothing is changed.
        """
        plan = self.plan()
        if not self.confirm(plan):
            logger.info("uninstall declined")
            raise ConfirmationDeclined("Uninstallation aborted by user")

        ctx = self.ctx
        logger.info("uninstall started", packages=len(plan.packages), paths=len(plan.paths))
        try:
            for service in plan.services:
                ctx.services.stop_quietly(service)
            self._report(1, "Services Stopped")

            # Needs the firewall tool, which the package removal purges
            self._disable_firewall()
            self._report(2, "Firewall Disabled")

            removed_packages = ctx.packages.remove(plan.packages)
            self._report(3, "Packages Removed")

            removed_paths = self._remove_paths(plan.paths)
            self._report(4, "Configs Removed")

            result = ctx.runner.run(["systemctl", "daemon-reload"])
            if not result.ok:
                ctx.warn(f"systemd daemon-reload failed ({result.describe()})")
            self._report(5, "Daemon Reloaded")

            ctx.packages.autoremove()
            self._report(6, "Cleanup Complete")
        finally:
            ctx.temp.cleanup()

        logger.info("uninstall finished", packages=removed_packages, paths=[str(p) for p in removed_paths])
        return UninstallResult(
            success=True,
            removed_packages=removed_packages,
            removed_paths=removed_paths,
            warnings=list(ctx.warnings),
        )

    def _report(self, current: int, step: str) -> None:
        if self.on_progress:
            self.on_progress(Progress(current, self.STAGES, f"Uninstall: {step}"))

    def _remove_paths(self, paths: list[Path]) -> list[Path]:
        removed = []
        for path in paths:
            try:
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                else:
                    path.unlink()
            except OSError as e:
                self.ctx.warn(f"Could not remove {path} ({e})")
                continue
            logger.info("removed path", path=str(path))
            removed.append(path)
        return removed

    def _disable_firewall(self) -> None:
        ctx = self.ctx
        if ctx.facts.firewall_tool == FirewallTool.UFW:
            if not ctx.runner.which("ufw"):
                logger.info("ufw not present, nothing to disable")
                return
            result = ctx.runner.run(["ufw", "disable"])
            if not result.ok:
                ctx.warn(f"ufw disable failed ({result.describe()})")
        else:
            ctx.services.stop_quietly("firewalld")
            ctx.runner.run(["systemctl", "disable", "firewalld"])

"""PHP runtime installation."""

from __future__ import annotations

from lampkit_cli.shared.logging import get_logger

from ..context import InstallContext
from ..errors import PackageInstallFailed, ServiceControlFailed
from ..models import DbEngine, PlatformFacts, WebServer, effective_db_engine
from ..runner import CommandRunner
from .base import Step

logger = get_logger(__name__)

# Newest first
PHP_PREFERENCE = ("8.3", "8.2", "8.1", "8.0")
DEFAULT_PHP = "7.4"
FEDORA_DEFAULT_PHP = "8.2"

_DEBIAN_DRIVER = {
    DbEngine.MYSQL: "mysql",
    DbEngine.MARIADB: "mysql",
    DbEngine.PERCONA: "mysql",
    DbEngine.POSTGRESQL: "pgsql",
    DbEngine.SQLITE: "sqlite3",
    DbEngine.MONGODB: "mongodb",
    DbEngine.ORACLE_XE: None,
}

_RHEL_DRIVER = {
    DbEngine.MYSQL: "php-mysqlnd",
    DbEngine.MARIADB: "php-mysqlnd",
    DbEngine.PERCONA: "php-mysqlnd",
    DbEngine.POSTGRESQL: "php-pgsql",
    DbEngine.SQLITE: "php-pdo",
    DbEngine.MONGODB: "php-pecl-mongodb",
    DbEngine.ORACLE_XE: None,
}

DEBIAN_EXTENSIONS = ("cli", "gd", "curl", "mbstring", "xml", "zip")
RHEL_EXTENSIONS = ("php-cli", "php-gd", "php-curl", "php-mbstring", "php-xml", "php-zip", "php-json", "php-opcache")


class RuntimeVersionResolver:
    """Pick the newest PHP version the platform's repositories offer."""

    def __init__(self, runner: CommandRunner, facts: PlatformFacts):
        self.runner = runner
        self.facts = facts

    def fallback(self) -> str:
        return FEDORA_DEFAULT_PHP if self.facts.distro_id == "fedora" else DEFAULT_PHP

    def _available(self, version: str) -> bool:
        if self.facts.is_debian:
            return self.runner.run(["apt-cache", "show", f"php{version}"]).ok
        return self.runner.run([self.facts.package_tool, "module", "info", f"php:remi-{version}"]).ok

    def resolve(self) -> str:
        """Probe the preference list.

        Returns:
            First available version, or the platform fallback.
        """
        for version in PHP_PREFERENCE:
            if self._available(version):
                logger.info("resolved php version", version=version)
                return version
        version = self.fallback()
        logger.info("no preferred php version available, using fallback", version=version)
        return version


def fpm_service_name(facts: PlatformFacts, php_version: str) -> str:
    return f"php{php_version}-fpm" if facts.is_debian else "php-fpm"


def remi_release_url(facts: PlatformFacts) -> str:
    major = facts.version_id.split(".")[0] or "9"
    if facts.distro_id == "fedora":
        return f"https://rpms.remirepo.net/fedora/remi-release-{major}.rpm"
    return f"https://rpms.remirepo.net/enterprise/remi-release-{major}.rpm"


class RuntimeInstaller(Step):
    """Install PHP, extensions, and the worker model for the web server."""

    name = "PHP Runtime"

    def debian_packages(self, ctx: InstallContext) -> list[str]:
        v = ctx.config.php_version
        packages = [f"php{v}"] + [f"php{v}-{ext}" for ext in DEBIAN_EXTENSIONS]
        engine = effective_db_engine(ctx.config, ctx.facts)
        driver = _DEBIAN_DRIVER[engine]
        if driver:
            packages.append(f"php{v}-{driver}")
        if engine == DbEngine.SQLITE:
            packages.append("sqlite3")
        if ctx.config.web_server == WebServer.APACHE:
            packages.append(f"libapache2-mod-php{v}")
        else:
            packages.append(f"php{v}-fpm")
        return packages

    def rhel_packages(self, ctx: InstallContext) -> list[str]:
        packages = list(RHEL_EXTENSIONS)
        engine = effective_db_engine(ctx.config, ctx.facts)
        driver = _RHEL_DRIVER[engine]
        if driver:
            packages.append(driver)
        if engine == DbEngine.SQLITE:
            packages.append("sqlite")
        packages.append("php" if ctx.config.web_server == WebServer.APACHE else "php-fpm")
        return packages

    def _enable_remi_stream(self, ctx: InstallContext) -> None:
        ctx.packages.install([remi_release_url(ctx.facts)])
        tool = ctx.facts.package_tool
        stream = f"php:remi-{ctx.config.php_version}"
        ctx.runner.run([tool, "module", "reset", "php", "-y"])
        result = ctx.runner.run([tool, "module", "enable", stream, "-y"])
        if not result.ok:
            raise PackageInstallFailed([stream], result.describe())

    def run(self, ctx: InstallContext) -> None:
        # Already-present packages are skipped by the package manager
        if ctx.facts.is_debian:
            ctx.packages.install(self.debian_packages(ctx))
        else:
            self._enable_remi_stream(ctx)
            ctx.packages.install(self.rhel_packages(ctx))

        if ctx.config.web_server != WebServer.APACHE:
            service = fpm_service_name(ctx.facts, ctx.config.php_version)
            try:
                ctx.services.enable(service, fatal=False)
            except ServiceControlFailed as e:
                ctx.warn(f"PHP-FPM not started: {e.message}", service=service)

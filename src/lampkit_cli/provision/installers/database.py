"""Database engine installation and initial credential setup.

Dispatch is table-driven over every DbEngine member. SQL carrying the
password always travels on stdin; an existing root password is passed
through the MYSQL_PWD environment variable, never argv.
"""

from __future__ import annotations

from collections.abc import Callable

import httpx

from lampkit_cli.shared.logging import get_logger

from .. import templates
from ..context import InstallContext
from ..errors import CompatibilityError, CompatibilityViolation, ServiceControlFailed
from ..files import write_if_changed
from ..models import DbEngine, effective_db_engine
from ..validator import RULE_ORACLE_XE
from .base import Step

logger = get_logger(__name__)

MYSQL_FAMILY_PACKAGES = {
    DbEngine.MARIADB: "mariadb-server",
    DbEngine.MYSQL: "mysql-server",
    DbEngine.PERCONA: "percona-server-server",
}

SOCKET_AUTH_PLUGINS = frozenset({"unix_socket", "auth_socket"})

ROOT_PLUGIN_QUERY = "SELECT plugin FROM mysql.user WHERE user='root' AND host='localhost';"

MONGODB_KEYRING = "/usr/share/keyrings/mongodb-server.gpg"
MONGODB_APT_LIST = f"/etc/apt/sources.list.d/mongodb-org-{templates.MONGODB_VERSION}.list"
MONGODB_YUM_REPO = f"/etc/yum.repos.d/mongodb-org-{templates.MONGODB_VERSION}.repo"


class DatabaseInstaller(Step):
    """Install the selected engine and secure its administrative account."""

    name = "Database"

    def __init__(self) -> None:
        self._handlers: dict[DbEngine, Callable[[InstallContext, DbEngine], None]] = {
            DbEngine.MYSQL: self._install_mysql_family,
            DbEngine.MARIADB: self._install_mysql_family,
            DbEngine.PERCONA: self._install_mysql_family,
            DbEngine.POSTGRESQL: self._install_postgresql,
            DbEngine.SQLITE: self._install_sqlite,
            DbEngine.MONGODB: self._install_mongodb,
            DbEngine.ORACLE_XE: self._reject_oracle_xe,
        }

    @property
    def handlers(self) -> dict[DbEngine, Callable[[InstallContext, DbEngine], None]]:
        return dict(self._handlers)

    def run(self, ctx: InstallContext) -> None:
        engine = effective_db_engine(ctx.config, ctx.facts)
        if engine != ctx.config.db_engine:
            logger.info(
                "engine not packaged on this platform, substituting",
                requested=ctx.config.db_engine.value,
                engine=engine.value,
            )
        self._handlers[engine](ctx, engine)

    # MySQL family

    def _install_mysql_family(self, ctx: InstallContext, engine: DbEngine) -> None:
        package = MYSQL_FAMILY_PACKAGES[engine]
        if engine == DbEngine.MARIADB and ctx.facts.distro_id == "linuxmint":
            self._repair_mariadb_common(ctx, package)
        ctx.packages.install([package])

        service = ctx.facts.db_service_name(engine)
        ctx.services.enable(service, fatal=True)
        self._secure_mysql(ctx, service)

    def _repair_mariadb_common(self, ctx: InstallContext, package: str) -> None:
        """Reinstall mariadb-common, whose post-install script fails on Linux Mint."""
        if ctx.packages.is_installed(package):
            return
        logger.info("reinstalling mariadb-common before mariadb-server")
        env = {"DEBIAN_FRONTEND": "noninteractive"}
        ctx.runner.run(["apt-get", "update"], env=env)
        result = ctx.runner.run(["apt-get", "install", "--reinstall", "-y", "mariadb-common"], env=env)
        if result.ok:
            result = ctx.runner.run(["dpkg", "--configure", "-a"], env=env)
        if not result.ok:
            ctx.warn(f"mariadb-common repair failed ({result.describe()})")
            ctx.packages.bootstrap_repositories()

    def root_auth_plugin(self, ctx: InstallContext) -> str | None:
        """Read the root account's auth plugin from the live server.

        Returns:
            Plugin name, or None when the server refused a socket login.
        """
        result = ctx.runner.run(["mysql", "-N", "-B", "-u", "root", "-e", ROOT_PLUGIN_QUERY])
        if not result.ok:
            return None
        lines = result.output.splitlines()
        return lines[0].strip() if lines else None

    def _secure_mysql(self, ctx: InstallContext, service: str) -> None:
        credentials = ctx.config.credentials
        sql = templates.render_mysql_secure_sql(credentials.db_password)
        plugin = self.root_auth_plugin(ctx)

        if plugin in SOCKET_AUTH_PLUGINS:
            logger.info("securing database root account over socket", plugin=plugin)
            result = ctx.runner.run(["mysql", "-u", "root"], input=sql)
            if result.ok:
                return
        else:
            logger.info("securing database root account with password auth", plugin=plugin or "unknown")
            # A previous run may already have set the configured password
            candidates = [credentials.current_root_password, credentials.db_password, None]
            for password in dict.fromkeys(candidates):
                env = {"MYSQL_PWD": password} if password else None
                result = ctx.runner.run(["mysql", "-u", "root"], input=sql, env=env)
                if result.ok:
                    return

        raise ServiceControlFailed(
            service,
            "secure the root account of",
            fatal=True,
            detail=result.describe(),
        )

    # Other engines

    def _install_postgresql(self, ctx: InstallContext, engine: DbEngine) -> None:
        if ctx.facts.is_debian:
            ctx.packages.install(["postgresql", "postgresql-contrib"])
        else:
            ctx.packages.install(["postgresql-server", "postgresql-contrib"])
            if not ctx.path("/var/lib/pgsql/data/PG_VERSION").exists():
                result = ctx.runner.run(["postgresql-setup", "--initdb"])
                if not result.ok:
                    raise ServiceControlFailed("postgresql", "initialize", fatal=True, detail=result.describe())

        ctx.services.enable("postgresql", fatal=True)
        result = ctx.runner.run(
            ["runuser", "-u", "postgres", "--", "psql", "-q", "-v", "ON_ERROR_STOP=1"],
            input=templates.render_postgres_password_sql(ctx.config.credentials.db_password),
        )
        if not result.ok:
            raise ServiceControlFailed(
                "postgresql", "set the password of", fatal=True, detail=result.describe()
            )

    def _install_sqlite(self, ctx: InstallContext, engine: DbEngine) -> None:
        logger.info("sqlite is file-based, no server to install")

    def _install_mongodb(self, ctx: InstallContext, engine: DbEngine) -> None:
        if ctx.facts.is_debian:
            self._register_mongodb_apt(ctx)
        else:
            write_if_changed(ctx.path(MONGODB_YUM_REPO), templates.render_mongodb_yum_repo())
        ctx.packages.install(["mongodb-org"])
        ctx.services.enable("mongod", fatal=True)

    def _register_mongodb_apt(self, ctx: InstallContext) -> None:
        keyring = ctx.path(MONGODB_KEYRING)
        if not keyring.exists():
            key_file = ctx.temp.register(ctx.path("/tmp/mongodb-server.asc"))
            try:
                ctx.fetch(templates.MONGODB_KEY_URL, key_file)
            except httpx.HTTPError as e:
                ctx.warn(f"MongoDB signing key download failed ({e})")
            else:
                keyring.parent.mkdir(parents=True, exist_ok=True)
                result = ctx.runner.run(
                    ["gpg", "--batch", "--yes", "--dearmor", "-o", str(keyring), str(key_file)]
                )
                if not result.ok:
                    ctx.warn(f"MongoDB signing key import failed ({result.describe()})")

        codename = ctx.runner.run(["lsb_release", "-sc"]).output or "jammy"
        changed = write_if_changed(ctx.path(MONGODB_APT_LIST), templates.render_mongodb_apt_list(codename))
        if changed:
            ctx.runner.run(["apt-get", "update"], env={"DEBIAN_FRONTEND": "noninteractive"})

    def _reject_oracle_xe(self, ctx: InstallContext, engine: DbEngine) -> None:
        raise CompatibilityError(
            [CompatibilityViolation(RULE_ORACLE_XE, "Oracle XE cannot be provisioned automatically")]
        )

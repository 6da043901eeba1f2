"""Value objects for a provisioning run.

`Configuration` is assembled once (from prompts or an answers file) and
never mutated afterwards. `PlatformFacts` is computed once by the platform
probe. Installers read both; neither holds any mutable state.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path

DEFAULT_DOC_ROOT = "/var/www/html"
DEFAULT_ALT_SSH_PORT = 2222
DEFAULT_DEPLOY_USER = "deploy"


class Mode(Enum):
    """Operation mode."""

    INSTALL = "install"
    UPGRADE = "upgrade"
    UNINSTALL = "uninstall"


class InstallProfile(Enum):
    """Installation profile."""

    STANDARD = "standard"  # Apache + MariaDB + PHP + phpMyAdmin
    ADVANCED = "advanced"  # Every axis selectable


class DbEngine(Enum):
    """Database engine."""

    MYSQL = "MySQL"
    MARIADB = "MariaDB"
    POSTGRESQL = "PostgreSQL"
    SQLITE = "SQLite"
    PERCONA = "Percona"
    MONGODB = "MongoDB"
    ORACLE_XE = "OracleXE"

    @property
    def mysql_family(self) -> bool:
        return self in (DbEngine.MYSQL, DbEngine.MARIADB, DbEngine.PERCONA)


class WebServer(Enum):
    """Web server."""

    NGINX = "Nginx"
    APACHE = "Apache"
    CADDY = "Caddy"
    LIGHTTPD = "Lighttpd"


class Cache(Enum):
    """Caching layer."""

    REDIS = "Redis"
    MEMCACHED = "Memcached"
    VARNISH = "Varnish"
    NONE = "None"


class Queue(Enum):
    """Message queue."""

    RABBITMQ = "RabbitMQ"
    KAFKA = "Kafka"
    NONE = "None"


class PackageFamily(Enum):
    """Distribution family sharing a package manager."""

    DEBIAN = "debian"
    RHEL = "rhel"


class FirewallTool(Enum):
    """Host firewall front-end."""

    UFW = "ufw"
    FIREWALLD = "firewalld"


@dataclass(frozen=True)
class Credentials:
    """Database credentials. Values never appear in repr."""

    db_password: str = field(repr=False)
    current_root_password: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class Configuration:
    """Operator choices for one run."""

    mode: Mode
    install_profile: InstallProfile
    credentials: Credentials
    domains: tuple[str, ...]
    php_version: str
    doc_root: str = DEFAULT_DOC_ROOT
    db_engine: DbEngine = DbEngine.MARIADB
    web_server: WebServer = WebServer.APACHE
    cache: Cache = Cache.NONE
    queue: Queue = Queue.NONE
    ftp_enabled: bool = False
    utils_enabled: bool = False
    ssh_hardened: bool = False
    ssh_deploy_enabled: bool = False
    generate_docker: bool = False
    generate_ansible: bool = False
    ssh_allowed_users: tuple[str, ...] = ()
    admin_panel_enabled: bool = False
    deploy_user: str = DEFAULT_DEPLOY_USER
    deploy_ssh_key: str | None = field(default=None, repr=False)
    admin_email: str | None = None
    alt_ssh_port: int = DEFAULT_ALT_SSH_PORT
    artifact_dir: Path = field(default_factory=Path.cwd)

    def __post_init__(self) -> None:
        cleaned = tuple(d.strip() for d in self.domains if d and d.strip())
        object.__setattr__(self, "domains", cleaned)
        if not self.doc_root.startswith("/"):
            raise ValueError(f"Document root must be an absolute path: {self.doc_root}")

    @classmethod
    def standard(
        cls,
        mode: Mode,
        credentials: Credentials,
        domains: tuple[str, ...] | list[str],
        php_version: str,
        doc_root: str = DEFAULT_DOC_ROOT,
        **overrides,
    ) -> Configuration:
        """Build the pinned Standard profile.

        Apache + MariaDB + resolved PHP + phpMyAdmin, no cache, queue, FTP,
        utilities, hardened SSH, or generated artifacts.
        """
        return cls(
            mode=mode,
            install_profile=InstallProfile.STANDARD,
            credentials=credentials,
            domains=tuple(domains),
            php_version=php_version,
            doc_root=doc_root,
            db_engine=DbEngine.MARIADB,
            web_server=WebServer.APACHE,
            cache=Cache.NONE,
            queue=Queue.NONE,
            admin_panel_enabled=True,
            **overrides,
        )

    @property
    def contact_email(self) -> str:
        """Email handed to the ACME client."""
        if self.admin_email:
            return self.admin_email
        return f"admin@{self.domains[0]}" if self.domains else "admin@localhost"

    def domain_root(self, domain: str) -> str:
        """Document root of a single domain."""
        return f"{self.doc_root.rstrip('/')}/{domain}"


@dataclass(frozen=True)
class PlatformFacts:
    """Derived, read-only facts about the host."""

    distro_id: str
    package_family: PackageFamily
    firewall_tool: FirewallTool
    apache_service_name: str
    java_package_name: str
    package_tool: str = "apt-get"
    ssh_service_name: str = "ssh"
    admin_group: str = "sudo"
    version_id: str = ""
    pretty_name: str = ""

    @property
    def is_debian(self) -> bool:
        return self.package_family == PackageFamily.DEBIAN

    @property
    def is_rhel(self) -> bool:
        return self.package_family == PackageFamily.RHEL

    def web_user_for(self, web_server: WebServer) -> str:
        """System user that owns served files."""
        if self.is_debian:
            return "www-data"
        return {
            WebServer.APACHE: "apache",
            WebServer.NGINX: "nginx",
            WebServer.CADDY: "caddy",
            WebServer.LIGHTTPD: "lighttpd",
        }[web_server]

    def web_service_name(self, web_server: WebServer) -> str:
        """systemd unit of the web server."""
        if web_server == WebServer.APACHE:
            return self.apache_service_name
        return web_server.value.lower()

    def db_service_name(self, engine: DbEngine) -> str | None:
        """systemd unit of a database engine (None for file-based engines)."""
        return {
            DbEngine.MARIADB: "mariadb",
            DbEngine.MYSQL: "mysql" if self.is_debian else "mysqld",
            DbEngine.PERCONA: "mysql",
            DbEngine.POSTGRESQL: "postgresql",
            DbEngine.MONGODB: "mongod",
            DbEngine.SQLITE: None,
            DbEngine.ORACLE_XE: None,
        }[engine]


def effective_db_engine(config: Configuration, facts: PlatformFacts) -> DbEngine:
    """Engine actually installed on this platform.

    MySQL is not packaged on RHEL-family repositories; MariaDB takes its place.
    """
    if config.db_engine == DbEngine.MYSQL and facts.is_rhel:
        return DbEngine.MARIADB
    return config.db_engine


def resolve_for_platform(config: Configuration, facts: PlatformFacts) -> Configuration:
    """Return a configuration with platform substitutions applied."""
    engine = effective_db_engine(config, facts)
    if engine == config.db_engine:
        return config
    return replace(config, db_engine=engine)


@dataclass(frozen=True)
class Progress:
    """Position in a run after a step completes."""

    current: int
    total: int
    step: str

    @property
    def fraction(self) -> float:
        return self.current / self.total if self.total else 1.0

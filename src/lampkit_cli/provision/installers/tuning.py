"""Performance tuning for PHP, the web server, and the database.

Each edited file gets a one-time `.bak.lampkit` copy before its first change.
Services are restarted only when a file actually changed; restart failures
are warnings.
"""

from __future__ import annotations

from pathlib import Path

from lampkit_cli.shared.logging import get_logger

from .. import templates
from ..context import InstallContext
from ..errors import ServiceControlFailed
from ..files import (
    append_block_once,
    backup_once,
    edit_file,
    insert_after_once,
    set_directive,
    set_ini_value,
    set_section_value,
)
from ..models import DbEngine, WebServer, effective_db_engine
from .base import Step
from .runtime import fpm_service_name

logger = get_logger(__name__)

MYSQL_TUNING = (
    ("innodb_buffer_pool_size", "256M"),
    ("max_connections", "150"),
    ("thread_cache_size", "50"),
)

POSTGRES_TUNING = (
    ("shared_buffers", "256MB"),
    ("effective_cache_size", "2GB"),
)

APACHE_MODULES = ("headers", "deflate", "http2")


def php_ini_paths(ctx: InstallContext) -> list[Path]:
    """php.ini files of the SAPIs in use that exist on the host."""
    if ctx.facts.is_debian:
        v = ctx.config.php_version
        sapi = "apache2" if ctx.config.web_server == WebServer.APACHE else "fpm"
        candidates = [f"/etc/php/{v}/{sapi}/php.ini", f"/etc/php/{v}/cli/php.ini"]
    else:
        candidates = ["/etc/php.ini"]
    return [ctx.path(p) for p in candidates if ctx.path(p).exists()]


def tune_file(path: Path, transform) -> bool:
    """Back up once, then apply transform. Returns True on change."""
    original = path.read_text(encoding="utf-8")
    if transform(original) == original:
        return False
    backup_once(path)
    return edit_file(path, transform)


def restart_quietly(ctx: InstallContext, service: str) -> None:
    try:
        ctx.services.restart(service)
    except ServiceControlFailed as e:
        ctx.warn(e.message, service=service)


def _php_production(text: str) -> str:
    text = set_ini_value(text, "expose_php", "Off")
    text = set_ini_value(text, "display_errors", "Off")
    return append_block_once(text, templates.OPCACHE_MARKER, templates.OPCACHE_BLOCK)


def _nginx_gzip(text: str) -> str:
    return insert_after_once(text, "http {", templates.NGINX_GZIP_MARKER, templates.NGINX_GZIP_BLOCK)


def _apache_protocols(text: str) -> str:
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith("Protocols ") and " h2" in stripped:
            return text
    key, _, value = templates.APACHE_PROTOCOLS.partition(" ")
    return set_directive(text, key, value)


def _mysql_tuning(text: str) -> str:
    for key, value in MYSQL_TUNING:
        text = set_section_value(text, "mysqld", key, value)
    return text


def _postgres_tuning(text: str) -> str:
    for key, value in POSTGRES_TUNING:
        text = set_ini_value(text, key, value, comment="#")
    return text


class PerformanceTuner(Step):
    """Production defaults for PHP, the web server, and the database."""

    name = "Performance Tuning"

    def run(self, ctx: InstallContext) -> None:
        self._tune_php(ctx)
        {
            WebServer.NGINX: self._tune_nginx,
            WebServer.APACHE: self._tune_apache,
            WebServer.CADDY: lambda ctx: None,
            WebServer.LIGHTTPD: lambda ctx: None,
        }[ctx.config.web_server](ctx)

        engine = effective_db_engine(ctx.config, ctx.facts)
        if engine.mysql_family:
            self._tune_mysql(ctx, engine)
        elif engine == DbEngine.POSTGRESQL:
            self._tune_postgres(ctx)

    def _tune_php(self, ctx: InstallContext) -> None:
        paths = php_ini_paths(ctx)
        if not paths:
            ctx.warn("php.ini not found; PHP tuning skipped")
            return
        changed = False
        for path in paths:
            changed |= tune_file(path, _php_production)
        if changed and ctx.config.web_server != WebServer.APACHE:
            restart_quietly(ctx, fpm_service_name(ctx.facts, ctx.config.php_version))

    def _tune_nginx(self, ctx: InstallContext) -> None:
        conf = ctx.path("/etc/nginx/nginx.conf")
        if not conf.exists():
            ctx.warn("nginx.conf not found; gzip tuning skipped")
            return
        if tune_file(conf, _nginx_gzip):
            try:
                ctx.services.reload("nginx")
            except ServiceControlFailed as e:
                ctx.warn(e.message, service="nginx")

    def _tune_apache(self, ctx: InstallContext) -> None:
        changed = False
        if ctx.facts.is_debian:
            conf = ctx.path("/etc/apache2/apache2.conf")
            for module in APACHE_MODULES:
                if ctx.runner.run(["a2query", "-m", module]).ok:
                    continue
                result = ctx.runner.run(["a2enmod", module])
                if result.ok:
                    changed = True
                else:
                    ctx.warn(f"Could not enable Apache module {module} ({result.describe()})")
        else:
            conf = ctx.path("/etc/httpd/conf/httpd.conf")
            changed = bool(ctx.packages.install(["mod_http2"]))

        if not conf.exists():
            ctx.warn(f"{conf} not found; Apache Protocols not updated")
        else:
            changed |= tune_file(conf, _apache_protocols)
        if changed:
            restart_quietly(ctx, ctx.facts.apache_service_name)

    def _tune_mysql(self, ctx: InstallContext, engine: DbEngine) -> None:
        conf = ctx.path("/etc/mysql/my.cnf" if ctx.facts.is_debian else "/etc/my.cnf")
        if not conf.exists():
            ctx.warn(f"MySQL configuration not found at {conf}")
            return
        if tune_file(conf, _mysql_tuning):
            restart_quietly(ctx, ctx.facts.db_service_name(engine))

    def _tune_postgres(self, ctx: InstallContext) -> None:
        if ctx.facts.is_debian:
            found = sorted(ctx.path("/etc/postgresql").glob("*/main/postgresql.conf"))
            conf = found[0] if found else None
        else:
            conf = ctx.path("/var/lib/pgsql/data/postgresql.conf")
        if conf is None or not conf.exists():
            ctx.warn("postgresql.conf not found; PostgreSQL tuning skipped")
            return
        if tune_file(conf, _postgres_tuning):
            restart_quietly(ctx, "postgresql")

"""phpMyAdmin installation."""

from __future__ import annotations

from lampkit_cli.shared.logging import get_logger

from .. import templates
from ..context import InstallContext
from ..models import Configuration, effective_db_engine
from .base import Step

logger = get_logger(__name__)


class AdminPanelInstaller(Step):
    """Install phpMyAdmin for MySQL-family engines."""

    name = "phpMyAdmin"

    def enabled(self, config: Configuration) -> bool:
        return config.admin_panel_enabled

    def run(self, ctx: InstallContext) -> None:
        engine = effective_db_engine(ctx.config, ctx.facts)
        if not engine.mysql_family:
            ctx.warn(f"phpMyAdmin skipped: it needs a MySQL-family engine, not {engine.value}")
            return

        if ctx.facts.is_debian:
            if ctx.packages.is_installed("phpmyadmin"):
                return
            preseed = templates.render_phpmyadmin_preseed(
                ctx.config.credentials.db_password, ctx.config.web_server
            )
            result = ctx.runner.run(["debconf-set-selections"], input=preseed)
            if not result.ok:
                ctx.warn(f"phpMyAdmin preseed failed ({result.describe()})")
            ctx.packages.install(["phpmyadmin"])
        else:
            if ctx.packages.is_installed("phpMyAdmin"):
                return
            # phpMyAdmin ships in EPEL
            ctx.packages.bootstrap_repositories()
            ctx.packages.install(["phpMyAdmin"])
        logger.info("phpMyAdmin installed")

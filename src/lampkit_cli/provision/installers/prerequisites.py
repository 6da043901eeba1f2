"""Base system packages and repositories."""

from __future__ import annotations

from lampkit_cli.shared.logging import get_logger

from ..context import InstallContext
from .base import Step

logger = get_logger(__name__)

DEBIAN_BASE = ["software-properties-common", "openssh-server", "ufw", "fail2ban"]
RHEL_BASE = ["openssh-server", "firewalld", "fail2ban"]
UTILS = ["git", "curl", "htop", "zip", "unzip"]


class PrerequisitesInstaller(Step):
    """Refresh the system and install base packages."""

    name = "Prerequisites"

    def run(self, ctx: InstallContext) -> None:
        ctx.packages.update()
        if ctx.facts.is_debian:
            ctx.packages.install(DEBIAN_BASE)
        else:
            # EPEL carries fail2ban on the RHEL family
            ctx.packages.bootstrap_repositories()
            ctx.packages.install(RHEL_BASE)
        if ctx.config.utils_enabled:
            ctx.packages.install(UTILS)

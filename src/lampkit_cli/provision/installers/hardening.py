"""Security hardening for PHP, automatic updates, fail2ban, and sshd.

This module provides:
- SecurityHardener: disable_functions, unattended updates, fail2ban
- SshHardener: in-place sshd_config edits behind a timestamped backup
"""

from __future__ import annotations

from lampkit_cli.shared.logging import get_logger

from .. import templates
from ..context import InstallContext
from ..errors import ServiceControlFailed
from ..files import backup_timestamped, set_directive, set_ini_value
from ..models import Configuration
from .base import Step
from .tuning import php_ini_paths, tune_file

logger = get_logger(__name__)

SSHD_CONFIG = "/etc/ssh/sshd_config"


def ssh_directives(config: Configuration) -> list[tuple[str, str]]:
    """Hardened sshd settings in the order they are applied."""
    directives = [
        ("Protocol", "2"),
        ("PermitRootLogin", "no"),
        ("PasswordAuthentication", "no"),
        ("Port", str(config.alt_ssh_port)),
        ("X11Forwarding", "no"),
        ("AllowAgentForwarding", "no"),
        ("PermitEmptyPasswords", "no"),
        ("ClientAliveInterval", "300"),
        ("ClientAliveCountMax", "2"),
        ("LoginGraceTime", "30"),
        ("Ciphers", templates.SSH_CIPHERS),
        ("MACs", templates.SSH_MACS),
        ("KexAlgorithms", templates.SSH_KEX),
    ]
    if config.ssh_allowed_users:
        directives.append(("AllowUsers", " ".join(config.ssh_allowed_users)))
    return directives


def _disable_functions(text: str) -> str:
    return set_ini_value(text, "disable_functions", templates.DISABLE_FUNCTIONS)


class SshHardener(Step):
    """Rewrite sshd_config with hardened directives."""

    name = "SSH Hardening"

    def enabled(self, config: Configuration) -> bool:
        return config.ssh_hardened

    def run(self, ctx: InstallContext) -> None:
        sshd_config = ctx.path(SSHD_CONFIG)
        if not sshd_config.exists():
            ctx.warn(f"{SSHD_CONFIG} not found; SSH hardening skipped")
            return

        original = sshd_config.read_text(encoding="utf-8")
        updated = original
        for key, value in ssh_directives(ctx.config):
            updated = set_directive(updated, key, value)
        if updated == original:
            logger.info("sshd_config already hardened")
            return

        backup = backup_timestamped(sshd_config)
        sshd_config.write_text(updated, encoding="utf-8")
        logger.info("sshd_config hardened", backup=str(backup), port=ctx.config.alt_ssh_port)

        try:
            ctx.services.reload(ctx.facts.ssh_service_name)
        except ServiceControlFailed as e:
            ctx.warn(e.message, service=ctx.facts.ssh_service_name)


class SecurityHardener(Step):
    """PHP function blacklist, automatic updates, fail2ban, optional sshd."""

    name = "Security Hardening"

    def __init__(self, ssh: SshHardener | None = None):
        self.ssh = ssh or SshHardener()

    def run(self, ctx: InstallContext) -> None:
        self._harden_php(ctx)
        self._automatic_updates(ctx)
        self._fail2ban(ctx)
        if self.ssh.enabled(ctx.config):
            self.ssh.run(ctx)

    def _harden_php(self, ctx: InstallContext) -> None:
        paths = php_ini_paths(ctx)
        if not paths:
            ctx.warn("php.ini not found; PHP hardening skipped")
            return
        for path in paths:
            if tune_file(path, _disable_functions):
                logger.info("restricted PHP functions", path=str(path))

    def _automatic_updates(self, ctx: InstallContext) -> None:
        if ctx.facts.is_debian:
            ctx.packages.install(["unattended-upgrades"])
            result = ctx.runner.run(
                ["dpkg-reconfigure", "-plow", "unattended-upgrades"],
                env={"DEBIAN_FRONTEND": "noninteractive"},
            )
            if not result.ok:
                ctx.warn(f"unattended-upgrades reconfiguration failed ({result.describe()})")
            return

        if ctx.facts.package_tool == "dnf":
            package, service = "dnf-automatic", "dnf-automatic.timer"
        else:
            package, service = "yum-cron", "yum-cron"
        ctx.packages.install([package])
        try:
            ctx.services.enable(service, fatal=False)
        except ServiceControlFailed as e:
            ctx.warn(e.message, service=service)

    def _fail2ban(self, ctx: InstallContext) -> None:
        try:
            ctx.services.enable("fail2ban", fatal=False)
            ctx.services.restart("fail2ban")
        except ServiceControlFailed as e:
            ctx.warn(e.message, service="fail2ban")

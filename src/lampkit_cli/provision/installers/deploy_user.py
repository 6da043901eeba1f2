"""Deployment user and standard-mode SSH port."""

from __future__ import annotations

import os

from lampkit_cli.shared.logging import get_logger

from ..context import InstallContext
from ..errors import ProvisionError, ServiceControlFailed
from ..files import backup_once, edit_file, set_directive, write_if_changed
from .base import Step
from .hardening import SSHD_CONFIG

logger = get_logger(__name__)


class DeploymentUserSetup(Step):
    """Ensure sshd, move it to the alternate port, create the deploy user."""

    name = "Deployment User"

    def run(self, ctx: InstallContext) -> None:
        ctx.packages.install(["openssh-server"])
        if not ctx.config.ssh_hardened:
            self._move_ssh_port(ctx)
        if ctx.config.ssh_deploy_enabled:
            self._ensure_user(ctx)
            self._authorize_key(ctx)

    def _move_ssh_port(self, ctx: InstallContext) -> None:
        sshd_config = ctx.path(SSHD_CONFIG)
        if not sshd_config.exists():
            ctx.warn(f"{SSHD_CONFIG} not found; SSH port unchanged")
            return
        port = str(ctx.config.alt_ssh_port)
        backup_once(sshd_config)
        if not edit_file(sshd_config, lambda text: set_directive(text, "Port", port)):
            return
        logger.info("sshd moved to alternate port", port=port)
        service = ctx.facts.ssh_service_name
        try:
            ctx.services.restart(service)
        except ServiceControlFailed as e:
            ctx.warn(e.message, service=service)

    def _ensure_user(self, ctx: InstallContext) -> None:
        user = ctx.config.deploy_user
        if ctx.runner.run(["id", user]).ok:
            logger.info("deployment user exists", user=user)
        else:
            if ctx.facts.is_debian:
                argv = ["adduser", "--disabled-password", "--gecos", "", user]
            else:
                argv = ["useradd", "-m", user]
            result = ctx.runner.run(argv)
            if not result.ok:
                raise ProvisionError(f"Failed to create user {user}: {result.describe()}")
            logger.info("created deployment user", user=user)

        group = ctx.facts.admin_group
        groups = ctx.runner.run(["id", "-nG", user]).output.split()
        if group not in groups:
            result = ctx.runner.run(["usermod", "-aG", group, user])
            if not result.ok:
                ctx.warn(f"Could not add {user} to {group} ({result.describe()})")

    def _authorize_key(self, ctx: InstallContext) -> None:
        user = ctx.config.deploy_user
        ssh_dir = ctx.path(f"/home/{user}/.ssh")
        ssh_dir.mkdir(parents=True, exist_ok=True)
        os.chmod(ssh_dir, 0o700)

        key = (ctx.config.deploy_ssh_key or "").strip()
        if key:
            write_if_changed(ssh_dir / "authorized_keys", key + "\n", mode=0o600)
            logger.info("authorized deployment key", user=user)
        else:
            logger.info("no deployment key supplied", user=user)

        result = ctx.runner.run(["chown", "-R", f"{user}:{user}", str(ssh_dir)])
        if not result.ok:
            ctx.warn(f"Could not give {ssh_dir} to {user} ({result.describe()})")

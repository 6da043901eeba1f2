"""Host firewall configuration with ufw or firewalld."""

from __future__ import annotations

from lampkit_cli.shared.logging import get_logger

from ..context import InstallContext
from ..errors import ServiceControlFailed
from ..models import FirewallTool
from .base import Step

logger = get_logger(__name__)

WEB_SERVICES = ("http", "https")


def required_ports(ctx: InstallContext) -> list[str]:
    """Ports opened for the web server and the relocated SSH daemon."""
    return ["80/tcp", "443/tcp", f"{ctx.config.alt_ssh_port}/tcp"]


def _ufw_rules(status_output: str) -> set[str]:
    rules = set()
    for line in status_output.splitlines():
        fields = line.split()
        if len(fields) >= 2 and fields[1].upper() == "ALLOW":
            rules.add(fields[0])
    return rules


class FirewallInstaller(Step):
    """Open web and SSH ports, adding only the rules that are missing."""

    name = "Firewall"

    def run(self, ctx: InstallContext) -> None:
        if ctx.facts.firewall_tool == FirewallTool.UFW:
            self._configure_ufw(ctx)
        else:
            self._configure_firewalld(ctx)

    def _configure_ufw(self, ctx: InstallContext) -> None:
        status = ctx.runner.run(["ufw", "status"])
        existing = _ufw_rules(status.stdout)
        for port in required_ports(ctx):
            if port in existing:
                continue
            result = ctx.runner.run(["ufw", "allow", port])
            if not result.ok:
                ctx.warn(f"ufw could not allow {port} ({result.describe()})")
            else:
                logger.info("firewall rule added", tool="ufw", port=port)

        # Rules go in first so the SSH port is open before enforcement starts
        if "Status: active" not in status.stdout:
            result = ctx.runner.run(["ufw", "--force", "enable"])
            if not result.ok:
                ctx.warn(f"ufw could not be enabled ({result.describe()})")

        if "Status: active" not in ctx.runner.run(["ufw", "status"]).stdout:
            ctx.warn("ufw is not active after configuration")

    def _configure_firewalld(self, ctx: InstallContext) -> None:
        if not ctx.runner.run(["firewall-cmd", "--state"]).ok:
            try:
                ctx.services.enable("firewalld", fatal=False)
            except ServiceControlFailed as e:
                ctx.warn(e.message, service="firewalld")
                return

        ports = set(ctx.runner.run(["firewall-cmd", "--permanent", "--list-ports"]).stdout.split())
        services = set(ctx.runner.run(["firewall-cmd", "--permanent", "--list-services"]).stdout.split())
        changed = False
        for port in required_ports(ctx):
            if port not in ports:
                changed |= self._firewalld_add(ctx, f"--add-port={port}")
        for service in WEB_SERVICES:
            if service not in services:
                changed |= self._firewalld_add(ctx, f"--add-service={service}")

        if changed:
            result = ctx.runner.run(["firewall-cmd", "--reload"])
            if not result.ok:
                ctx.warn(f"firewalld reload failed ({result.describe()})")

        state = ctx.runner.run(["firewall-cmd", "--state"])
        if state.output != "running":
            ctx.warn("firewalld is not running after configuration")

    def _firewalld_add(self, ctx: InstallContext, rule: str) -> bool:
        result = ctx.runner.run(["firewall-cmd", "--permanent", rule])
        if not result.ok:
            ctx.warn(f"firewalld rejected {rule} ({result.describe()})")
            return False
        logger.info("firewall rule added", tool="firewalld", rule=rule)
        return True

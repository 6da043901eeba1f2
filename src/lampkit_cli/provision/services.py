"""systemd service control.

Service names are always resolved by the caller through PlatformFacts.
"""

from __future__ import annotations

from lampkit_cli.shared.logging import get_logger

from .errors import ServiceControlFailed
from .runner import CommandRunner

logger = get_logger(__name__)


class ServiceController:
    """Thin wrapper over systemctl."""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def _systemctl(self, action: str, service: str, *extra: str, fatal: bool = True) -> None:
        result = self.runner.run(["systemctl", action, *extra, service])
        if not result.ok:
            raise ServiceControlFailed(service, action, fatal=fatal, detail=result.describe())
        logger.info("service action", action=action, service=service)

    def enable(self, service: str, now: bool = True, fatal: bool = True) -> None:
        """Enable a service, starting it immediately by default."""
        extra = ("--now",) if now else ()
        self._systemctl("enable", service, *extra, fatal=fatal)

    def start(self, service: str, fatal: bool = True) -> None:
        self._systemctl("start", service, fatal=fatal)

    def stop(self, service: str, fatal: bool = False) -> None:
        self._systemctl("stop", service, fatal=fatal)

    def restart(self, service: str, fatal: bool = False) -> None:
        self._systemctl("restart", service, fatal=fatal)

    def reload(self, service: str, fatal: bool = False) -> None:
        self._systemctl("reload", service, fatal=fatal)

    def disable(self, service: str, fatal: bool = False) -> None:
        self._systemctl("disable", service, fatal=fatal)

    def is_active(self, service: str) -> bool:
        """Check whether a service is running. Never mutates."""
        return self.runner.run(["systemctl", "is-active", "--quiet", service]).ok

    def daemon_reload(self) -> None:
        result = self.runner.run(["systemctl", "daemon-reload"])
        if not result.ok:
            raise ServiceControlFailed("systemd", "daemon-reload", fatal=True, detail=result.describe())

    def stop_quietly(self, service: str) -> bool:
        """Stop a service, ignoring services that are absent or not running.

        Returns:
            True if systemctl reported success.
        """
        result = self.runner.run(["systemctl", "stop", service])
        if result.ok:
            logger.info("stopped service", service=service)
        else:
            logger.debug("service not stopped", service=service, error=result.describe())
        return result.ok

"""External process execution for provisioning.

This module is the single place where provisioning code calls
``subprocess.run``. Data passed on stdin (SQL carrying passwords,
debconf answers) is never logged and never placed in argv.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass

from lampkit_cli.shared.logging import get_logger

logger = get_logger(__name__)

# Exit status reported when the executable is missing
NOT_FOUND = 127


@dataclass
class CommandResult:
    """Outcome of one external command."""

    argv: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return self.stdout.strip()

    def describe(self) -> str:
        """Short failure description for error messages."""
        detail = self.stderr.strip() or self.stdout.strip()
        if detail:
            detail = detail.splitlines()[-1]
            return f"exit {self.returncode}: {detail}"
        return f"exit {self.returncode}"


class CommandRunner:
    """Run external commands as blocking subprocesses."""

    def __init__(self, timeout: float | None = None):
        """Initialize runner.

        Args:
            timeout: Per-command timeout in seconds (None waits forever).
        """
        self.timeout = timeout

    def run(
        self,
        argv: list[str],
        input: str | None = None,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """Run a command and capture its output.

        Args:
            argv: Command and arguments.
            input: Text fed to stdin. Never logged.
            env: Extra environment variables merged over os.environ. Values
                are never logged.

        Returns:
            CommandResult (a missing executable yields returncode 127).
        """
        logger.debug("run", argv=argv, stdin=input is not None, env_keys=sorted(env or {}))
        full_env = None
        if env:
            full_env = os.environ.copy()
            full_env.update(env)
        try:
            proc = subprocess.run(
                argv,
                input=input,
                capture_output=True,
                text=True,
                env=full_env,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            logger.debug("command not found", command=argv[0])
            return CommandResult(argv, NOT_FOUND, stderr=f"{argv[0]}: command not found")
        except subprocess.TimeoutExpired:
            logger.warning("command timed out", argv=argv, timeout=self.timeout)
            return CommandResult(argv, -1, stderr="timed out")

        result = CommandResult(argv, proc.returncode, proc.stdout or "", proc.stderr or "")
        if not result.ok:
            logger.debug("command failed", argv=argv, returncode=result.returncode)
        return result

    def which(self, name: str) -> str | None:
        """Locate an executable on PATH."""
        return shutil.which(name)

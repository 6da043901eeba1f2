"""Error taxonomy for provisioning.

Every error carries the process exit code the CLI reports for it.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

EXIT_OK = 0
EXIT_GENERIC = 1
EXIT_COMPATIBILITY = 2
EXIT_PACKAGE_MANAGER = 3
EXIT_UNSUPPORTED_PLATFORM = 4
EXIT_SERVICE_FAILURE = 5
EXIT_INTERRUPTED = 130


class ProvisionError(Exception):
    """Base class for provisioning failures."""

    exit_code = EXIT_GENERIC

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UnsupportedPlatform(ProvisionError):
    """OS identity unreadable or outside the Debian and RHEL families."""

    exit_code = EXIT_UNSUPPORTED_PLATFORM


@dataclass(frozen=True)
class CompatibilityViolation:
    """One rejected combination of configuration choices."""

    rule: str
    message: str

    def __str__(self) -> str:
        return self.message


class CompatibilityError(ProvisionError):
    """Configuration rejected before any mutation."""

    exit_code = EXIT_COMPATIBILITY

    def __init__(self, violations: Sequence[CompatibilityViolation]):
        self.violations = list(violations)
        summary = "; ".join(v.message for v in self.violations)
        super().__init__(f"Incompatible configuration: {summary}")


class PackageInstallFailed(ProvisionError):
    """Package install failed after repository bootstrap and retries."""

    exit_code = EXIT_PACKAGE_MANAGER

    def __init__(self, packages: Sequence[str], detail: str = ""):
        self.packages = list(packages)
        message = f"Failed to install packages: {' '.join(self.packages)}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class SystemUpdateFailed(ProvisionError):
    """Package index refresh or system upgrade failed."""

    exit_code = EXIT_PACKAGE_MANAGER


class ServiceControlFailed(ProvisionError):
    """A systemctl action failed.

    `fatal` marks failures of services later steps depend on.
    """

    exit_code = EXIT_SERVICE_FAILURE

    def __init__(self, service: str, action: str, fatal: bool = True, detail: str = ""):
        self.service = service
        self.action = action
        self.fatal = fatal
        message = f"Failed to {action} {service}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ConfirmationDeclined(ProvisionError):
    """Operator declined an irreversible action. Nothing was changed."""

    exit_code = EXIT_OK


class StepFailed(ProvisionError):
    """A step hit a filesystem, archive or network error."""

    def __init__(self, step: str, error: BaseException):
        self.step = step
        self.cause = error
        super().__init__(f"{step} failed: {type(error).__name__}: {error}")

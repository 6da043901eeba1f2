"""Provisioning core for lampkit.

This package provides:
1. Platform detection (PlatformProbe -> PlatformFacts)
2. Host adapters (CommandRunner, PackageManager, ServiceController)
3. Compatibility validation of a Configuration
4. The install/upgrade pipeline and the uninstaller
"""

from .context import InstallContext, TemporaryArtifacts
from .errors import (
    CompatibilityError,
    CompatibilityViolation,
    ConfirmationDeclined,
    PackageInstallFailed,
    ProvisionError,
    ServiceControlFailed,
    StepFailed,
    SystemUpdateFailed,
    UnsupportedPlatform,
)
from .models import (
    Cache,
    Configuration,
    Credentials,
    DbEngine,
    FirewallTool,
    InstallProfile,
    Mode,
    PackageFamily,
    PlatformFacts,
    Progress,
    Queue,
    WebServer,
    effective_db_engine,
    resolve_for_platform,
)
from .packages import PackageManager, RetryPolicy
from .pipeline import PipelineResult, ProvisioningPipeline, SystemUpdate
from .platform import PlatformProbe
from .runner import CommandResult, CommandRunner
from .services import ServiceController
from .uninstaller import UninstallPlan, Uninstaller, UninstallResult
from .validator import CompatibilityValidator

__all__ = [
    # Models
    "Mode",
    "InstallProfile",
    "DbEngine",
    "WebServer",
    "Cache",
    "Queue",
    "PackageFamily",
    "FirewallTool",
    "Credentials",
    "Configuration",
    "PlatformFacts",
    "Progress",
    "effective_db_engine",
    "resolve_for_platform",
    # Errors
    "ProvisionError",
    "UnsupportedPlatform",
    "CompatibilityError",
    "CompatibilityViolation",
    "PackageInstallFailed",
    "SystemUpdateFailed",
    "ServiceControlFailed",
    "ConfirmationDeclined",
    "StepFailed",
    # Host adapters
    "CommandRunner",
    "CommandResult",
    "PackageManager",
    "RetryPolicy",
    "ServiceController",
    "PlatformProbe",
    # Orchestration
    "InstallContext",
    "TemporaryArtifacts",
    "CompatibilityValidator",
    "ProvisioningPipeline",
    "PipelineResult",
    "SystemUpdate",
    "Uninstaller",
    "UninstallPlan",
    "UninstallResult",
]

"""Provisioning steps.

This package provides one Step per stage of the install sequence:
1. Prerequisites, PHP runtime, database
2. Optional FTP, cache, and message queue services
3. Web server, virtual hosts, phpMyAdmin
4. Tuning, firewall, hardening, deployment user
5. Optional Docker Compose and Ansible artifacts
"""

from .admin_panel import AdminPanelInstaller
from .artifacts import AnsiblePlaybookGenerator, DockerComposeGenerator
from .base import Step
from .database import DatabaseInstaller
from .deploy_user import DeploymentUserSetup
from .firewall import FirewallInstaller
from .hardening import SecurityHardener, SshHardener
from .prerequisites import PrerequisitesInstaller
from .runtime import RuntimeInstaller, RuntimeVersionResolver
from .services import CacheInstaller, FtpInstaller, QueueInstaller
from .tuning import PerformanceTuner
from .webserver import VirtualHostSetup, WebServerInstaller

__all__ = [
    "Step",
    # Core stack
    "PrerequisitesInstaller",
    "RuntimeInstaller",
    "RuntimeVersionResolver",
    "DatabaseInstaller",
    # Optional services
    "FtpInstaller",
    "CacheInstaller",
    "QueueInstaller",
    # Web
    "WebServerInstaller",
    "VirtualHostSetup",
    "AdminPanelInstaller",
    # Host configuration
    "PerformanceTuner",
    "FirewallInstaller",
    "SecurityHardener",
    "SshHardener",
    "DeploymentUserSetup",
    # Artifacts
    "DockerComposeGenerator",
    "AnsiblePlaybookGenerator",
]

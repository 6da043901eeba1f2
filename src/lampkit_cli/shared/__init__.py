"""Shared modules for lampkit-cli.

This module provides functionality used by every command:
- Paths (~/.lampkit/ and the installer log)
- Logging (structlog with secret redaction)
"""

from .logging import clear_secrets, configure_logging, get_logger, redact, register_secret
from .paths import CONFIG_FILE, LAMPKIT_DIR, LOG_FILE_NAME, get_log_file

__all__ = [
    # Paths
    "LAMPKIT_DIR",
    "CONFIG_FILE",
    "LOG_FILE_NAME",
    "get_log_file",
    # Logging
    "configure_logging",
    "get_logger",
    "register_secret",
    "clear_secrets",
    "redact",
]

"""Path management for lampkit-cli.

Manages the ~/.lampkit/ directory and the installer log location.
"""

import os
from pathlib import Path

# Base directory for CLI settings
LAMPKIT_DIR = Path.home() / ".lampkit"

# Tool settings file
CONFIG_FILE = LAMPKIT_DIR / "config.yaml"

# Name of the append-only installer log
LOG_FILE_NAME = "lampkit-installer.log"


def get_log_file(home: Path | None = None) -> Path:
    """Get the default installer log path.

    The log goes to the Desktop when one exists, otherwise to the home
    directory. Under sudo the invoking user's home is used.

    Args:
        home: Home directory override

    Returns:
        Path to the log file
    """
    if home is None:
        home = _invoking_user_home()
    desktop = home / "Desktop"
    if desktop.is_dir():
        return desktop / LOG_FILE_NAME
    return home / LOG_FILE_NAME


def _invoking_user_home() -> Path:
    sudo_user = os.environ.get("SUDO_USER")
    if sudo_user and sudo_user != "root":
        return Path(os.path.expanduser(f"~{sudo_user}"))
    return Path.home()

"""Click commands for lampkit."""

from .provision import detect, install, plan, uninstall, upgrade

__all__ = ["install", "upgrade", "uninstall", "plan", "detect"]

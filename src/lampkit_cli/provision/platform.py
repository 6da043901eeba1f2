"""Platform detection for provisioning.

This module reads /etc/os-release once and derives the package family,
firewall tool, and platform-specific names every installer needs.
"""

from __future__ import annotations

import shlex
import shutil
from collections.abc import Callable
from pathlib import Path

from lampkit_cli.shared.logging import get_logger

from .errors import UnsupportedPlatform
from .models import FirewallTool, PackageFamily, PlatformFacts

logger = get_logger(__name__)

OS_RELEASE = Path("/etc/os-release")

DEBIAN_IDS = frozenset({"ubuntu", "debian", "linuxmint"})
RHEL_IDS = frozenset({"centos", "rhel", "rocky", "almalinux", "fedora"})

# ID_LIKE tokens used when ID itself is unknown
_LIKE_FAMILIES = {
    "debian": PackageFamily.DEBIAN,
    "ubuntu": PackageFamily.DEBIAN,
    "rhel": PackageFamily.RHEL,
    "fedora": PackageFamily.RHEL,
    "centos": PackageFamily.RHEL,
}

# Per-family constants
_FAMILY_FACTS = {
    PackageFamily.DEBIAN: {
        "firewall_tool": FirewallTool.UFW,
        "apache_service_name": "apache2",
        "java_package_name": "openjdk-11-jdk",
        "ssh_service_name": "ssh",
        "admin_group": "sudo",
    },
    PackageFamily.RHEL: {
        "firewall_tool": FirewallTool.FIREWALLD,
        "apache_service_name": "httpd",
        "java_package_name": "java-11-openjdk-devel",
        "ssh_service_name": "sshd",
        "admin_group": "wheel",
    },
}


def parse_os_release(text: str) -> dict[str, str]:
    """Parse os-release KEY=value lines (quoted or not)."""
    values: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, raw = line.partition("=")
        try:
            parts = shlex.split(raw)
        except ValueError:
            parts = [raw.strip("\"'")]
        values[key.strip()] = parts[0] if parts else ""
    return values


def family_for(distro_id: str, id_like: str = "") -> PackageFamily | None:
    """Map an os-release ID (and ID_LIKE fallback) to a package family."""
    distro_id = distro_id.lower()
    if distro_id in DEBIAN_IDS:
        return PackageFamily.DEBIAN
    if distro_id in RHEL_IDS:
        return PackageFamily.RHEL
    for token in id_like.lower().split():
        if token in _LIKE_FAMILIES:
            return _LIKE_FAMILIES[token]
    return None


class PlatformProbe:
    """Detect OS identity and derive PlatformFacts."""

    def __init__(
        self,
        os_release_path: Path = OS_RELEASE,
        which: Callable[[str], str | None] = shutil.which,
    ):
        """Initialize probe.

        Args:
            os_release_path: os-release file to read.
            which: PATH lookup used to pick dnf or yum.
        """
        self.os_release_path = Path(os_release_path)
        self._which = which
        self._facts: PlatformFacts | None = None

    def detect(self) -> PlatformFacts:
        """Detect the platform.

        The result is computed once per probe and cached.

        Returns:
            PlatformFacts for this host.

        Raises:
            UnsupportedPlatform: If os-release is unreadable or the
                distribution is outside the supported families.
        """
        if self._facts is not None:
            return self._facts

        try:
            text = self.os_release_path.read_text(encoding="utf-8")
        except OSError as e:
            raise UnsupportedPlatform(f"Cannot read {self.os_release_path}: {e.strerror or e}") from e
        except UnicodeDecodeError as e:
            raise UnsupportedPlatform(f"Cannot decode {self.os_release_path}: {e.reason}") from e

        release = parse_os_release(text)
        distro_id = release.get("ID", "").lower()
        family = family_for(distro_id, release.get("ID_LIKE", ""))
        if family is None:
            raise UnsupportedPlatform(
                f"Unsupported Linux distribution: {distro_id or 'unknown'}. "
                "Supported: Ubuntu, Debian, Linux Mint, CentOS, RHEL, Rocky, AlmaLinux, Fedora"
            )

        if family == PackageFamily.DEBIAN:
            package_tool = "apt-get"
        else:
            package_tool = "dnf" if self._which("dnf") else "yum"

        self._facts = PlatformFacts(
            distro_id=distro_id,
            package_family=family,
            package_tool=package_tool,
            version_id=release.get("VERSION_ID", ""),
            pretty_name=release.get("PRETTY_NAME", distro_id),
            **_FAMILY_FACTS[family],
        )
        logger.info(
            "detected platform",
            distro=distro_id,
            family=family.value,
            package_tool=package_tool,
        )
        return self._facts

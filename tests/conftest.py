"""Shared test fixtures for lampkit-cli tests.

This module provides fixtures for exercising provisioning without a host:
- FakeRunner: Records every command and simulates package, user, firewall
  and systemd state so repeated runs observe their own effects
- debian_facts / rhel_facts: PlatformFacts for both families
- make_config / make_ctx: Configuration and InstallContext rooted in tmp_path
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from lampkit_cli.commands import provision as commands
from lampkit_cli.provision import (
    CommandResult,
    Configuration,
    Credentials,
    FirewallTool,
    InstallContext,
    InstallProfile,
    Mode,
    PackageFamily,
    PlatformFacts,
    RetryPolicy,
)
from lampkit_cli.shared.logging import clear_secrets

PASSWORD = "s3cr3t-Pa55"

# =============================================================================
# Fake host
# =============================================================================


@dataclass
class Call:
    """One recorded command."""

    argv: list[str]
    input: str | None = None
    env: dict[str, str] | None = None


@dataclass
class FakeRunner:
    """CommandRunner double with a small simulated host.

    Scripted responses (see `respond`) win over the simulation. Anything
    neither scripted nor simulated succeeds with empty output.
    """

    installed: set[str] = field(default_factory=set)
    users: dict[str, set[str]] = field(default_factory=dict)
    active: set[str] = field(default_factory=set)
    executables: dict[str, str] = field(default_factory=dict)
    ufw_rules: set[str] = field(default_factory=set)
    ufw_active: bool = False
    firewalld_ports: set[str] = field(default_factory=set)
    firewalld_services: set[str] = field(default_factory=set)
    calls: list[Call] = field(default_factory=list)
    _scripted: list[tuple[tuple[str, ...], list[CommandResult | None]]] = field(default_factory=list)

    def respond(self, *prefix: str, returncode: int = 0, stdout: str = "", stderr: str = "", times: int = 0):
        """Script the result of commands starting with prefix.

        Args:
            prefix: Leading argv elements to match
            returncode: Exit status to report
            stdout: Standard output to report
            stderr: Standard error to report
            times: Number of matching calls to answer (0 answers all of them)
        """
        result = CommandResult(list(prefix), returncode, stdout, stderr)
        answers: list[CommandResult | None] = [result] * times if times else [result, None]
        self._scripted.insert(0, (tuple(prefix), answers))
        return self

    def run(self, argv: list[str], input: str | None = None, env: dict[str, str] | None = None) -> CommandResult:
        argv = list(argv)
        self.calls.append(Call(argv, input, dict(env) if env else None))
        for prefix, answers in self._scripted:
            if tuple(argv[: len(prefix)]) != prefix or not answers:
                continue
            # A trailing None means "repeat the last answer forever"
            result = answers[0] if answers[-1] is None else answers.pop(0)
            return CommandResult(argv, result.returncode, result.stdout, result.stderr)
        return self._simulate(argv)

    def which(self, name: str) -> str | None:
        return self.executables.get(name)

    # Inspection helpers

    def commands(self, *prefix: str) -> list[list[str]]:
        """argv of every recorded call starting with prefix."""
        return [c.argv for c in self.calls if tuple(c.argv[: len(prefix)]) == prefix]

    def installs(self) -> list[str]:
        """Every package name passed to an install command, in order."""
        names = []
        for argv in self.commands():
            if argv[0] in ("apt-get", "dnf", "yum") and argv[1:2] == ["install"]:
                names += [a for a in argv[2:] if not a.startswith("-")]
        return names

    def removals(self) -> list[list[str]]:
        return [
            argv
            for argv in self.commands()
            if argv[0] in ("apt-get", "dnf", "yum") and argv[1:2] in (["purge"], ["remove"])
        ]

    # Simulation

    def _ok(self, argv: list[str], stdout: str = "") -> CommandResult:
        return CommandResult(argv, 0, stdout)

    def _fail(self, argv: list[str], stderr: str = "") -> CommandResult:
        return CommandResult(argv, 1, "", stderr)

    def _simulate(self, argv: list[str]) -> CommandResult:
        tool = argv[0]
        handler = {
            "dpkg-query": self._dpkg_query,
            "rpm": self._rpm,
            "apt-get": self._package_tool,
            "dnf": self._package_tool,
            "yum": self._package_tool,
            "id": self._id,
            "adduser": self._add_user,
            "useradd": self._add_user,
            "usermod": self._usermod,
            "systemctl": self._systemctl,
            "ufw": self._ufw,
            "firewall-cmd": self._firewall_cmd,
        }.get(tool)
        if handler is None:
            return self._ok(argv)
        return handler(argv)

    def _dpkg_query(self, argv: list[str]) -> CommandResult:
        fmt, target = argv[2], argv[3]
        if fmt == "-f=${Status}":
            if target in self.installed:
                return self._ok(argv, "install ok installed")
            return self._fail(argv, f"dpkg-query: no packages found matching {target}")
        prefix = target.rstrip("*")
        lines = [f"{p} install ok installed" for p in sorted(self.installed) if p.startswith(prefix)]
        return self._ok(argv, "\n".join(lines) + "\n")

    def _rpm(self, argv: list[str]) -> CommandResult:
        if argv[1] == "-qa":
            prefix = argv[-1].rstrip("*")
            return self._ok(argv, "\n".join(p for p in sorted(self.installed) if p.startswith(prefix)) + "\n")
        name = argv[2]
        if name in self.installed:
            return self._ok(argv, f"{name}-1.0-1.x86_64")
        return self._fail(argv, f"package {name} is not installed")

    def _package_tool(self, argv: list[str]) -> CommandResult:
        action = argv[1] if len(argv) > 1 else ""
        names = [a for a in argv[2:] if not a.startswith("-")]
        if action == "install":
            for name in names:
                if name.endswith(".rpm"):
                    name = "remi-release" if "remi-release" in name else name.rsplit("/", 1)[-1][:-4]
                self.installed.add(name)
        elif action in ("purge", "remove"):
            for name in names:
                self.installed.discard(name)
                self.executables.pop(name, None)
        return self._ok(argv)

    def _id(self, argv: list[str]) -> CommandResult:
        user = argv[-1]
        if user not in self.users:
            return self._fail(argv, f"id: '{user}': no such user")
        if "-nG" in argv:
            return self._ok(argv, " ".join([user, *sorted(self.users[user])]))
        return self._ok(argv, f"uid=1001({user})")

    def _add_user(self, argv: list[str]) -> CommandResult:
        user = argv[-1]
        if user in self.users:
            return self._fail(argv, f"user '{user}' already exists")
        self.users[user] = set()
        return self._ok(argv)

    def _usermod(self, argv: list[str]) -> CommandResult:
        group, user = argv[2], argv[3]
        self.users.setdefault(user, set()).add(group)
        return self._ok(argv)

    def _systemctl(self, argv: list[str]) -> CommandResult:
        action, service = argv[1], argv[-1]
        if action == "is-active":
            return CommandResult(argv, 0 if service in self.active else 3)
        if action in ("start", "restart", "reload") or (action == "enable" and "--now" in argv):
            self.active.add(service)
        elif action == "stop":
            if service not in self.active:
                return CommandResult(argv, 5, "", f"Failed to stop {service}.service: Unit not loaded.")
            self.active.discard(service)
        return self._ok(argv)

    def _ufw(self, argv: list[str]) -> CommandResult:
        action = argv[1]
        if action == "status":
            if not self.ufw_active:
                return self._ok(argv, "Status: inactive\n")
            rows = "".join(f"{rule:<28}ALLOW       Anywhere\n" for rule in sorted(self.ufw_rules))
            return self._ok(argv, f"Status: active\n\nTo                          Action      From\n{rows}")
        if action == "allow":
            self.ufw_rules.add(argv[2])
        elif action == "--force" and argv[2] == "enable":
            self.ufw_active = True
        elif action == "disable":
            self.ufw_active = False
        return self._ok(argv)

    def _firewall_cmd(self, argv: list[str]) -> CommandResult:
        option = argv[-1]
        if option == "--state":
            if "firewalld" in self.active:
                return self._ok(argv, "running\n")
            return CommandResult(argv, 252, "not running\n")
        if option == "--list-ports":
            return self._ok(argv, " ".join(sorted(self.firewalld_ports)) + "\n")
        if option == "--list-services":
            return self._ok(argv, " ".join(sorted(self.firewalld_services)) + "\n")
        if option.startswith("--add-port="):
            self.firewalld_ports.add(option.partition("=")[2])
        elif option.startswith("--add-service="):
            self.firewalld_services.add(option.partition("=")[2])
        return self._ok(argv)


class FakeFetch:
    """Download double that records URLs and writes a placeholder file."""

    def __init__(self, content: bytes = b"", error: Exception | None = None):
        self.content = content
        self.error = error
        self.urls: list[str] = []

    def __call__(self, url: str, dest: Path) -> None:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        dest = Path(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(self.content)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Keep tests away from ~/.lampkit and the caller's environment."""
    monkeypatch.setattr("lampkit_cli.config.get_config_path", lambda: tmp_path / "settings" / "config.yaml")
    monkeypatch.setattr("lampkit_cli.config.CONFIG_FILE", tmp_path / "settings" / "config.yaml")
    for name in (
        "LAMPKIT_LOG_FILE",
        "LAMPKIT_LOG_LEVEL",
        "LAMPKIT_RETRY_ATTEMPTS",
        "LAMPKIT_RETRY_BACKOFF",
        "LAMPKIT_KAFKA_VERSION",
        "LAMPKIT_ARTIFACT_DIR",
        "LAMPKIT_DB_PASSWORD",
        "LAMPKIT_DB_ROOT_PASSWORD",
    ):
        monkeypatch.delenv(name, raising=False)
    yield
    clear_secrets()


@pytest.fixture
def debian_facts() -> PlatformFacts:
    return PlatformFacts(
        distro_id="ubuntu",
        package_family=PackageFamily.DEBIAN,
        firewall_tool=FirewallTool.UFW,
        apache_service_name="apache2",
        java_package_name="openjdk-11-jdk",
        package_tool="apt-get",
        ssh_service_name="ssh",
        admin_group="sudo",
        version_id="22.04",
        pretty_name="Ubuntu 22.04.4 LTS",
    )


@pytest.fixture
def rhel_facts() -> PlatformFacts:
    return PlatformFacts(
        distro_id="rocky",
        package_family=PackageFamily.RHEL,
        firewall_tool=FirewallTool.FIREWALLD,
        apache_service_name="httpd",
        java_package_name="java-11-openjdk-devel",
        package_tool="dnf",
        ssh_service_name="sshd",
        admin_group="wheel",
        version_id="9.3",
        pretty_name="Rocky Linux 9.3 (Blue Onyx)",
    )


@pytest.fixture
def host_root(tmp_path) -> Path:
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def artifact_dir(tmp_path) -> Path:
    return tmp_path / "artifacts"


@pytest.fixture
def make_config(artifact_dir):
    """Factory for Configuration with test defaults."""

    def _make(**overrides: Any) -> Configuration:
        values: dict[str, Any] = {
            "mode": Mode.INSTALL,
            "install_profile": InstallProfile.ADVANCED,
            "credentials": Credentials(db_password=PASSWORD),
            "domains": ("example.com",),
            "php_version": "8.3",
            "artifact_dir": artifact_dir,
        }
        values.update(overrides)
        return Configuration(**values)

    return _make


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fetch() -> FakeFetch:
    return FakeFetch()


@pytest.fixture
def make_ctx(host_root, runner, fetch, debian_facts):
    """Factory for InstallContext rooted under tmp_path."""

    def _make(config: Configuration, facts: PlatformFacts | None = None, fake: FakeRunner | None = None):
        return InstallContext.create(
            config,
            facts or debian_facts,
            runner=fake or runner,
            retry=RetryPolicy(attempts=2, backoff_seconds=0),
            root=host_root,
            sleep=lambda seconds: None,
            fetch=fetch,
        )

    return _make


@pytest.fixture
def host_file(host_root):
    """Create a file under the fake host root and return its path."""

    def _write(absolute: str, content: str = "") -> Path:
        path = host_root / absolute.lstrip("/")
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def cli_host(monkeypatch, runner, fetch, host_root, artifact_dir, debian_facts):
    """Point the CLI's host access at the fakes.

    Returns a function taking the PlatformFacts to report; the DB password
    comes from the environment so no prompt is shown.
    """

    def _build_context(config, facts, runner_, settings):
        return InstallContext.create(
            config,
            facts,
            runner=runner_,
            retry=RetryPolicy(attempts=settings.retry_attempts, backoff_seconds=0),
            root=host_root,
            sleep=lambda seconds: None,
            fetch=fetch,
        )

    def _patch(facts: PlatformFacts | None = None) -> FakeRunner:
        probe = MagicMock()
        probe.return_value.detect.return_value = facts or debian_facts
        monkeypatch.setattr(commands, "is_root", lambda: True)
        monkeypatch.setattr(commands, "PlatformProbe", probe)
        monkeypatch.setattr(commands, "CommandRunner", lambda: runner)
        monkeypatch.setattr(commands, "_build_context", _build_context)
        monkeypatch.setenv("LAMPKIT_DB_PASSWORD", PASSWORD)
        monkeypatch.setenv("LAMPKIT_ARTIFACT_DIR", str(artifact_dir))
        return runner

    return _patch


@pytest.fixture
def answers(tmp_path):
    """Write an answers file and return its path."""

    def _write(text: str) -> Path:
        path = tmp_path / "answers.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    return _write

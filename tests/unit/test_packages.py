"""Unit tests for the package manager adapters."""

from __future__ import annotations

import pytest

from lampkit_cli.provision import PackageInstallFailed, PackageManager, RetryPolicy, SystemUpdateFailed
from lampkit_cli.provision.errors import EXIT_PACKAGE_MANAGER
from lampkit_cli.provision.packages import AptPackageManager, DnfPackageManager


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def apt(runner, sleeps):
    return AptPackageManager(runner, RetryPolicy(attempts=3, backoff_seconds=2.5), sleeps.append)


@pytest.fixture
def dnf(runner, sleeps):
    return DnfPackageManager(runner, RetryPolicy(attempts=2, backoff_seconds=1), sleeps.append, tool="dnf")


class TestForPlatform:
    def test_debian_gets_apt(self, runner, debian_facts):
        assert isinstance(PackageManager.for_platform(debian_facts, runner), AptPackageManager)

    def test_rhel_gets_dnf_with_tool(self, runner, rhel_facts):
        manager = PackageManager.for_platform(rhel_facts, runner)
        assert isinstance(manager, DnfPackageManager)
        assert manager.tool == "dnf"


class TestInstall:
    """Tests for PackageManager.install."""

    def test_installs_only_missing(self, apt, runner):
        runner.installed.add("nginx")
        installed = apt.install(["nginx", "curl", "curl"])

        assert installed == ["curl"]
        assert runner.commands("apt-get", "install") == [["apt-get", "install", "-y", "curl"]]
        assert runner.calls[-1].env == {"DEBIAN_FRONTEND": "noninteractive"}

    def test_all_present_runs_no_install(self, apt, runner):
        runner.installed.update({"git", "curl"})
        assert apt.install(["git", "curl"]) == []
        assert runner.commands("apt-get", "install") == []

    def test_accepts_generator(self, apt, runner):
        assert apt.install(p for p in ["zip"]) == ["zip"]

    def test_bootstrap_then_retry(self, apt, runner, sleeps):
        runner.respond("apt-get", "install", "-y", "redis-server", returncode=100, stderr="E: Unable", times=1)

        assert apt.install(["redis-server"]) == ["redis-server"]
        # Repository repair ran before the retry
        assert runner.commands("dpkg", "--configure", "-a")
        assert sleeps == []

    def test_gives_up_after_policy(self, apt, runner, sleeps):
        runner.respond("apt-get", "install", "-y", "nosuch", returncode=100, stderr="E: Unable to locate package")

        with pytest.raises(PackageInstallFailed) as exc_info:
            apt.install(["nosuch"])

        assert exc_info.value.packages == ["nosuch"]
        assert exc_info.value.exit_code == EXIT_PACKAGE_MANAGER
        assert "Unable to locate package" in exc_info.value.message
        # First attempt plus three retries
        assert len(runner.commands("apt-get", "install", "-y", "nosuch")) == 4
        assert sleeps == [2.5, 2.5]

    def test_dnf_bootstrap_enables_epel_and_crb(self, dnf, runner):
        runner.respond("dnf", "install", "-y", "fail2ban", returncode=1, times=1)

        dnf.install(["fail2ban"])

        assert ["dnf", "install", "-y", "epel-release"] in runner.commands("dnf", "install")
        assert runner.commands("dnf", "config-manager", "--set-enabled", "crb")
        assert "fail2ban" in runner.installed


class TestRemove:
    """Tests for PackageManager.remove."""

    def test_absent_package_never_invokes_remove(self, apt, runner):
        assert apt.remove(["apache2"]) == []
        assert runner.removals() == []

    def test_removes_present_packages(self, apt, runner):
        runner.installed.update({"nginx", "vsftpd"})
        removed = apt.remove(["nginx", "apache2", "vsftpd"])

        assert removed == ["nginx", "vsftpd"]
        assert runner.removals() == [["apt-get", "purge", "-y", "nginx"], ["apt-get", "purge", "-y", "vsftpd"]]

    def test_remove_failure_is_not_raised(self, dnf, runner):
        runner.installed.add("httpd")
        runner.respond("dnf", "remove", returncode=1, stderr="locked")
        assert dnf.remove(["httpd"]) == []


class TestQueries:
    def test_apt_is_installed(self, apt, runner):
        runner.installed.add("php8.3")
        assert apt.is_installed("php8.3") is True
        assert apt.is_installed("php8.2") is False

    def test_dnf_package_url_maps_to_name(self, dnf, runner):
        runner.installed.add("remi-release")
        assert dnf.is_installed("https://rpms.remirepo.net/enterprise/remi-release-9.rpm") is True
        assert runner.commands("rpm", "-q")[-1] == ["rpm", "-q", "remi-release"]

    def test_installed_matching(self, apt, runner):
        runner.installed.update({"php8.3", "php8.3-fpm", "phpmyadmin", "nginx"})
        assert apt.installed_matching("php") == ["php8.3", "php8.3-fpm", "phpmyadmin"]


class TestUpdate:
    def test_apt_update_then_upgrade(self, apt, runner):
        apt.update()
        assert runner.commands("apt-get", "update")
        assert runner.commands("apt-get", "upgrade", "-y")

    def test_update_failure_raises(self, apt, runner):
        runner.respond("apt-get", "update", returncode=100, stderr="Temporary failure resolving")
        with pytest.raises(SystemUpdateFailed) as exc_info:
            apt.update()
        assert "Temporary failure resolving" in exc_info.value.message
        assert runner.commands("apt-get", "upgrade") == []

    def test_dnf_upgrade(self, dnf, runner):
        dnf.update()
        assert runner.commands("dnf", "upgrade", "-y")

"""Unit tests for security and SSH hardening."""

from __future__ import annotations

from dataclasses import replace

from lampkit_cli.provision.installers import SecurityHardener, SshHardener
from lampkit_cli.provision.installers.hardening import SSHD_CONFIG, ssh_directives

SSHD = """\
# Stock config
#Port 22
PermitRootLogin yes
PasswordAuthentication yes
PasswordAuthentication yes
UsePAM yes

Match User sftp
    ForceCommand internal-sftp
"""


def _active_keys(text: str) -> list[str]:
    return [line.split()[0] for line in text.splitlines() if line.strip() and not line.lstrip().startswith("#")]


class TestSshHardener:
    """Tests for SshHardener."""

    def test_enabled_only_when_hardened(self, make_config):
        assert not SshHardener().enabled(make_config())
        assert SshHardener().enabled(make_config(ssh_hardened=True))

    def test_directives_applied_once(self, make_ctx, make_config, runner, host_file):
        sshd = host_file(SSHD_CONFIG, SSHD)
        config = make_config(ssh_hardened=True, ssh_allowed_users=("deploy", "ops"))
        SshHardener().run(make_ctx(config))

        text = sshd.read_text()
        keys = _active_keys(text)
        for key, value in ssh_directives(config):
            assert keys.count(key) == 1, key
            assert f"{key} {value}" in text.splitlines()
        assert "AllowUsers deploy ops" in text
        # Global directives stay ahead of the Match block
        lines = text.splitlines()
        assert lines.index("KexAlgorithms " + dict(ssh_directives(config))["KexAlgorithms"]) < lines.index(
            "Match User sftp"
        )
        assert runner.commands("systemctl", "reload", "ssh")

    def test_backup_then_idempotent(self, make_ctx, make_config, runner, host_file):
        sshd = host_file(SSHD_CONFIG, SSHD)
        ctx = make_ctx(make_config(ssh_hardened=True))
        SshHardener().run(ctx)
        hardened = sshd.read_text()

        backups = list(sshd.parent.glob("sshd_config.bak.*"))
        assert len(backups) == 1
        assert backups[0].read_text() == SSHD

        runner.calls.clear()
        SshHardener().run(ctx)
        assert sshd.read_text() == hardened
        assert len(list(sshd.parent.glob("sshd_config.bak.*"))) == 1
        assert runner.commands("systemctl") == []

    def test_reload_failure_is_warning(self, make_ctx, make_config, runner, host_file, rhel_facts):
        host_file(SSHD_CONFIG, SSHD)
        runner.respond("systemctl", "reload", "sshd", returncode=1)
        ctx = make_ctx(make_config(ssh_hardened=True), rhel_facts)
        SshHardener().run(ctx)
        assert ctx.warnings == ["Failed to reload sshd: exit 1"]

    def test_missing_config_is_warning(self, make_ctx, make_config):
        ctx = make_ctx(make_config(ssh_hardened=True))
        SshHardener().run(ctx)
        assert ctx.warnings == [f"{SSHD_CONFIG} not found; SSH hardening skipped"]


class TestSecurityHardener:
    """Tests for SecurityHardener."""

    def test_debian(self, make_ctx, make_config, runner, host_file):
        ini = host_file("/etc/php/8.3/apache2/php.ini", "disable_functions =\n")
        ctx = make_ctx(make_config())
        SecurityHardener().run(ctx)

        assert ini.read_text().startswith("disable_functions = exec,passthru,shell_exec,system")
        assert "unattended-upgrades" in runner.installs()
        reconfigure = [c for c in runner.calls if c.argv[0] == "dpkg-reconfigure"]
        assert reconfigure[0].env == {"DEBIAN_FRONTEND": "noninteractive"}
        assert runner.commands("systemctl", "enable", "--now", "fail2ban")
        assert runner.commands("systemctl", "restart", "fail2ban")
        # Not hardened: sshd_config untouched
        assert runner.commands("systemctl", "reload") == []

    def test_rhel_dnf_automatic(self, make_ctx, make_config, runner, rhel_facts):
        SecurityHardener().run(make_ctx(make_config(), rhel_facts))
        assert "dnf-automatic" in runner.installs()
        assert "dnf-automatic.timer" in runner.active

    def test_rhel_yum_cron(self, make_ctx, make_config, runner, rhel_facts):
        SecurityHardener().run(make_ctx(make_config(), replace(rhel_facts, package_tool="yum")))
        assert "yum-cron" in runner.installs()

    def test_runs_ssh_hardening_when_selected(self, make_ctx, make_config, runner, host_file):
        sshd = host_file(SSHD_CONFIG, SSHD)
        SecurityHardener().run(make_ctx(make_config(ssh_hardened=True)))
        assert "PermitRootLogin no" in sshd.read_text()

    def test_fail2ban_failure_is_warning(self, make_ctx, make_config, runner):
        runner.respond("systemctl", "enable", "--now", "fail2ban", returncode=1)
        ctx = make_ctx(make_config())
        SecurityHardener().run(ctx)
        assert "Failed to enable fail2ban: exit 1" in ctx.warnings

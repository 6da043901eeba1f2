"""Unit tests for firewall configuration."""

from __future__ import annotations

from lampkit_cli.provision.installers import FirewallInstaller


class TestUfw:
    """Tests for the ufw path."""

    def test_opens_ports_then_enables(self, make_ctx, make_config, runner):
        ctx = make_ctx(make_config())
        FirewallInstaller().run(ctx)

        assert runner.ufw_rules == {"80/tcp", "443/tcp", "2222/tcp"}
        assert runner.ufw_active is True
        argvs = [c.argv for c in runner.calls]
        enable_at = argvs.index(["ufw", "--force", "enable"])
        assert all(argvs.index(["ufw", "allow", p]) < enable_at for p in ("80/tcp", "443/tcp", "2222/tcp"))
        assert ctx.warnings == []

    def test_second_run_adds_nothing(self, make_ctx, make_config, runner):
        ctx = make_ctx(make_config())
        FirewallInstaller().run(ctx)
        runner.calls.clear()

        FirewallInstaller().run(ctx)

        assert runner.commands("ufw", "allow") == []
        assert runner.commands("ufw", "--force") == []

    def test_custom_ssh_port(self, make_ctx, make_config, runner):
        FirewallInstaller().run(make_ctx(make_config(alt_ssh_port=2022)))
        assert "2022/tcp" in runner.ufw_rules

    def test_existing_rule_kept(self, make_ctx, make_config, runner):
        runner.ufw_active = True
        runner.ufw_rules.add("80/tcp")
        FirewallInstaller().run(make_ctx(make_config()))
        assert [argv[2] for argv in runner.commands("ufw", "allow")] == ["443/tcp", "2222/tcp"]

    def test_enable_failure_is_warning(self, make_ctx, make_config, runner):
        runner.respond("ufw", "--force", "enable", returncode=1, stderr="ERROR: problem running ufw-init")
        ctx = make_ctx(make_config())
        FirewallInstaller().run(ctx)
        assert "ufw is not active after configuration" in ctx.warnings


class TestFirewalld:
    """Tests for the firewalld path."""

    def test_starts_service_and_adds_rules(self, make_ctx, make_config, runner, rhel_facts):
        ctx = make_ctx(make_config(), rhel_facts)
        FirewallInstaller().run(ctx)

        assert runner.commands("systemctl", "enable", "--now", "firewalld")
        assert runner.firewalld_ports == {"80/tcp", "443/tcp", "2222/tcp"}
        assert runner.firewalld_services == {"http", "https"}
        assert len(runner.commands("firewall-cmd", "--reload")) == 1
        assert ctx.warnings == []

    def test_second_run_skips_reload(self, make_ctx, make_config, runner, rhel_facts):
        ctx = make_ctx(make_config(), rhel_facts)
        FirewallInstaller().run(ctx)
        runner.calls.clear()

        FirewallInstaller().run(ctx)

        assert runner.commands("firewall-cmd", "--permanent", "--add-port=80/tcp") == []
        assert runner.commands("firewall-cmd", "--reload") == []
        assert runner.commands("systemctl") == []

    def test_service_start_failure_is_warning(self, make_ctx, make_config, runner, rhel_facts):
        runner.respond("systemctl", "enable", "--now", "firewalld", returncode=1)
        ctx = make_ctx(make_config(), rhel_facts)
        FirewallInstaller().run(ctx)

        assert ctx.warnings == ["Failed to enable firewalld: exit 1"]
        assert runner.firewalld_ports == set()

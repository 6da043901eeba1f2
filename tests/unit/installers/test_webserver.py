"""Unit tests for the web server and virtual host steps."""

from __future__ import annotations

import pytest

from lampkit_cli.provision import ServiceControlFailed, WebServer
from lampkit_cli.provision.installers import VirtualHostSetup, WebServerInstaller
from lampkit_cli.provision.installers.webserver import CADDY_APT_LIST, CADDYFILE


class TestWebServerInstaller:
    """Tests for WebServerInstaller."""

    def test_apache_debian(self, make_ctx, make_config, runner):
        WebServerInstaller().run(make_ctx(make_config(web_server=WebServer.APACHE)))
        assert runner.installs() == ["apache2", "apache2-utils"]
        assert "apache2" in runner.active

    def test_apache_rhel(self, make_ctx, make_config, runner, rhel_facts):
        WebServerInstaller().run(make_ctx(make_config(web_server=WebServer.APACHE), rhel_facts))
        assert runner.installs() == ["httpd"]
        assert "httpd" in runner.active

    def test_start_failure_is_fatal(self, make_ctx, make_config, runner):
        runner.respond("systemctl", "enable", "--now", "nginx", returncode=1, stderr="Job failed")
        with pytest.raises(ServiceControlFailed) as exc_info:
            WebServerInstaller().run(make_ctx(make_config(web_server=WebServer.NGINX)))
        assert exc_info.value.fatal is True

    def test_caddy_debian_repository(self, make_ctx, make_config, runner, fetch):
        ctx = make_ctx(make_config(web_server=WebServer.CADDY))
        WebServerInstaller().run(ctx)

        assert fetch.urls == ["https://dl.cloudsmith.io/public/caddy/stable/gpg.key"]
        assert "caddy/stable/deb/debian" in ctx.path(CADDY_APT_LIST).read_text()
        assert runner.installs()[-1] == "caddy"
        assert "caddy" in runner.active

    def test_caddy_already_installed(self, make_ctx, make_config, runner, fetch):
        runner.installed.add("caddy")
        WebServerInstaller().run(make_ctx(make_config(web_server=WebServer.CADDY)))
        assert fetch.urls == []
        assert runner.installs() == []

    def test_caddy_rhel_copr(self, make_ctx, make_config, runner, rhel_facts):
        WebServerInstaller().run(make_ctx(make_config(web_server=WebServer.CADDY), rhel_facts))
        assert runner.commands("dnf", "copr", "enable", "-y", "@caddy/caddy")


class TestVirtualHostSetup:
    """Tests for VirtualHostSetup."""

    def test_nginx_debian_site_per_domain(self, make_ctx, make_config, runner, host_file):
        host_file("/etc/nginx/sites-enabled/default", "server {}\n")
        ctx = make_ctx(make_config(web_server=WebServer.NGINX, domains=("a.com", "b.com")))
        VirtualHostSetup().run(ctx)

        for domain in ("a.com", "b.com"):
            site = ctx.path(f"/etc/nginx/sites-available/{domain}").read_text()
            assert f"root /var/www/html/{domain};" in site
            link = ctx.path(f"/etc/nginx/sites-enabled/{domain}")
            assert link.is_symlink()
            assert ctx.path(f"/var/www/html/{domain}").is_dir()
        assert not ctx.path("/etc/nginx/sites-enabled/default").exists()
        assert runner.commands("systemctl", "reload", "nginx")

    def test_nginx_rhel_conf_d(self, make_ctx, make_config, rhel_facts):
        ctx = make_ctx(make_config(web_server=WebServer.NGINX), rhel_facts)
        VirtualHostSetup().run(ctx)
        conf = ctx.path("/etc/nginx/conf.d/example.com.conf").read_text()
        assert "fastcgi_pass unix:/run/php-fpm/www.sock;" in conf

    def test_idempotent_vhost_content(self, make_ctx, make_config):
        ctx = make_ctx(make_config(web_server=WebServer.NGINX))
        VirtualHostSetup().run(ctx)
        site = ctx.path("/etc/nginx/sites-available/example.com")
        first = site.read_bytes()

        VirtualHostSetup().run(ctx)

        assert site.read_bytes() == first
        assert sorted(p.name for p in ctx.path("/etc/nginx/sites-enabled").iterdir()) == ["example.com"]

    def test_apache_debian_enables_site(self, make_ctx, make_config, runner, host_file):
        host_file("/etc/apache2/sites-enabled/000-default.conf", "")
        ctx = make_ctx(make_config(web_server=WebServer.APACHE))
        VirtualHostSetup().run(ctx)

        assert "DocumentRoot /var/www/html/example.com" in ctx.path(
            "/etc/apache2/sites-available/example.com.conf"
        ).read_text()
        assert runner.commands("a2ensite", "example.com.conf")
        assert runner.commands("a2dissite", "000-default")

    def test_apache_rhel_conf_d(self, make_ctx, make_config, runner, rhel_facts):
        ctx = make_ctx(make_config(web_server=WebServer.APACHE), rhel_facts)
        VirtualHostSetup().run(ctx)
        assert "/var/log/httpd/example.com-error.log" in ctx.path(
            "/etc/httpd/conf.d/example.com.conf"
        ).read_text()
        assert runner.commands("a2ensite") == []
        assert runner.commands("chown", "-R", "apache:apache")

    def test_caddy_single_caddyfile(self, make_ctx, make_config, runner, host_file):
        host_file(CADDYFILE, ":80 {\n}\n")
        ctx = make_ctx(make_config(web_server=WebServer.CADDY, domains=("a.com", "b.com")))
        VirtualHostSetup().run(ctx)

        caddyfile = ctx.path(CADDYFILE).read_text()
        assert "a.com {" in caddyfile and "b.com {" in caddyfile
        assert ctx.path(CADDYFILE + ".bak.lampkit").read_text() == ":80 {\n}\n"
        # Caddy manages its own certificates
        assert runner.commands("certbot") == []

    def test_lighttpd_debian(self, make_ctx, make_config, runner):
        ctx = make_ctx(make_config(web_server=WebServer.LIGHTTPD))
        VirtualHostSetup().run(ctx)
        assert ctx.path("/etc/lighttpd/conf-enabled/90-example.com.conf").exists()
        assert runner.commands("lighty-enable-mod", "fastcgi", "fastcgi-php")

    def test_lighttpd_rhel_enables_vhosts(self, make_ctx, make_config, rhel_facts, host_file):
        host_file("/etc/lighttpd/modules.conf", '#include "conf.d/fastcgi.conf"\n')
        host_file("/etc/lighttpd/lighttpd.conf", "server.port = 80\n")
        ctx = make_ctx(make_config(web_server=WebServer.LIGHTTPD), rhel_facts)
        VirtualHostSetup().run(ctx)
        VirtualHostSetup().run(ctx)

        assert ctx.path("/etc/lighttpd/modules.conf").read_text() == 'include "conf.d/fastcgi.conf"\n'
        assert ctx.path("/etc/lighttpd/lighttpd.conf").read_text().count("vhosts.d") == 1
        assert ctx.path("/etc/lighttpd/vhosts.d/example.com.conf").exists()

    def test_one_certificate_request_for_all_domains(self, make_ctx, make_config, runner):
        ctx = make_ctx(make_config(web_server=WebServer.APACHE, domains=("a.com", "b.com")))
        VirtualHostSetup().run(ctx)

        requests = runner.commands("certbot")
        assert len(requests) == 1
        argv = requests[0]
        assert argv[:2] == ["certbot", "--apache"]
        assert [argv[i + 1] for i, a in enumerate(argv) if a == "-d"] == ["a.com", "b.com"]
        assert "--redirect" in argv
        assert argv[argv.index("-m") + 1] == "admin@a.com"

    def test_certificate_failure_is_warning(self, make_ctx, make_config, runner):
        runner.respond("certbot", returncode=1, stderr="DNS problem")
        ctx = make_ctx(make_config(web_server=WebServer.NGINX))
        VirtualHostSetup().run(ctx)
        assert any("Certificate provisioning failed" in w for w in ctx.warnings)

    def test_doc_root_ownership(self, make_ctx, make_config, runner, host_root):
        ctx = make_ctx(make_config(web_server=WebServer.NGINX, doc_root="/srv/www"))
        VirtualHostSetup().run(ctx)
        assert ["chown", "-R", "www-data:www-data", str(host_root / "srv/www")] in runner.commands("chown")

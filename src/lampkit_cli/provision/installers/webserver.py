"""Web server installation and per-domain virtual hosts."""

from __future__ import annotations

import httpx

from lampkit_cli.shared.logging import get_logger

from .. import templates
from ..context import InstallContext
from ..errors import ServiceControlFailed
from ..files import append_block_once, backup_once, edit_file, write_if_changed
from ..models import WebServer
from .base import Step

logger = get_logger(__name__)

CADDY_KEY_URL = "https://dl.cloudsmith.io/public/caddy/stable/gpg.key"
CADDY_KEYRING = "/usr/share/keyrings/caddy-stable-archive-keyring.gpg"
CADDY_APT_LIST = "/etc/apt/sources.list.d/caddy-stable.list"
CADDY_APT_SOURCE = (
    f"deb [signed-by={CADDY_KEYRING}] "
    "https://dl.cloudsmith.io/public/caddy/stable/deb/debian any-version main\n"
)
CADDYFILE = "/etc/caddy/Caddyfile"

LIGHTTPD_VHOSTS_INCLUDE = 'include conf_dir + "/vhosts.d/*.conf"'


class WebServerInstaller(Step):
    """Install and start the selected web server."""

    name = "Web Server"

    def run(self, ctx: InstallContext) -> None:
        {
            WebServer.NGINX: self._install_nginx,
            WebServer.APACHE: self._install_apache,
            WebServer.CADDY: self._install_caddy,
            WebServer.LIGHTTPD: self._install_lighttpd,
        }[ctx.config.web_server](ctx)
        # Later steps need the server running
        ctx.services.enable(ctx.facts.web_service_name(ctx.config.web_server), fatal=True)

    def _install_nginx(self, ctx: InstallContext) -> None:
        ctx.packages.install(["nginx"])

    def _install_apache(self, ctx: InstallContext) -> None:
        if ctx.facts.is_debian:
            ctx.packages.install(["apache2", "apache2-utils"])
        else:
            ctx.packages.install(["httpd"])

    def _install_lighttpd(self, ctx: InstallContext) -> None:
        ctx.packages.install(["lighttpd"])

    def _install_caddy(self, ctx: InstallContext) -> None:
        if ctx.packages.is_installed("caddy"):
            return
        if ctx.facts.is_debian:
            ctx.packages.install(["debian-keyring", "debian-archive-keyring", "apt-transport-https", "gnupg"])
            keyring = ctx.path(CADDY_KEYRING)
            if not keyring.exists():
                key_file = ctx.temp.register(ctx.path("/tmp/caddy-stable.key"))
                try:
                    ctx.fetch(CADDY_KEY_URL, key_file)
                except httpx.HTTPError as e:
                    ctx.warn(f"Caddy signing key download failed ({e})")
                else:
                    keyring.parent.mkdir(parents=True, exist_ok=True)
                    ctx.runner.run(["gpg", "--batch", "--yes", "--dearmor", "-o", str(keyring), str(key_file)])
            if write_if_changed(ctx.path(CADDY_APT_LIST), CADDY_APT_SOURCE):
                ctx.runner.run(["apt-get", "update"], env={"DEBIAN_FRONTEND": "noninteractive"})
        else:
            ctx.packages.install(["dnf-command(copr)"])
            result = ctx.runner.run([ctx.facts.package_tool, "copr", "enable", "-y", "@caddy/caddy"])
            if not result.ok:
                ctx.warn(f"Failed to enable the Caddy COPR repository ({result.describe()})")
        ctx.packages.install(["caddy"])


class VirtualHostSetup(Step):
    """Document roots, one vhost per domain, default site, and TLS."""

    name = "Virtual Hosts"

    def run(self, ctx: InstallContext) -> None:
        config = ctx.config
        domains = list(dict.fromkeys(config.domains))
        for domain in domains:
            ctx.path(config.domain_root(domain)).mkdir(parents=True, exist_ok=True)

        {
            WebServer.NGINX: self._configure_nginx,
            WebServer.APACHE: self._configure_apache,
            WebServer.CADDY: self._configure_caddy,
            WebServer.LIGHTTPD: self._configure_lighttpd,
        }[config.web_server](ctx, domains)

        self._prepare_doc_root(ctx)

        service = ctx.facts.web_service_name(config.web_server)
        try:
            ctx.services.reload(service)
        except ServiceControlFailed as e:
            ctx.warn(e.message, service=service)

        if config.web_server in (WebServer.NGINX, WebServer.APACHE):
            self._provision_certificates(ctx, domains)

    # Per-server configuration

    def _configure_nginx(self, ctx: InstallContext, domains: list[str]) -> None:
        debian = ctx.facts.is_debian
        fastcgi = templates.php_fpm_socket(ctx.facts, ctx.config.php_version)
        for domain in domains:
            content = templates.render_nginx_server_block(
                domain, ctx.config.domain_root(domain), fastcgi, debian
            )
            if debian:
                available = ctx.path(f"/etc/nginx/sites-available/{domain}")
                write_if_changed(available, content)
                link = ctx.path(f"/etc/nginx/sites-enabled/{domain}")
                if not link.is_symlink():
                    link.parent.mkdir(parents=True, exist_ok=True)
                    if link.exists():
                        link.unlink()
                    link.symlink_to(f"/etc/nginx/sites-available/{domain}")
            else:
                write_if_changed(ctx.path(f"/etc/nginx/conf.d/{domain}.conf"), content)

        default = ctx.path("/etc/nginx/sites-enabled/default")
        if debian and (default.exists() or default.is_symlink()):
            default.unlink()
            logger.info("disabled default nginx site")

    def _configure_apache(self, ctx: InstallContext, domains: list[str]) -> None:
        debian = ctx.facts.is_debian
        if debian:
            vhost_dir, log_dir = "/etc/apache2/sites-available", "/var/log/apache2"
        else:
            vhost_dir, log_dir = "/etc/httpd/conf.d", "/var/log/httpd"

        for domain in domains:
            content = templates.render_apache_vhost(domain, ctx.config.domain_root(domain), log_dir)
            write_if_changed(ctx.path(f"{vhost_dir}/{domain}.conf"), content)
            if debian and not ctx.path(f"/etc/apache2/sites-enabled/{domain}.conf").exists():
                result = ctx.runner.run(["a2ensite", f"{domain}.conf"])
                if not result.ok:
                    ctx.warn(f"a2ensite {domain} failed ({result.describe()})")

        if debian and ctx.path("/etc/apache2/sites-enabled/000-default.conf").exists():
            ctx.runner.run(["a2dissite", "000-default"])
            logger.info("disabled default apache site")

    def _configure_caddy(self, ctx: InstallContext, domains: list[str]) -> None:
        fastcgi = templates.php_fpm_socket(ctx.facts, ctx.config.php_version)
        sites = [(domain, ctx.config.domain_root(domain)) for domain in domains]
        caddyfile = ctx.path(CADDYFILE)
        backup_once(caddyfile)
        write_if_changed(caddyfile, templates.render_caddyfile(sites, fastcgi))

    def _configure_lighttpd(self, ctx: InstallContext, domains: list[str]) -> None:
        if ctx.facts.is_debian:
            if not ctx.path("/etc/lighttpd/conf-enabled/15-fastcgi-php.conf").exists():
                result = ctx.runner.run(["lighty-enable-mod", "fastcgi", "fastcgi-php"])
                if not result.ok:
                    ctx.warn(f"Enabling lighttpd fastcgi modules failed ({result.describe()})")
            vhost_dir = "/etc/lighttpd/conf-enabled"
            name = "90-{domain}.conf"
        else:
            modules = ctx.path("/etc/lighttpd/modules.conf")
            if modules.exists():
                edit_file(
                    modules,
                    lambda text: text.replace('#include "conf.d/fastcgi.conf"', 'include "conf.d/fastcgi.conf"'),
                )
            main_conf = ctx.path("/etc/lighttpd/lighttpd.conf")
            if main_conf.exists():
                edit_file(
                    main_conf,
                    lambda text: append_block_once(text, LIGHTTPD_VHOSTS_INCLUDE, LIGHTTPD_VHOSTS_INCLUDE),
                )
            vhost_dir = "/etc/lighttpd/vhosts.d"
            name = "{domain}.conf"

        for domain in domains:
            content = templates.render_lighttpd_vhost(domain, ctx.config.domain_root(domain))
            write_if_changed(ctx.path(f"{vhost_dir}/{name.format(domain=domain)}"), content)

    # Shared

    def _prepare_doc_root(self, ctx: InstallContext) -> None:
        doc_root = ctx.config.doc_root
        ctx.path(doc_root).mkdir(parents=True, exist_ok=True)
        owner = ctx.facts.web_user_for(ctx.config.web_server)
        result = ctx.runner.run(["chown", "-R", f"{owner}:{owner}", str(ctx.path(doc_root))])
        if not result.ok:
            ctx.warn(f"Could not give {doc_root} to {owner} ({result.describe()})")
        ctx.runner.run(["chmod", "755", str(ctx.path(doc_root))])
        if ctx.runner.which("restorecon"):
            ctx.runner.run(["restorecon", "-R", str(ctx.path(doc_root))])

    def _provision_certificates(self, ctx: InstallContext, domains: list[str]) -> None:
        """One ACME request covering every domain, redirecting HTTP to HTTPS."""
        plugin = "nginx" if ctx.config.web_server == WebServer.NGINX else "apache"
        ctx.packages.install(["certbot", f"python3-certbot-{plugin}"])

        argv = ["certbot", f"--{plugin}"]
        for domain in domains:
            argv += ["-d", domain]
        argv += [
            "--non-interactive",
            "--agree-tos",
            "--keep-until-expiring",
            "-m",
            ctx.config.contact_email,
            "--redirect",
        ]
        result = ctx.runner.run(argv)
        if not result.ok:
            ctx.warn(f"Certificate provisioning failed ({result.describe()})", domains=domains)

"""Optional FTP, cache, and message queue services."""

from __future__ import annotations

import tarfile
from pathlib import Path

import httpx

from lampkit_cli.config import DEFAULT_KAFKA_VERSION
from lampkit_cli.shared.logging import get_logger

from .. import templates
from ..context import InstallContext
from ..errors import PackageInstallFailed, ServiceControlFailed
from ..files import write_if_changed
from ..models import Cache, Configuration, Queue
from .base import Step

logger = get_logger(__name__)

ZOOKEEPER_UNIT_PATH = "/etc/systemd/system/zookeeper.service"
KAFKA_UNIT_PATH = "/etc/systemd/system/kafka.service"


class FtpInstaller(Step):
    """vsftpd."""

    name = "FTP/SFTP"

    def enabled(self, config: Configuration) -> bool:
        return config.ftp_enabled

    def run(self, ctx: InstallContext) -> None:
        ctx.packages.install(["vsftpd"])
        try:
            ctx.services.enable("vsftpd", fatal=False)
        except ServiceControlFailed as e:
            ctx.warn(e.message)


class CacheInstaller(Step):
    """Redis, Memcached, or Varnish."""

    name = "Cache"

    def enabled(self, config: Configuration) -> bool:
        return config.cache != Cache.NONE

    def packages_for(self, ctx: InstallContext) -> list[str]:
        v = ctx.config.php_version
        debian = ctx.facts.is_debian
        return {
            Cache.REDIS: ["redis-server" if debian else "redis"],
            Cache.MEMCACHED: ["memcached", f"php{v}-memcached" if debian else "php-pecl-memcached"],
            Cache.VARNISH: ["varnish"],
            Cache.NONE: [],
        }[ctx.config.cache]

    def service_for(self, ctx: InstallContext) -> str | None:
        return {
            Cache.REDIS: "redis-server" if ctx.facts.is_debian else "redis",
            Cache.MEMCACHED: "memcached",
            Cache.VARNISH: "varnish",
            Cache.NONE: None,
        }[ctx.config.cache]

    def run(self, ctx: InstallContext) -> None:
        ctx.packages.install(self.packages_for(ctx))
        service = self.service_for(ctx)
        if service:
            try:
                ctx.services.enable(service, fatal=False)
            except ServiceControlFailed as e:
                ctx.warn(e.message)


class QueueInstaller(Step):
    """RabbitMQ, or Kafka with ZooKeeper under systemd."""

    name = "Message Queue"

    def __init__(self, kafka_version: str = DEFAULT_KAFKA_VERSION):
        self.kafka_version = kafka_version

    def enabled(self, config: Configuration) -> bool:
        return config.queue != Queue.NONE

    def run(self, ctx: InstallContext) -> None:
        {
            Queue.RABBITMQ: self._install_rabbitmq,
            Queue.KAFKA: self._install_kafka,
            Queue.NONE: lambda ctx: None,
        }[ctx.config.queue](ctx)

    def _install_rabbitmq(self, ctx: InstallContext) -> None:
        ctx.packages.install(["rabbitmq-server"])
        try:
            ctx.services.enable("rabbitmq-server", fatal=False)
        except ServiceControlFailed as e:
            ctx.warn(e.message)

    def _install_kafka(self, ctx: InstallContext) -> None:
        ctx.packages.install([ctx.facts.java_package_name])

        kafka_home = ctx.path(templates.KAFKA_HOME)
        if not (kafka_home / "bin").is_dir():
            archive = ctx.temp.register(ctx.path("/tmp/kafka.tgz"))
            self._download(ctx, archive)
            self._extract(archive, kafka_home)

        if not ctx.runner.run(["id", "kafka"]).ok:
            result = ctx.runner.run(
                ["useradd", "--system", "--no-create-home", "--shell", "/bin/false", "kafka"]
            )
            if not result.ok:
                ctx.warn(f"Could not create kafka user ({result.describe()})")
        ctx.runner.run(["chown", "-R", "kafka:kafka", str(kafka_home)])

        write_if_changed(ctx.path(ZOOKEEPER_UNIT_PATH), templates.ZOOKEEPER_UNIT)
        write_if_changed(ctx.path(KAFKA_UNIT_PATH), templates.KAFKA_UNIT)
        ctx.services.daemon_reload()
        # Broker requires the coordination service
        ctx.services.enable("zookeeper", fatal=True)
        ctx.services.enable("kafka", fatal=True)

    def _download(self, ctx: InstallContext, archive: Path) -> None:
        url = templates.kafka_archive_url(self.kafka_version)
        last_error = ""
        for attempt in range(1, ctx.retry.attempts + 1):
            try:
                logger.info("downloading kafka", url=url, attempt=attempt)
                ctx.fetch(url, archive)
                return
            except httpx.HTTPError as e:
                last_error = str(e)
                logger.warning("kafka download failed", attempt=attempt, error=last_error)
                if attempt < ctx.retry.attempts:
                    ctx.sleep(ctx.retry.backoff_seconds)
        raise PackageInstallFailed([f"kafka-{self.kafka_version}"], last_error)

    def _extract(self, archive: Path, kafka_home: Path) -> None:
        """Unpack the release archive so its top directory becomes kafka_home."""
        kafka_home.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive, "r:gz") as tar:
            members = []
            for member in tar.getmembers():
                parts = Path(member.name).parts
                if len(parts) < 2 or ".." in parts:
                    continue
                member.name = str(Path(*parts[1:]))
                members.append(member)
            tar.extractall(kafka_home, members=members)

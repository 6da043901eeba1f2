"""Docker Compose and Ansible artifact generation."""

from __future__ import annotations

from lampkit_cli.shared.logging import get_logger

from .. import templates
from ..context import InstallContext
from ..files import write_if_changed
from ..models import Configuration
from .base import Step

logger = get_logger(__name__)

COMPOSE_FILE = "docker-compose.yml"
COMPOSE_ENV_FILE = ".env"
PLAYBOOK_FILE = "site.yml"


class DockerComposeGenerator(Step):
    """Write docker-compose.yml plus a private .env holding the password."""

    name = "Docker Compose"

    def enabled(self, config: Configuration) -> bool:
        return config.generate_docker

    def run(self, ctx: InstallContext) -> None:
        out_dir = ctx.config.artifact_dir
        compose = templates.dump_yaml(templates.build_compose_dict(ctx.config))
        write_if_changed(out_dir / COMPOSE_FILE, compose)
        write_if_changed(
            out_dir / COMPOSE_ENV_FILE,
            templates.render_compose_env(ctx.config.credentials.db_password),
            mode=0o600,
        )
        logger.info("wrote compose file", path=str(out_dir / COMPOSE_FILE))


class AnsiblePlaybookGenerator(Step):
    """Write site.yml."""

    name = "Ansible Playbook"

    def enabled(self, config: Configuration) -> bool:
        return config.generate_ansible

    def run(self, ctx: InstallContext) -> None:
        path = ctx.config.artifact_dir / PLAYBOOK_FILE
        write_if_changed(path, templates.dump_yaml(templates.build_playbook(ctx.config)))
        logger.info("wrote playbook", path=str(path))

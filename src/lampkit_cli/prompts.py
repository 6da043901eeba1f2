"""Configuration collection for install and upgrade runs.

This module builds a Configuration before anything touches the host:
- Interactive questionary prompts (ConfigurationPrompter)
- A YAML answers file for unattended runs (load_answers)
- The database password from LAMPKIT_DB_PASSWORD or a hidden prompt
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

import questionary
import yaml
from questionary import Choice

from .provision import (
    Cache,
    Configuration,
    Credentials,
    DbEngine,
    InstallProfile,
    Mode,
    Queue,
    WebServer,
)
from .provision.models import DEFAULT_DOC_ROOT
from .provision.validator import is_valid_hostname
from .shared.logging import register_secret

PASSWORD_ENV = "LAMPKIT_DB_PASSWORD"
ROOT_PASSWORD_ENV = "LAMPKIT_DB_ROOT_PASSWORD"

E = TypeVar("E", bound=Enum)


class AnswersError(ValueError):
    """Answers file is unreadable or holds an invalid value."""


def _ask(question: questionary.Question) -> Any:
    answer = question.ask()
    if answer is None:
        # questionary returns None on Ctrl+C
        raise KeyboardInterrupt("Cancelled by user")
    return answer


def split_domains(value: str | list[str] | None) -> tuple[str, ...]:
    """Split a comma-separated string (or list) into trimmed domains."""
    if value is None:
        return ()
    items = value.split(",") if isinstance(value, str) else [str(v) for v in value]
    return tuple(d.strip() for d in items if d.strip())


def validate_domains(text: str) -> bool | str:
    """questionary validator for the comma-separated domain answer."""
    domains = split_domains(text)
    if not domains:
        return "At least one domain is required"
    invalid = [d for d in domains if not is_valid_hostname(d)]
    if invalid:
        return f"Invalid domain name: {invalid[0]}"
    return True


def parse_enum(enum_cls: type[E], value: Any) -> E:
    """Match an enum member by value or name, ignoring case."""
    text = str(value).strip().lower()
    for member in enum_cls:
        if text in (member.value.lower(), member.name.lower()):
            return member
    choices = ", ".join(m.value for m in enum_cls)
    raise AnswersError(f"Invalid {enum_cls.__name__} '{value}'. Expected one of: {choices}")


def resolve_credentials(password: str | None = None) -> Credentials:
    """Database credentials from the environment, else a hidden prompt.

    Every value is registered with the log redactor before it is returned.
    """
    password = password or os.environ.get(PASSWORD_ENV)
    if not password:
        password = _ask(
            questionary.password(
                "Enter a default password for DB and admin panels:",
                validate=lambda text: bool(text) or "Password cannot be empty",
            )
        )
    current_root = os.environ.get(ROOT_PASSWORD_ENV) or None
    register_secret(password)
    register_secret(current_root)
    return Credentials(db_password=password, current_root_password=current_root)


class ConfigurationPrompter:
    """Interactive prompts mirroring the installer's question flow."""

    def prompt_mode(self) -> Mode:
        return _ask(
            questionary.select(
                "Choose an operation:",
                choices=[
                    Choice("Install", value=Mode.INSTALL),
                    Choice("Upgrade", value=Mode.UPGRADE),
                    Choice("Uninstall", value=Mode.UNINSTALL),
                ],
            )
        )

    def prompt_configuration(
        self,
        mode: Mode,
        php_version: str,
        artifact_dir: Path | None = None,
    ) -> Configuration:
        """Ask every question for the chosen profile.

        Args:
            mode: INSTALL or UPGRADE
            php_version: Version chosen by the runtime resolver
            artifact_dir: Where generated artifacts go

        Returns:
            Complete Configuration

        Raises:
            KeyboardInterrupt: If the user cancels a prompt
        """
        profile = _ask(
            questionary.select(
                "Select installation type:",
                choices=[
                    Choice("Standard LAMP", value=InstallProfile.STANDARD),
                    Choice("Advanced Installation", value=InstallProfile.ADVANCED),
                ],
            )
        )
        credentials = resolve_credentials()
        domains = split_domains(
            _ask(
                questionary.text(
                    "Enter domain name(s) (comma-separated):",
                    validate=validate_domains,
                )
            )
        )
        doc_root = _ask(
            questionary.text(
                "Enter document root directory:",
                default=DEFAULT_DOC_ROOT,
                validate=lambda text: text.startswith("/") or "Document root must be an absolute path",
            )
        )
        extra: dict[str, Any] = {}
        if artifact_dir is not None:
            extra["artifact_dir"] = artifact_dir

        if profile == InstallProfile.STANDARD:
            return Configuration.standard(mode, credentials, domains, php_version, doc_root, **extra)

        questionary.print(f"Auto-selected best PHP version: {php_version}")
        db_engine = self._select("Select database engine:", DbEngine)
        utils_enabled = self._confirm("Install optional tools (git, curl, htop, zip, etc.)?")
        ftp_enabled = self._confirm("Install FTP/SFTP server?")
        cache = self._select("Enable caching:", Cache)
        queue = self._select("Select messaging queue engine:", Queue)
        web_server = self._select("Select web server:", WebServer)
        admin_panel = db_engine.mysql_family and self._confirm("Install phpMyAdmin?", default=True)

        ssh_deploy = self._confirm("Setup SSH deployment user?")
        if ssh_deploy:
            extra["deploy_user"] = _ask(questionary.text("Deployment username:", default="deploy"))
            key = _ask(questionary.text("Public SSH key for the deployment user (leave blank to skip):"))
            extra["deploy_ssh_key"] = key.strip() or None
        allowed = _ask(
            questionary.text("Allowed SSH usernames (space-separated, leave empty for all):")
        )
        ssh_hardened = _ask(
            questionary.select(
                "Select SSH configuration type:",
                choices=[Choice("Standard SSH", value=False), Choice("Hardened SSH", value=True)],
            )
        )

        return Configuration(
            mode=mode,
            install_profile=InstallProfile.ADVANCED,
            credentials=credentials,
            domains=domains,
            php_version=php_version,
            doc_root=doc_root,
            db_engine=db_engine,
            web_server=web_server,
            cache=cache,
            queue=queue,
            ftp_enabled=ftp_enabled,
            utils_enabled=utils_enabled,
            ssh_hardened=ssh_hardened,
            ssh_deploy_enabled=ssh_deploy,
            generate_docker=self._confirm("Generate Docker Compose file for containerized deployment?"),
            generate_ansible=self._confirm("Generate Ansible playbook for automation?"),
            ssh_allowed_users=tuple(allowed.split()),
            admin_panel_enabled=admin_panel,
            **extra,
        )

    def _select(self, message: str, enum_cls: type[E]) -> E:
        return _ask(
            questionary.select(message, choices=[Choice(m.value, value=m) for m in enum_cls])
        )

    def _confirm(self, message: str, default: bool = False) -> bool:
        return _ask(questionary.confirm(message, default=default))

    def confirm_uninstall(self) -> bool:
        return _ask(
            questionary.confirm(
                "Are you sure you want to proceed? This action cannot be reversed!",
                default=False,
            )
        )


def _flag(answers: dict[str, Any], key: str, default: bool = False) -> bool:
    value = answers.get(key, default)
    if not isinstance(value, bool):
        raise AnswersError(f"'{key}' must be true or false, got {value!r}")
    return value


def load_answers(
    path: Path,
    mode: Mode,
    php_version: str,
    credentials: Credentials,
    artifact_dir: Path | None = None,
) -> Configuration:
    """Build a Configuration from a YAML answers file.

    Keys mirror the interactive questions (profile, domains, doc_root,
    db_engine, web_server, cache, queue, and the yes/no flags). The password
    is never read from the file, and php_version always comes from the
    platform probe.

    Raises:
        AnswersError: Unreadable file or invalid value
    """
    try:
        with open(path) as f:
            answers = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise AnswersError(f"Cannot read answers file {path}: {e}") from e
    if not isinstance(answers, dict):
        raise AnswersError(f"Answers file {path} must contain a mapping")

    profile = parse_enum(InstallProfile, answers.get("profile", "standard"))
    domains = split_domains(answers.get("domains"))
    doc_root = str(answers.get("doc_root", DEFAULT_DOC_ROOT))
    extra: dict[str, Any] = {}
    if artifact_dir is not None:
        extra["artifact_dir"] = artifact_dir
    for key in ("deploy_user", "deploy_ssh_key", "admin_email"):
        if answers.get(key):
            extra[key] = str(answers[key])
    if "alt_ssh_port" in answers:
        try:
            extra["alt_ssh_port"] = int(answers["alt_ssh_port"])
        except (TypeError, ValueError) as e:
            raise AnswersError(f"'alt_ssh_port' must be a number, got {answers['alt_ssh_port']!r}") from e

    try:
        if profile == InstallProfile.STANDARD:
            return Configuration.standard(mode, credentials, domains, php_version, doc_root, **extra)

        db_engine = parse_enum(DbEngine, answers.get("db_engine", DbEngine.MARIADB.value))
        allowed = answers.get("ssh_allowed_users", ())
        if isinstance(allowed, str):
            allowed = allowed.split()
        return Configuration(
            mode=mode,
            install_profile=profile,
            credentials=credentials,
            domains=domains,
            php_version=php_version,
            doc_root=doc_root,
            db_engine=db_engine,
            web_server=parse_enum(WebServer, answers.get("web_server", WebServer.APACHE.value)),
            cache=parse_enum(Cache, answers.get("cache", Cache.NONE.value)),
            queue=parse_enum(Queue, answers.get("queue", Queue.NONE.value)),
            ftp_enabled=_flag(answers, "ftp"),
            utils_enabled=_flag(answers, "utils"),
            ssh_hardened=_flag(answers, "ssh_hardened"),
            ssh_deploy_enabled=_flag(answers, "ssh_deploy"),
            generate_docker=_flag(answers, "generate_docker"),
            generate_ansible=_flag(answers, "generate_ansible"),
            ssh_allowed_users=tuple(str(u) for u in allowed),
            admin_panel_enabled=_flag(answers, "admin_panel", default=db_engine.mysql_family),
            **extra,
        )
    except AnswersError:
        raise
    except ValueError as e:
        raise AnswersError(str(e)) from e

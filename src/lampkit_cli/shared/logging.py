"""Logging configuration for lampkit-cli.

Configures structlog on top of standard logging. Console output goes to
stderr at the requested level; every run also appends timestamped lines to
the installer log file. Registered secrets are redacted from every event
before any handler sees it.
"""

import logging
import sys
from pathlib import Path
from typing import Any

import structlog

REDACTED = "***"

_secrets: set[str] = set()


def register_secret(value: str | None) -> None:
    """Mark a value as secret so it never reaches a log handler.

    Args:
        value: Secret string (empty values are ignored)
    """
    if value:
        _secrets.add(value)


def clear_secrets() -> None:
    """Forget all registered secrets."""
    _secrets.clear()


def redact(text: str) -> str:
    """Replace every registered secret in text with a placeholder."""
    # Longest first so a secret containing another is fully masked
    for secret in sorted(_secrets, key=len, reverse=True):
        if secret in text:
            text = text.replace(secret, REDACTED)
    return text


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact(value)
    if isinstance(value, (list, tuple)):
        return type(value)(_redact_value(v) for v in value)
    if isinstance(value, dict):
        return {k: _redact_value(v) for k, v in value.items()}
    return value


def redact_secrets(
    logger: Any, method_name: str, event_dict: structlog.types.EventDict
) -> structlog.types.EventDict:
    """structlog processor that masks registered secrets in all fields."""
    if not _secrets:
        return event_dict
    return {key: _redact_value(value) for key, value in event_dict.items()}


def configure_logging(
    level: str = "warning",
    log_file: str | Path | None = None,
) -> None:
    """Configure logging for the application.

    Called once on startup. Configures both standard logging and structlog.

    Args:
        level: Console log level (debug, info, warning, error, critical)
        log_file: Installer log, opened in append mode at info level

    Usage:
        Install run: configure_logging("info", log_file=get_log_file())
        Query commands: configure_logging(level) (stderr only)
    """
    log_level = getattr(logging, level.upper(), logging.WARNING)

    shared_processors: list[structlog.types.Processor] = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        redact_secrets,
    ]

    handlers: list[logging.Handler] = []

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(log_level)
    stream_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(),
            ],
        )
    )
    handlers.append(stream_handler)

    root_level = log_level
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(str(log_path), mode="a", encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                foreign_pre_chain=shared_processors,
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    structlog.dev.ConsoleRenderer(colors=False),
                ],
            )
        )
        handlers.append(file_handler)
        root_level = min(log_level, logging.INFO)

    logging.basicConfig(
        level=root_level,
        handlers=handlers,
        format="%(message)s",
        force=True,
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)

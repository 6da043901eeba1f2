"""Compatibility checks run before any mutation."""

from __future__ import annotations

import re

from .errors import CompatibilityError, CompatibilityViolation
from .models import Cache, Configuration, DbEngine, WebServer

RULE_ORACLE_XE = "oracle-xe-unsupported"
RULE_VARNISH_NGINX = "varnish-requires-nginx"
RULE_DOMAINS = "domains-required"
RULE_DOMAIN_NAME = "domain-invalid"

# RFC 1123 label: alphanumerics and inner hyphens, at most 63 characters
_LABEL = re.compile(r"(?!-)[A-Za-z0-9-]{1,63}(?<!-)")


def is_valid_hostname(name: str) -> bool:
    """True when name is a dotted RFC 1123 hostname."""
    if not name or len(name) > 253:
        return False
    return all(_LABEL.fullmatch(label) for label in name.split("."))


class CompatibilityValidator:
    """Reject known-incompatible configuration combinations."""

    def validate(self, config: Configuration) -> list[CompatibilityViolation]:
        """Collect every violation in the configuration.

        Args:
            config: Configuration to check.

        Returns:
            All violations found (empty when the configuration is accepted).
        """
        violations = []
        if config.db_engine == DbEngine.ORACLE_XE:
            violations.append(
                CompatibilityViolation(
                    RULE_ORACLE_XE,
                    "Oracle XE cannot be provisioned automatically; choose another database engine",
                )
            )
        if config.cache == Cache.VARNISH and config.web_server != WebServer.NGINX:
            violations.append(
                CompatibilityViolation(
                    RULE_VARNISH_NGINX,
                    f"Varnish caching requires Nginx (selected: {config.web_server.value})",
                )
            )
        if not config.domains:
            violations.append(CompatibilityViolation(RULE_DOMAINS, "At least one domain is required"))
        for domain in config.domains:
            if not is_valid_hostname(domain):
                violations.append(
                    CompatibilityViolation(RULE_DOMAIN_NAME, f"Invalid domain name: {domain!r}")
                )
        return violations

    def check(self, config: Configuration) -> None:
        """Raise if the configuration has any violation.

        Raises:
            CompatibilityError: Carrying the full violation list.
        """
        violations = self.validate(config)
        if violations:
            raise CompatibilityError(violations)

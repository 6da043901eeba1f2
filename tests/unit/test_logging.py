"""Unit tests for logging and secret redaction."""

from __future__ import annotations

import logging

from lampkit_cli.shared.logging import (
    REDACTED,
    configure_logging,
    get_logger,
    redact,
    redact_secrets,
    register_secret,
)
from lampkit_cli.shared.paths import LOG_FILE_NAME, get_log_file


class TestRedaction:
    """Tests for secret redaction."""

    def test_redact_registered_secret(self):
        register_secret("hunter2")
        assert redact("password is hunter2!") == f"password is {REDACTED}!"

    def test_empty_secret_ignored(self):
        register_secret("")
        register_secret(None)
        assert redact("nothing here") == "nothing here"

    def test_longest_secret_masked_first(self):
        register_secret("abc")
        register_secret("abcdef")
        assert redact("x abcdef y") == f"x {REDACTED} y"

    def test_processor_masks_nested_values(self):
        register_secret("s3cret")
        event = redact_secrets(
            None,
            "info",
            {"event": "ran s3cret", "argv": ["mysql", "-ps3cret"], "env": {"MYSQL_PWD": "s3cret"}, "n": 3},
        )
        assert event == {
            "event": f"ran {REDACTED}",
            "argv": ["mysql", f"-p{REDACTED}"],
            "env": {"MYSQL_PWD": REDACTED},
            "n": 3,
        }


class TestConfigureLogging:
    def test_log_file_never_holds_secret(self, tmp_path):
        log_file = tmp_path / "logs" / LOG_FILE_NAME
        register_secret("Pa55w0rd")
        configure_logging("warning", log_file=log_file)

        get_logger("lampkit_cli.test").info("securing database", sql="ALTER USER root IDENTIFIED BY 'Pa55w0rd'")
        for handler in logging.getLogger().handlers:
            handler.flush()

        text = log_file.read_text()
        assert "securing database" in text
        assert "Pa55w0rd" not in text
        assert REDACTED in text


class TestLogFileLocation:
    def test_desktop_preferred(self, tmp_path):
        (tmp_path / "Desktop").mkdir()
        assert get_log_file(tmp_path) == tmp_path / "Desktop" / LOG_FILE_NAME

    def test_home_fallback(self, tmp_path):
        assert get_log_file(tmp_path) == tmp_path / LOG_FILE_NAME

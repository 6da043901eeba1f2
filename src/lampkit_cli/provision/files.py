"""Idempotent configuration file editing.

The text functions are pure: applying one twice yields the same text as
applying it once. The path functions write only when content changes.
"""

from __future__ import annotations

import os
import re
import shutil
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

ONCE_SUFFIX = ".bak.lampkit"


def write_if_changed(path: Path, content: str, mode: int | None = None) -> bool:
    """Write a file only when its content differs.

    Args:
        path: Target file (parent directories are created).
        content: Full file content.
        mode: Permission bits applied after writing.

    Returns:
        True if the file was written.
    """
    path = Path(path)
    changed = not path.exists() or path.read_text(encoding="utf-8") != content
    if changed:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    if mode is not None and (changed or (path.stat().st_mode & 0o777) != mode):
        os.chmod(path, mode)
    return changed


def edit_file(path: Path, transform: Callable[[str], str]) -> bool:
    """Apply a text transform to an existing file, writing only on change.

    Returns:
        True if the file was modified.
    """
    path = Path(path)
    original = path.read_text(encoding="utf-8")
    updated = transform(original)
    if updated == original:
        return False
    path.write_text(updated, encoding="utf-8")
    return True


def backup_once(path: Path, suffix: str = ONCE_SUFFIX) -> Path | None:
    """Copy a file to `<path><suffix>` unless that backup already exists.

    Returns:
        Backup path, or None if the source does not exist.
    """
    path = Path(path)
    if not path.exists():
        return None
    backup = path.with_name(path.name + suffix)
    if not backup.exists():
        shutil.copy2(path, backup)
    return backup


def backup_timestamped(path: Path, now: datetime | None = None) -> Path:
    """Copy a file to `<path>.bak.<YYYYmmdd_HHMMSS>`.

    Returns:
        Path to the backup file.
    """
    path = Path(path)
    timestamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    backup = path.with_name(f"{path.name}.bak.{timestamp}")
    shutil.copy2(path, backup)
    return backup


def _ensure_trailing_newline(text: str) -> str:
    return text if not text or text.endswith("\n") else text + "\n"


def set_directive(text: str, key: str, value: str) -> str:
    """Set a whitespace-separated directive (sshd_config style).

    The first active line for key is replaced, otherwise the first commented
    one, otherwise the directive is added before any Match block. Further
    active occurrences are dropped so the key appears exactly once.
    """
    wanted = f"{key} {value}"
    active = re.compile(rf"^\s*{re.escape(key)}\s+", re.IGNORECASE)
    commented = re.compile(rf"^\s*#\s*{re.escape(key)}\s+", re.IGNORECASE)
    lines = text.splitlines()

    target = next((i for i, line in enumerate(lines) if active.match(line)), None)
    if target is None:
        target = next((i for i, line in enumerate(lines) if commented.match(line)), None)

    if target is None:
        match_at = next(
            (i for i, line in enumerate(lines) if re.match(r"^\s*Match\s+", line, re.IGNORECASE)),
            len(lines),
        )
        lines.insert(match_at, wanted)
    else:
        lines[target] = wanted
        lines = [line for i, line in enumerate(lines) if i == target or not active.match(line)]
    return _ensure_trailing_newline("\n".join(lines))


def set_ini_value(text: str, key: str, value: str, comment: str = ";") -> str:
    """Set `key = value` in an ini-style file without sections.

    Replaces the active line, else uncomments the first commented one,
    else appends.
    """
    wanted = f"{key} = {value}"
    active = re.compile(rf"^\s*{re.escape(key)}\s*=")
    commented = re.compile(rf"^\s*{re.escape(comment)}\s*{re.escape(key)}\s*=")
    lines = text.splitlines()
    for pattern in (active, commented):
        for i, line in enumerate(lines):
            if pattern.match(line):
                lines[i] = wanted
                return _ensure_trailing_newline("\n".join(lines))
    lines.append(wanted)
    return _ensure_trailing_newline("\n".join(lines))


def set_section_value(text: str, section: str, key: str, value: str) -> str:
    """Set `key=value` inside an ini section (my.cnf style).

    An existing (possibly commented) line for key is replaced; otherwise the
    line is inserted right after the section header, which is appended when
    missing.
    """
    wanted = f"{key}={value}"
    line_re = re.compile(rf"^\s*#?\s*{re.escape(key)}\s*=")
    header = f"[{section}]"
    lines = text.splitlines()
    for i, line in enumerate(lines):
        if line_re.match(line):
            lines[i] = wanted
            return _ensure_trailing_newline("\n".join(lines))
    try:
        at = next(i for i, line in enumerate(lines) if line.strip() == header)
    except StopIteration:
        lines.append(header)
        at = len(lines) - 1
    lines.insert(at + 1, wanted)
    return _ensure_trailing_newline("\n".join(lines))


def append_block_once(text: str, marker: str, block: str) -> str:
    """Append a block unless marker already occurs in text."""
    if marker in text:
        return text
    return _ensure_trailing_newline(text) + "\n" + block.rstrip("\n") + "\n"


def insert_after_once(text: str, anchor: str, marker: str, block: str) -> str:
    """Insert a block after the first line containing anchor, once.

    Text is unchanged when marker already occurs or anchor is absent.
    """
    if marker in text:
        return text
    lines = text.splitlines()
    for i, line in enumerate(lines):
        if anchor in line:
            lines[i + 1 : i + 1] = block.rstrip("\n").splitlines()
            return _ensure_trailing_newline("\n".join(lines))
    return text

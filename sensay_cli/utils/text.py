"""Text formatting helpers."""

from __future__ import annotations

import re

_SLUG_RE = re.compile(r"[^a-z0-9]")
_SIZE_UNITS = ("B", "KB", "MB", "GB")


def format_file_size(size: int) -> str:
    """Render a byte count as ``12.3KB`` style text."""
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{value:.1f}{_SIZE_UNITS[unit]}"


def truncate(text: str, limit: int = 100) -> str:
    return text[:limit]


def slugify(name: str) -> str:
    """Lowercase and replace every non-alphanumeric character with a dash."""
    return _SLUG_RE.sub("-", name.lower())

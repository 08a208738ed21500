"""
Church Song Navigator - Shared Utilities

Common helpers used across multiple modules to avoid duplication.
"""

import re
from typing import Any, Optional

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_filename(name: str) -> str:
    """
    Make an uploaded filename safe for use inside a storage key.

    Every character outside ``[A-Za-z0-9._-]`` becomes ``_``, so non-ASCII
    names keep their length and extension: ``主祷文 1.png`` -> ``____1.png``.
    """
    return _UNSAFE_FILENAME_CHARS.sub("_", name or "")


def to_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """Parse an int from a query/form/path value, returning *default* on failure."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default

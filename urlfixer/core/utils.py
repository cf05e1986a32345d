"""
Utility helpers shared across routers/services.
"""

import re

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB")
_SCHEME_PREFIX = re.compile(r"^(?:https?://|//)", re.IGNORECASE)


def strip_scheme(url: str) -> str:
    """Remove a leading http(s):// or protocol-relative // from url."""
    return _SCHEME_PREFIX.sub("", url or "", count=1)


def human_readable_filesize(size: int, precision: int = 2) -> str:
    """
    Format a byte count with binary units, e.g. 1536 -> "1.50 KB".
    """
    value = float(max(int(size or 0), 0))
    unit = 0
    while value >= 1024 and unit < len(SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    return f"{value:.{precision}f} {SIZE_UNITS[unit]}"

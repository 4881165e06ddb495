from __future__ import annotations

"""
Human readable byte sizes.

Sizes are written as a base-10 integer with an optional, case-sensitive
suffix: "KB" (1024), "MB" (1024 ** 2) or "GB" (1024 ** 3). A bare number is a
raw byte count. "0" means unlimited.
"""

from .exceptions import BadSize

UNLIMITED = 0
MAX_SIZE = 2**63 - 1

SUFFIXES: dict[str, int] = {
    "KB": 1024,
    "MB": 1024**2,
    "GB": 1024**3,
}


def parse_size(raw: str) -> int:
    """
    Convert a size string into a byte count.

    Parameters
    ----------
    raw:
        The size, e.g. "512", "10KB", "50MB".

    Returns
    -------
    int
        The number of bytes. `UNLIMITED` (0) disables rotation.

    Raises
    ------
    BadSize
        If the body is missing or not a non-negative base-10 integer, if the
        suffix is unknown, or if the result does not fit a signed 64-bit count.
    """
    if not isinstance(raw, str) or not raw:
        raise BadSize(f"invalid size: {raw!r}")

    body, multiplier = raw, 1
    for suffix, factor in SUFFIXES.items():
        if raw.endswith(suffix):
            body, multiplier = raw[: -len(suffix)], factor
            break

    # str.isdigit() accepts non-ASCII digits, which int() would also take.
    if not body or not (body.isascii() and body.isdigit()):
        raise BadSize(f"invalid size: {raw!r}")

    value = int(body, 10) * multiplier
    if value > MAX_SIZE:
        raise BadSize(f"size out of range: {raw!r}")
    return value


def format_size(value: int) -> str:
    """
    Render a byte count using the largest suffix that divides it exactly.

    `parse_size(format_size(n)) == n` for every valid `n`.
    """
    if value < 0:
        raise BadSize(f"negative size: {value}")
    if value == 0:
        return "0"
    for suffix, factor in sorted(SUFFIXES.items(), key=lambda item: item[1], reverse=True):
        if value % factor == 0:
            return f"{value // factor}{suffix}"
    return str(value)

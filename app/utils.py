"""Utility helpers for the PanStream service."""

from __future__ import annotations

import math
import re
from typing import Any, Iterable, Sequence

FieldPath = str | tuple[str, ...]

ABSOLUTE_URL_RE = re.compile(r"^https?://", re.IGNORECASE)
BARE_HOST_RE = re.compile(
    r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9-]*[a-z0-9])?)+(?::\d+)?(?:/|$)",
    re.IGNORECASE,
)
COUNT_RE = re.compile(r"^([0-9]+(?:\.[0-9]+)?)\s*([kmb])?\+?$", re.IGNORECASE)
COUNT_SUFFIXES = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}
TRUTHY_STRINGS = {"1", "true", "yes", "on", "y"}


def dig(data: Any, path: FieldPath) -> Any:
    """Follow ``path`` through nested mappings, returning ``None`` on a miss."""

    keys = (path,) if isinstance(path, str) else path
    current = data
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return not value
    return False


def first_non_empty(data: Any, candidates: Iterable[FieldPath]) -> Any:
    """Return the first non-empty value found at the candidate paths."""

    for path in candidates:
        value = dig(data, path)
        if not is_empty(value):
            return value
    return None


def first_list(data: Any, candidates: Sequence[FieldPath]) -> list[Any] | None:
    """Return the first list found at the candidate paths, empty or not."""

    for path in candidates:
        value = dig(data, path)
        if isinstance(value, list):
            return value
    return None


def as_text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list, tuple)):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def coerce_count(value: Any) -> int:
    """Coerce counts such as ``12``, ``"1,234"`` or ``"1.1M"`` to ``int >= 0``."""

    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        return max(0, int(value))
    if not isinstance(value, str):
        return 0
    text = value.strip().replace(",", "").replace("_", "")
    match = COUNT_RE.match(text)
    if not match:
        return 0
    suffix = (match.group(2) or "").lower()
    number = float(match.group(1)) * COUNT_SUFFIXES.get(suffix, 1)
    if not math.isfinite(number):
        return 0
    return max(0, int(number))


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_STRINGS
    return False


def to_absolute_url(value: Any) -> str:
    """Return ``value`` as an absolute ``https://`` URL where one can be inferred.

    Protocol-relative (``//cdn/x.jpg``) and bare-host (``cdn.example.com/x.jpg``)
    values gain an ``https:`` scheme; absolute URLs and anything else are
    returned stripped but otherwise untouched, so the function is idempotent.
    """

    text = as_text(value)
    if not text:
        return ""
    if ABSOLUTE_URL_RE.match(text):
        return text
    if text.startswith("//"):
        return f"https:{text}"
    if BARE_HOST_RE.match(text):
        return f"https://{text}"
    return text


def is_valid_cover_url(value: Any) -> bool:
    """Return whether ``value`` looks like a usable ``http(s)`` image URL."""

    if not isinstance(value, str):
        return False
    match = ABSOLUTE_URL_RE.match(value)
    if not match:
        return False
    remainder = value[match.end():]
    return "." in remainder and "/" in remainder

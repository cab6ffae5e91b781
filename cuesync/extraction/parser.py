"""Line-oriented parser for text-understanding output.

Analyses ask the collaborator to answer with ``KEY: value`` lines. This module
turns that raw text into fields with clear defaults. Nothing here raises:
malformed or empty output simply yields empty fields.
"""

from __future__ import annotations

import re

_FIELD_LINE = re.compile(
    r"^\s*(?:[-*•]\s*|\d+[.)]\s*)?(?P<key>[A-Za-z][A-Za-z0-9_ ]*?)\s*:\s*(?P<value>.*?)\s*$"
)


def _normalize_key(key: str) -> str:
    return re.sub(r"\s+", "_", key.strip()).upper()


def parse_fields(text: str | None) -> dict[str, list[str]]:
    """Collect ``KEY: value`` lines.

    Keys are case-insensitive (normalized to upper case, inner spaces become
    underscores) and may be preceded by a bullet or a list number. Repeated
    keys accumulate values in order. Lines without a key and lines with an
    empty value are ignored.

    Args:
        text: Raw collaborator output

    Returns:
        Mapping of normalized key to the values seen for it
    """
    fields: dict[str, list[str]] = {}
    if not text:
        return fields

    for line in text.splitlines():
        match = _FIELD_LINE.match(line)
        if not match:
            continue
        value = match.group("value")
        if not value:
            continue
        fields.setdefault(_normalize_key(match.group("key")), []).append(value)

    return fields


def first_value(fields: dict[str, list[str]], key: str, default: str = "") -> str:
    """First value recorded for ``key`` or ``default``."""
    values = fields.get(_normalize_key(key))
    return values[0] if values else default


def all_values(fields: dict[str, list[str]], key: str) -> list[str]:
    return list(fields.get(_normalize_key(key), []))


def parse_float(
    value: str | None,
    default: float,
    low: float | None = None,
    high: float | None = None,
) -> float:
    """Parse the first number in ``value`` and clamp it.

    Returns ``default`` (unclamped) when no number can be found.
    """
    if not value:
        return default
    match = re.search(r"-?\d+(?:\.\d+)?", value)
    if not match:
        return default
    number = float(match.group())
    if low is not None:
        number = max(low, number)
    if high is not None:
        number = min(high, number)
    return number


def parse_fraction(value: str | None, default: float) -> float:
    """Parse a value in [0, 1]; ``80%`` reads as 0.8."""
    if value and re.search(r"\d\s*%", value):
        percent = parse_float(value, float("nan"))
        if percent == percent:
            return min(1.0, max(0.0, percent / 100))
    return parse_float(value, default, 0.0, 1.0)


def parse_int(
    value: str | None,
    default: int,
    low: int | None = None,
    high: int | None = None,
) -> int:
    """Integer variant of :func:`parse_float` (rounds to nearest)."""
    number = parse_float(value, float("nan"))
    if number != number:  # NaN: nothing parseable
        return default
    result = round(number)
    if low is not None:
        result = max(low, result)
    if high is not None:
        result = min(high, result)
    return result


def split_list(value: str | None) -> list[str]:
    """Split a ``;`` or ``,`` separated value into stripped, non-empty items."""
    if not value:
        return []
    separator = ";" if ";" in value else ","
    return [item.strip() for item in value.split(separator) if item.strip()]


def split_record(value: str | None, size: int) -> list[str]:
    """Split a ``|`` separated record, padded or truncated to ``size`` items."""
    parts = [part.strip() for part in value.split("|")] if value else []
    parts = parts[:size]
    return parts + [""] * (size - len(parts))

"""CLI argument parsing and parameter conversion utilities."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

_DURATION_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_labels(labels: str | Mapping[str, Any] | None) -> dict[str, str]:
    """Parse runtime labels into a mapping.

    Parameters
    ----------
    labels : str | Mapping[str, Any] | None
        Labels as ``k=v,k2=v2`` or an existing mapping

    Returns
    -------
    dict[str, str]
        Label mapping; empty when ``labels`` is None or blank

    Raises
    ------
    ValueError
        If an entry is missing ``=`` or has an empty key
    """
    if labels is None:
        return {}

    if isinstance(labels, Mapping):
        return {str(k): str(v) for k, v in labels.items()}

    result: dict[str, str] = {}
    for entry in str(labels).split(","):
        entry = entry.strip()
        if not entry:
            continue

        key, sep, value = entry.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Invalid label '{entry}': expected key=value")

        result[key] = value.strip()

    return result


def parse_duration(value: str | int | float | None) -> float | None:
    """Parse a duration into seconds.

    Parameters
    ----------
    value : str | int | float | None
        ``"5m"``, ``"90s"``, ``"1h"``, ``"500ms"`` or a plain number of seconds

    Returns
    -------
    float | None
        Duration in seconds, or None when ``value`` is None

    Raises
    ------
    ValueError
        If the value is not a recognised positive duration
    """
    if value is None:
        return None

    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")

    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        match = _DURATION_PATTERN.match(str(value))
        if match is None:
            raise ValueError(f"Invalid duration: '{value}'. Use e.g. '90s', '5m' or '1h'")
        amount, unit = match.groups()
        seconds = float(amount) * _DURATION_UNITS[unit or "s"]

    if seconds <= 0:
        raise ValueError(f"Invalid duration: '{value}' must be positive")

    return seconds


__all__ = ["parse_labels", "parse_duration"]

"""CLI argument parsing and handling."""

from __future__ import annotations

from imagetest.cli.parsing import parse_duration, parse_labels

__all__ = ["parse_duration", "parse_labels"]

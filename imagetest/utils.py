"""Utility functions for imagetest."""

import logging
import re
import sys
from typing import Any

from imagetest.constants import DEFAULT_NAME_COLUMN_WIDTH


def sanitize_resource_name(name: str) -> str:
    """Sanitize a harness or feature name for use in Docker object names.

    Applies Docker container name rules:
    - Convert to lowercase
    - Replace invalid characters (keep only a-z, 0-9, dash, underscore, dot)
    - Remove consecutive dashes
    - Trim leading/trailing dashes

    Parameters
    ----------
    name : str
        Name to sanitize

    Returns
    -------
    str
        Sanitized name
    """
    name = name.lower()
    name = re.sub(r"[^a-z0-9_.\-]", "-", name)
    name = re.sub(r"-+", "-", name)
    return name.strip("-")


def harness_display_name(harness_id: str) -> str:
    """Return the user-facing name portion of a harness identifier.

    Identifiers are ``{name}-{encoded-seed}``; only the leading name is
    meaningful to readers, the suffix is treated as opaque.

    Parameters
    ----------
    harness_id : str
        Harness identifier

    Returns
    -------
    str
        Name portion, or the identifier unchanged when it has no suffix
    """
    name, sep, _ = harness_id.rpartition("-")
    return name if sep else harness_id


def log_and_print_error(message: str, *args: Any) -> None:
    """Log error message and print to stderr.

    Parameters
    ----------
    message : str
        Error message with optional format placeholders
    *args : Any
        Format arguments for message
    """
    logging.error(message, *args)
    formatted_msg = message % args if args else message
    print(f"Error: {formatted_msg}", file=sys.stderr)


def truncate_name(name: str, max_width: int = DEFAULT_NAME_COLUMN_WIDTH) -> str:
    """Truncate name to fit in column width.

    Parameters
    ----------
    name : str
        Name to truncate
    max_width : int
        Maximum width for name (default: DEFAULT_NAME_COLUMN_WIDTH)

    Returns
    -------
    str
        Truncated name with ellipsis if exceeds max_width, otherwise original name
    """
    if len(name) > max_width:
        return name[: max_width - 3] + "..."

    return name

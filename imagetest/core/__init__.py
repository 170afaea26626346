"""Core imagetest functionality."""

from __future__ import annotations

from imagetest.core.diagnostics import Diagnostic, Diagnostics
from imagetest.core.registry import HarnessHandle, HarnessRegistry
from imagetest.core.skip import should_skip
from imagetest.core.timeouts import Deadline, run_with_deadline

__all__ = [
    "Deadline",
    "Diagnostic",
    "Diagnostics",
    "HarnessHandle",
    "HarnessRegistry",
    "run_with_deadline",
    "should_skip",
]

"""Diagnostics collected while evaluating a lifecycle phase."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from imagetest.constants import Severity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Diagnostic:
    """A single error or warning with a short summary and longer detail."""

    severity: Severity
    summary: str
    detail: str = ""

    def __str__(self) -> str:
        if self.detail:
            return f"{self.severity.value}: {self.summary}: {self.detail}"
        return f"{self.severity.value}: {self.summary}"


@dataclass
class Diagnostics:
    """Ordered collection of diagnostics for one phase.

    Warnings never halt processing; callers stop a phase as soon as
    ``has_error()`` is true.
    """

    entries: list[Diagnostic] = field(default_factory=list)

    def add_error(self, summary: str, detail: str = "") -> None:
        logger.error("%s: %s", summary, detail)
        self.entries.append(Diagnostic(Severity.ERROR, summary, detail))

    def add_warning(self, summary: str, detail: str = "") -> None:
        logger.warning("%s: %s", summary, detail)
        self.entries.append(Diagnostic(Severity.WARNING, summary, detail))

    def extend(self, other: Diagnostics) -> None:
        self.entries.extend(other.entries)

    def has_error(self) -> bool:
        return any(d.severity is Severity.ERROR for d in self.entries)

    @property
    def errors(self) -> list[Diagnostic]:
        return [d for d in self.entries if d.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.entries if d.severity is Severity.WARNING]

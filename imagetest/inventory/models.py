"""Inventory data models."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, NewType

Harness = NewType("Harness", str)
"""Harness identifier of the form ``{name}-{encoded-seed}``."""


@dataclass(frozen=True)
class Feature:
    """A test unit attached to exactly one harness.

    Attributes
    ----------
    name : str
        Feature name, unique within its harness
    labels : Mapping[str, str]
        Descriptive labels consulted by the skip policy
    """

    name: str
    labels: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "labels", MappingProxyType(dict(self.labels)))

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "labels": dict(self.labels)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Feature:
        return cls(name=data["name"], labels=data.get("labels") or {})

"""Scoped failure taxonomy shared by the aggregation and clustering stages."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class InvalidGeometry(ValueError):
    """Raised when a raw geometry is not a usable polygon or multi-polygon."""


class UnionFailure(RuntimeError):
    """Raised when the polygons of one aggregation group cannot be merged."""


class DegenerateZone(ValueError):
    """Raised when a zone shape has no usable centroid or extent."""


class IssueKind(str, Enum):
    INVALID_GEOMETRY = "invalid_geometry"
    MISSING_KEY = "missing_key"
    EMPTY_GROUP = "empty_group"
    UNION_FAILURE = "union_failure"
    DEGENERATE_ZONE = "degenerate_zone"


@dataclass(frozen=True, slots=True)
class EngineIssue:
    """One non-fatal failure, scoped to a fragment, group or zone."""

    kind: IssueKind
    key: str | None
    message: str

    def to_dict(self) -> dict[str, str | None]:
        return {"kind": self.kind.value, "key": self.key, "message": self.message}

    def __str__(self) -> str:
        scope = self.key if self.key is not None else "-"
        return f"{self.kind.value}[{scope}]: {self.message}"


def format_issue_lines(issues: Iterable[EngineIssue]) -> Iterable[str]:
    for issue in issues:
        yield f"[WARN] {issue}"

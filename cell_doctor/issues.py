"""
Shared issue taxonomy.

This keeps severity, detection order and rule explanations in one place so the
detectors, the scanner and the CLI do not drift.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from cell_doctor.cells import CellAddress, RangeAddress


class IssueKind(str, Enum):
    DUPLICATE = "duplicate"
    MISSING_VALUE = "missing_value"
    MIXED_FORMAT = "mixed_format"
    INCONSISTENT_CASING = "inconsistent_casing"
    OUTLIER = "outlier"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return SEVERITY_RANK[self]


SEVERITY_RANK = {Severity.ERROR: 0, Severity.WARNING: 1, Severity.INFO: 2}

ISSUE_DEFINITIONS = {
    IssueKind.DUPLICATE: {"severity": Severity.WARNING, "detection_rank": 0},
    IssueKind.MISSING_VALUE: {"severity": Severity.WARNING, "detection_rank": 1},
    IssueKind.MIXED_FORMAT: {"severity": Severity.WARNING, "detection_rank": 2},
    IssueKind.INCONSISTENT_CASING: {"severity": Severity.INFO, "detection_rank": 2},
    IssueKind.OUTLIER: {"severity": Severity.INFO, "detection_rank": 3},
}

EXPLAIN_RULES = {
    IssueKind.DUPLICATE: {
        "description": "The same value appears more than once in a column.",
        "evidence": "Two or more non-empty cells in one column hold the same trimmed, case-sensitive value.",
        "fixes": "remove_duplicates (asks for confirmation, keeps the first occurrence), highlight_only",
    },
    IssueKind.MISSING_VALUE: {
        "description": "A column has empty cells below its header.",
        "evidence": "A data cell is empty or holds only whitespace.",
        "fixes": "go_to_cell",
    },
    IssueKind.MIXED_FORMAT: {
        "description": "A column stores the same kind of value in more than one representation.",
        "evidence": "Dates appear both as serial numbers and as date text, or numbers appear both as numbers and as numeric text.",
        "fixes": "standardize_format (converts the minority representation to the majority one)",
    },
    IssueKind.INCONSISTENT_CASING: {
        "description": "A text column spells the same value with different capitalisation.",
        "evidence": "Two or more distinct spellings share one lower-cased form.",
        "fixes": "standardize_format (rewrites every spelling to the first one seen)",
    },
    IssueKind.OUTLIER: {
        "description": "A number sits more than three sample standard deviations from its column mean.",
        "evidence": "At least four plain numbers in the column and |x - mean| > 3 * stddev.",
        "fixes": "highlight_only",
    },
}


@dataclass(frozen=True)
class Issue:
    kind: IssueKind
    severity: Severity
    cells: tuple[CellAddress, ...]
    column: int
    column_name: str
    message: str
    detail: dict[str, Any] = field(default_factory=dict, hash=False)
    sheet: str | None = None
    id: str = ""

    @property
    def first_cell(self) -> CellAddress:
        return min(self.cells) if self.cells else CellAddress(0, self.column)

    @property
    def detection_rank(self) -> int:
        return ISSUE_DEFINITIONS[self.kind]["detection_rank"]

    @property
    def target(self) -> RangeAddress:
        return RangeAddress.bounding(self.cells, self.sheet)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "severity": self.severity.value,
            "column": self.column_name,
            "message": self.message,
            "cells": [cell.a1 for cell in self.cells],
            "cell_count": len(self.cells),
            "detail": _jsonable(self.detail),
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, CellAddress):
        return value.a1
    if isinstance(value, Enum):
        return value.value
    return value


def build_issue(
    *,
    kind: IssueKind,
    cells: Iterable[CellAddress],
    column: int,
    column_name: str,
    message: str,
    detail: dict[str, Any] | None = None,
    sheet: str | None = None,
) -> Issue:
    definition = ISSUE_DEFINITIONS[kind]
    return Issue(
        kind=kind,
        severity=definition["severity"],
        cells=tuple(cells),
        column=column,
        column_name=column_name,
        message=message,
        detail=detail or {},
        sheet=sheet,
    )


def issue_sort_key(issue: Issue) -> tuple[int, int, int, int]:
    first = issue.first_cell
    return (issue.severity.rank, issue.detection_rank, first.row, first.col)


def sort_issues(issues: Iterable[Issue]) -> list[Issue]:
    return sorted(issues, key=issue_sort_key)


def filter_and_sort(
    issues: Iterable[Issue],
    severity_filter: Severity | str | Iterable[Severity | str] | None = None,
) -> list[Issue]:
    if severity_filter is None:
        return sort_issues(issues)
    if isinstance(severity_filter, (Severity, str)):
        severity_filter = [severity_filter]
    wanted = {Severity(level) for level in severity_filter}
    return sort_issues(issue for issue in issues if issue.severity in wanted)


def count_by_severity(issues: Iterable[Issue]) -> dict[str, int]:
    counts = {severity.value: 0 for severity in Severity}
    for issue in issues:
        counts[issue.severity.value] += 1
    return counts


@dataclass(frozen=True)
class ScanResult:
    issues: tuple[Issue, ...]
    counts_by_severity: dict[str, int]
    address: RangeAddress | None = None

    @classmethod
    def from_issues(cls, issues: Iterable[Issue], address: RangeAddress | None = None) -> "ScanResult":
        ordered = tuple(sort_issues(issues))
        return cls(ordered, count_by_severity(ordered), address)

    @property
    def is_clean(self) -> bool:
        return not self.issues

    @property
    def verdict(self) -> str:
        if not self.issues:
            return "HEALTHY"
        if self.counts_by_severity.get(Severity.ERROR.value, 0):
            return "CRITICAL"
        return "NEEDS ATTENTION"

    def find(self, issue_id: str) -> Issue | None:
        return next((issue for issue in self.issues if issue.id == issue_id), None)

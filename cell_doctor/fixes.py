"""
Fix resolution and mutation planning.

``resolve_fix_actions`` turns an Issue into the actions a user may pick.
``plan_mutation`` takes a mutating action plus the values just captured from
the sheet and produces the grid to write back. Cells holding a formula are
never rewritten.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from cell_doctor.adapters import Grid, RangeData
from cell_doctor.cells import (
    DATE_FORMAT_PATTERNS,
    SERIAL_MAX,
    SERIAL_MIN,
    CellAddress,
    CellValue,
    RangeAddress,
    RepresentationClass,
    classify_representation,
    date_to_serial,
    format_number_text,
    parse_date_text,
    parse_numeric_text,
    serial_to_date,
)
from cell_doctor.detectors.duplicates import duplicate_key
from cell_doctor.issues import Issue, IssueKind


class FixKind(str, Enum):
    REMOVE_DUPLICATES = "remove_duplicates"
    HIGHLIGHT_ONLY = "highlight_only"
    STANDARDIZE_FORMAT = "standardize_format"
    GO_TO_CELL = "go_to_cell"

    @property
    def mutates(self) -> bool:
        return self in MUTATING_KINDS


MUTATING_KINDS = {FixKind.REMOVE_DUPLICATES, FixKind.STANDARDIZE_FORMAT}

FIX_LABELS = {
    FixKind.REMOVE_DUPLICATES: "Remove duplicates",
    FixKind.HIGHLIGHT_ONLY: "Highlight cells",
    FixKind.STANDARDIZE_FORMAT: "Standardize format",
    FixKind.GO_TO_CELL: "Go to cell",
}

FIX_TABLE = {
    IssueKind.DUPLICATE: [FixKind.REMOVE_DUPLICATES, FixKind.HIGHLIGHT_ONLY],
    IssueKind.MISSING_VALUE: [FixKind.GO_TO_CELL],
    IssueKind.MIXED_FORMAT: [FixKind.STANDARDIZE_FORMAT],
    IssueKind.INCONSISTENT_CASING: [FixKind.STANDARDIZE_FORMAT],
    IssueKind.OUTLIER: [FixKind.HIGHLIGHT_ONLY],
}

DEFAULT_DATE_FORMAT = "%Y-%m-%d"


@dataclass(frozen=True)
class FixAction:
    id: str
    issue_id: str
    kind: FixKind
    requires_confirmation: bool
    params: dict[str, Any] = field(default_factory=dict, hash=False)

    @property
    def cells(self) -> tuple[CellAddress, ...]:
        return tuple(self.params.get("cells", ()))

    @property
    def sheet(self) -> str | None:
        return self.params.get("sheet")

    @property
    def label(self) -> str:
        return FIX_LABELS[self.kind]

    @property
    def target(self) -> RangeAddress:
        """Minimal bounding box over the affected cells."""
        return RangeAddress.bounding(self.cells, self.sheet)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "issue_id": self.issue_id,
            "kind": self.kind.value,
            "label": self.label,
            "requires_confirmation": self.requires_confirmation,
            "cells": [cell.a1 for cell in self.cells],
        }


@dataclass(frozen=True)
class MutationPlan:
    values: Grid
    formulas: Grid
    changed: tuple[CellAddress, ...]


def _params_for(issue: Issue, kind: FixKind) -> dict[str, Any]:
    params: dict[str, Any] = {"cells": tuple(sorted(issue.cells)), "sheet": issue.sheet}
    if kind is FixKind.GO_TO_CELL:
        params["cell"] = issue.first_cell
    if kind is FixKind.REMOVE_DUPLICATES:
        # keep the first occurrence; detector cells are already in row order
        params["keep"] = issue.cells[0]
        if "value_kind" in issue.detail:
            params["duplicate_key"] = (issue.detail["value_kind"], issue.detail["value"])
    if kind is FixKind.STANDARDIZE_FORMAT and issue.kind is IssueKind.INCONSISTENT_CASING:
        params["mode"] = "casing"
        params["canonical"] = issue.detail["canonical"]
        params["variants"] = list(issue.detail["variants"])
    if kind is FixKind.STANDARDIZE_FORMAT and issue.kind is IssueKind.MIXED_FORMAT:
        params["mode"] = "representation"
        params["conversions"] = [
            (RepresentationClass(conflict["minority"]), RepresentationClass(conflict["majority"]))
            for conflict in issue.detail.get("conflicts", [])
        ]
        params["date_context"] = bool(issue.detail.get("date_context"))
    return params


def resolve_fix_actions(issue: Issue) -> list[FixAction]:
    actions = []
    for kind in FIX_TABLE[issue.kind]:
        actions.append(
            FixAction(
                id=f"{issue.id or issue.kind.value}:{kind.value}",
                issue_id=issue.id,
                kind=kind,
                requires_confirmation=kind is FixKind.REMOVE_DUPLICATES,
                params=_params_for(issue, kind),
            )
        )
    return actions


def _date_text_format(values: list[str]) -> str:
    """Most common strptime format among the date texts, ISO when there are none."""
    formats = Counter()
    for text in values:
        stripped = " ".join(text.strip().split())
        for fmt, pattern, _ in DATE_FORMAT_PATTERNS:
            if not pattern.match(stripped):
                continue
            try:
                datetime.strptime(stripped.replace(".", ""), fmt)
            except ValueError:
                continue
            formats[fmt] += 1
            break
    if not formats:
        return DEFAULT_DATE_FORMAT
    return formats.most_common(1)[0][0]


def convert_representation(
    value: CellValue,
    target: RepresentationClass,
    *,
    date_format: str = DEFAULT_DATE_FORMAT,
) -> Any:
    """Convert a cell into ``target``; returns None when the value cannot be converted."""
    if target is RepresentationClass.PLAIN_NUMBER:
        number = parse_numeric_text(str(value.value))
        return None if number is None else CellValue.number(number).to_raw()
    if target is RepresentationClass.NUMERIC_TEXT:
        return format_number_text(value.value)
    if target is RepresentationClass.NUMERIC_DATE_SERIAL:
        parsed = parse_date_text(str(value.value))
        return None if parsed is None else date_to_serial(parsed)
    if target is RepresentationClass.DATE_LIKE_TEXT:
        try:
            return serial_to_date(value.value).strftime(date_format)
        except (OverflowError, ValueError):
            return None
    return None


def plan_mutation(
    action: FixAction,
    captured: RangeData,
    target: RangeAddress,
    serial_range: tuple[float, float] = (SERIAL_MIN, SERIAL_MAX),
) -> MutationPlan:
    values = [list(row) for row in captured.values]
    formulas = [list(row) for row in captured.formulas]
    changed: list[CellAddress] = []

    def writable(cell: CellAddress) -> tuple[int, int] | None:
        r, c = target.offset_of(cell)
        return None if formulas[r][c] else (r, c)

    if action.kind is FixKind.REMOVE_DUPLICATES:
        expected = action.params.get("duplicate_key")
        keep = action.params.get("keep")
        if expected is None and keep is not None:
            r, c = target.offset_of(keep)
            expected = duplicate_key(CellValue.from_raw(values[r][c]))
        # cells edited since the scan no longer match and are left alone
        kept = False
        for cell in action.cells:
            r, c = target.offset_of(cell)
            if expected is None or duplicate_key(CellValue.from_raw(values[r][c])) != expected:
                continue
            if not kept:
                kept = True
                continue
            if writable(cell) is None:
                continue
            values[r][c] = None
            changed.append(cell)

    elif action.kind is FixKind.STANDARDIZE_FORMAT and action.params.get("mode") == "casing":
        canonical = action.params["canonical"]
        for cell in action.cells:
            position = writable(cell)
            if position is None:
                continue
            r, c = position
            current = values[r][c]
            if isinstance(current, str) and current.strip().lower() == canonical.lower() and current != canonical:
                values[r][c] = canonical
                changed.append(cell)

    elif action.kind is FixKind.STANDARDIZE_FORMAT:
        conversions = dict(action.params.get("conversions", []))
        date_context = action.params.get("date_context", False)
        classified = []
        for cell in action.cells:
            r, c = target.offset_of(cell)
            value = CellValue.from_raw(values[r][c])
            cls = classify_representation(value, date_context=date_context, serial_range=serial_range)
            classified.append((cell, value, cls))
        date_format = _date_text_format(
            [value.value for _, value, cls in classified if cls is RepresentationClass.DATE_LIKE_TEXT]
        )
        for cell, value, cls in classified:
            destination = conversions.get(cls)
            position = writable(cell)
            if destination is None or position is None:
                continue
            converted = convert_representation(value, destination, date_format=date_format)
            if converted is None:
                continue
            r, c = position
            values[r][c] = converted
            changed.append(cell)

    else:
        raise ValueError(f"{action.kind.value} does not change cell values")

    return MutationPlan(values, formulas, tuple(changed))

"""
Format-consistency checks: mixed representations and inconsistent casing.

Both passes work on the non-empty cells of one column at a time, after they
have been through ``classify_representation``.
"""

from __future__ import annotations

from collections import Counter

from cell_doctor.cancellation import NULL_CHECKPOINT, ScanCheckpoint
from cell_doctor.cells import SERIAL_MAX, SERIAL_MIN, RepresentationClass
from cell_doctor.detectors.common import ClassifiedCell, classify_column
from cell_doctor.issues import Issue, IssueKind, build_issue
from cell_doctor.snapshot import Snapshot

# Numeric member first: ties are resolved in its favour.
CONFLICTING_PAIRS = (
    (RepresentationClass.NUMERIC_DATE_SERIAL, RepresentationClass.DATE_LIKE_TEXT),
    (RepresentationClass.PLAIN_NUMBER, RepresentationClass.NUMERIC_TEXT),
)
MAX_EXAMPLES = 3


def find_conflicts(counts: Counter) -> list[dict]:
    conflicts = []
    for first, second in CONFLICTING_PAIRS:
        if counts[first] and counts[second]:
            majority = first if counts[first] >= counts[second] else second
            minority = second if majority is first else first
            conflicts.append(
                {
                    "classes": [first, second],
                    "majority": majority,
                    "minority": minority,
                    "counts": {first: counts[first], second: counts[second]},
                }
            )
    return conflicts


def _mixed_format_issue(snapshot: Snapshot, col: int, cells: list[ClassifiedCell], date_context: bool) -> Issue | None:
    counts = Counter(cell.cls for cell in cells if cell.cls is not RepresentationClass.ERROR)
    conflicts = find_conflicts(counts)
    if not conflicts:
        return None

    involved = {cls for conflict in conflicts for cls in conflict["classes"]}
    affected = [cell for cell in cells if cell.cls in involved]
    classes = list(dict.fromkeys(cell.cls for cell in cells if cell.cls is not RepresentationClass.ERROR))

    examples = []
    seen_classes = set()
    for cell in affected:
        if cell.cls not in seen_classes:
            seen_classes.add(cell.cls)
            examples.append(cell)
    for cell in affected:
        if len(examples) >= MAX_EXAMPLES:
            break
        if cell not in examples:
            examples.append(cell)

    column_name = snapshot.column_name(col)
    addresses = [snapshot.cell_address(cell.row, col) for cell in affected]
    return build_issue(
        kind=IssueKind.MIXED_FORMAT,
        cells=addresses,
        column=col,
        column_name=column_name,
        message=f"{column_name} mixes {', '.join(cls.value for cls in sorted(involved, key=classes.index))}",
        detail={
            "classes": classes,
            "conflicts": conflicts,
            "examples": [
                {
                    "cell": snapshot.cell_address(cell.row, col),
                    "value": cell.value.display(),
                    "class": cell.cls,
                }
                for cell in examples[:MAX_EXAMPLES]
            ],
            "date_context": date_context,
        },
        sheet=snapshot.sheet,
    )


def _casing_issues(snapshot: Snapshot, col: int, cells: list[ClassifiedCell]) -> list[Issue]:
    classified = [cell for cell in cells if cell.cls is not RepresentationClass.ERROR]
    text_cells = [cell for cell in classified if cell.cls is RepresentationClass.PLAIN_TEXT]
    if not classified or len(text_cells) * 2 <= len(classified):
        return []

    groups: dict[str, list[ClassifiedCell]] = {}
    for cell in text_cells:
        groups.setdefault(cell.value.value.strip().lower(), []).append(cell)

    column_name = snapshot.column_name(col)
    issues = []
    for lowered, members in groups.items():
        variants = list(dict.fromkeys(cell.value.value.strip() for cell in members))
        if len(variants) < 2:
            continue
        addresses = [snapshot.cell_address(cell.row, col) for cell in members]
        variant_counts = Counter(cell.value.value.strip() for cell in members)
        issues.append(
            build_issue(
                kind=IssueKind.INCONSISTENT_CASING,
                cells=addresses,
                column=col,
                column_name=column_name,
                message=f"{column_name} spells {variants[0]!r} {len(variants)} different ways",
                detail={
                    "canonical_lower": lowered,
                    "canonical": variants[0],
                    "variants": variants,
                    "variant_counts": {variant: variant_counts[variant] for variant in variants},
                    "cells": addresses,
                },
                sheet=snapshot.sheet,
            )
        )
    return issues


def detect_format_issues(
    snapshot: Snapshot,
    checkpoint: ScanCheckpoint = NULL_CHECKPOINT,
    serial_range: tuple[float, float] = (SERIAL_MIN, SERIAL_MAX),
) -> list[Issue]:
    issues: list[Issue] = []
    for col in range(snapshot.col_count):
        cells, date_context = classify_column(snapshot, col, checkpoint, serial_range)
        if not cells:
            continue
        mixed = _mixed_format_issue(snapshot, col, cells, date_context)
        if mixed is not None:
            issues.append(mixed)
        issues.extend(_casing_issues(snapshot, col, cells))
    return issues

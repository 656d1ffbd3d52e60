from __future__ import annotations

from typing import Any

from cell_doctor.cancellation import NULL_CHECKPOINT, ScanCheckpoint
from cell_doctor.cells import CellKind, CellValue
from cell_doctor.issues import Issue, IssueKind, build_issue
from cell_doctor.snapshot import Snapshot


def duplicate_key(value: CellValue) -> tuple[str, Any] | None:
    """Trimmed text, exact number or boolean; type-tagged so "1" and 1 never collide."""
    if value.is_empty or value.kind is CellKind.ERROR:
        return None
    if value.kind is CellKind.TEXT:
        return ("text", value.value.strip())
    return (value.kind.value, value.value)


def detect_duplicates(snapshot: Snapshot, checkpoint: ScanCheckpoint = NULL_CHECKPOINT) -> list[Issue]:
    issues: list[Issue] = []
    for col in range(snapshot.col_count):
        occurrences: dict[tuple[str, Any], list[int]] = {}
        for row, value in snapshot.column_cells(col, checkpoint):
            key = duplicate_key(value)
            if key is not None:
                occurrences.setdefault(key, []).append(row)

        column_name = snapshot.column_name(col)
        # dicts keep insertion order, i.e. first occurrence order
        for (value_kind, normalized), rows in occurrences.items():
            if len(rows) < 2:
                continue
            cells = [snapshot.cell_address(row, col) for row in rows]
            issues.append(
                build_issue(
                    kind=IssueKind.DUPLICATE,
                    cells=cells,
                    column=col,
                    column_name=column_name,
                    message=f'"{snapshot.values[rows[0]][col].display()}" appears {len(rows)} times in {column_name}',
                    detail={
                        "value": normalized,
                        "value_kind": value_kind,
                        "count": len(rows),
                        "cells": cells,
                        "rows": rows,
                    },
                    sheet=snapshot.sheet,
                )
            )
    return issues

from __future__ import annotations

from cell_doctor.cancellation import NULL_CHECKPOINT, ScanCheckpoint
from cell_doctor.issues import Issue, IssueKind, build_issue
from cell_doctor.snapshot import Snapshot


def detect_missing_values(snapshot: Snapshot, checkpoint: ScanCheckpoint = NULL_CHECKPOINT) -> list[Issue]:
    issues: list[Issue] = []
    for col in range(snapshot.col_count):
        # a formula without a cached result is not a missing value
        rows = [
            row
            for row, value in snapshot.column_cells(col, checkpoint)
            if value.is_empty and not snapshot.formula_at(row, col)
        ]
        if not rows:
            continue
        column_name = snapshot.column_name(col)
        cells = [snapshot.cell_address(row, col) for row in rows]
        issues.append(
            build_issue(
                kind=IssueKind.MISSING_VALUE,
                cells=cells,
                column=col,
                column_name=column_name,
                message=f"{column_name} has {len(rows)} empty cell{'s' if len(rows) != 1 else ''}",
                detail={"column_name": column_name, "count": len(rows), "cells": cells, "rows": rows},
                sheet=snapshot.sheet,
            )
        )
    return issues

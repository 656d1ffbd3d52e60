from __future__ import annotations

from dataclasses import dataclass

from cell_doctor.cancellation import NULL_CHECKPOINT, ScanCheckpoint
from cell_doctor.cells import (
    SERIAL_MAX,
    SERIAL_MIN,
    CellValue,
    RepresentationClass,
    classify_representation,
    is_date_context,
)
from cell_doctor.snapshot import Snapshot


@dataclass(frozen=True)
class ClassifiedCell:
    row: int
    value: CellValue
    cls: RepresentationClass


def classify_column(
    snapshot: Snapshot,
    col: int,
    checkpoint: ScanCheckpoint = NULL_CHECKPOINT,
    serial_range: tuple[float, float] = (SERIAL_MIN, SERIAL_MAX),
) -> tuple[list[ClassifiedCell], bool]:
    """Classify the non-empty data cells of a column. Returns the cells and the date-context flag."""
    cells = [(row, value) for row, value in snapshot.column_cells(col, checkpoint) if not value.is_empty]
    date_context = is_date_context(value for _, value in cells)
    classified = [
        ClassifiedCell(
            row,
            value,
            classify_representation(value, date_context=date_context, serial_range=serial_range),
        )
        for row, value in cells
    ]
    return classified, date_context

from __future__ import annotations

import math

import pandas as pd

from cell_doctor.cancellation import NULL_CHECKPOINT, ScanCheckpoint
from cell_doctor.cells import SERIAL_MAX, SERIAL_MIN, RepresentationClass
from cell_doctor.detectors.common import classify_column
from cell_doctor.issues import Issue, IssueKind, build_issue
from cell_doctor.snapshot import Snapshot

DEFAULT_SIGMA = 3.0
DEFAULT_MIN_VALUES = 4


def detect_outliers(
    snapshot: Snapshot,
    checkpoint: ScanCheckpoint = NULL_CHECKPOINT,
    sigma: float = DEFAULT_SIGMA,
    min_values: int = DEFAULT_MIN_VALUES,
    serial_range: tuple[float, float] = (SERIAL_MIN, SERIAL_MAX),
) -> list[Issue]:
    """
    Flag plain numbers more than ``sigma`` sample standard deviations from
    their column mean. Mean and deviation include the outliers themselves.
    """
    issues: list[Issue] = []
    for col in range(snapshot.col_count):
        cells, _ = classify_column(snapshot, col, checkpoint, serial_range)
        numbers = [cell for cell in cells if cell.cls is RepresentationClass.PLAIN_NUMBER]
        if len(numbers) < min_values:
            continue

        series = pd.Series([cell.value.value for cell in numbers], dtype="float64")
        mean = float(series.mean())
        stddev = float(series.std(ddof=1))
        if math.isnan(stddev) or stddev == 0:
            continue

        column_name = snapshot.column_name(col)
        threshold = sigma * stddev
        for cell in numbers:
            value = cell.value.value
            if abs(value - mean) <= threshold:
                continue
            address = snapshot.cell_address(cell.row, col)
            deviation = (value - mean) / stddev
            issues.append(
                build_issue(
                    kind=IssueKind.OUTLIER,
                    cells=[address],
                    column=col,
                    column_name=column_name,
                    message=(
                        f"{cell.value.display()} in {column_name} is {abs(deviation):.1f} standard deviations "
                        f"{'above' if deviation > 0 else 'below'} the mean ({mean:.2f})"
                    ),
                    detail={
                        "value": value,
                        "mean": mean,
                        "stddev": stddev,
                        "deviation": deviation,
                        "threshold": threshold,
                    },
                    sheet=snapshot.sheet,
                )
            )
    return issues

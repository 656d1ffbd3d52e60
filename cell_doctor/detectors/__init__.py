"""Detectors: pure functions from a Snapshot to a list of Issues."""

from cell_doctor.detectors.duplicates import detect_duplicates
from cell_doctor.detectors.formats import detect_format_issues
from cell_doctor.detectors.missing import detect_missing_values
from cell_doctor.detectors.outliers import detect_outliers

__all__ = [
    "detect_duplicates",
    "detect_format_issues",
    "detect_missing_values",
    "detect_outliers",
]

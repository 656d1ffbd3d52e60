"""
Scanner/aggregator: runs the detectors over a snapshot and produces a sorted
``ScanResult`` with stable issue ids.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace

from cell_doctor.adapters import SheetAdapter
from cell_doctor.cancellation import NULL_CHECKPOINT, CancellationToken, ScanCheckpoint
from cell_doctor.cells import RangeAddress
from cell_doctor.config import EngineConfig
from cell_doctor.detectors import (
    detect_duplicates,
    detect_format_issues,
    detect_missing_values,
    detect_outliers,
)
from cell_doctor.errors import ScanCancelled
from cell_doctor.issues import Issue, ScanResult, sort_issues
from cell_doctor.snapshot import ProgressCallback, Snapshot, read_snapshot

logger = logging.getLogger(__name__)


def run_detectors(snapshot: Snapshot, checkpoint: ScanCheckpoint, config: EngineConfig) -> list[Issue]:
    token = checkpoint.token
    issues: list[Issue] = []
    for detector in (
        lambda: detect_duplicates(snapshot, checkpoint),
        lambda: detect_missing_values(snapshot, checkpoint),
        lambda: detect_format_issues(snapshot, checkpoint, config.serial_range),
        lambda: detect_outliers(
            snapshot,
            checkpoint,
            sigma=config.outlier_sigma,
            min_values=config.outlier_min_values,
            serial_range=config.serial_range,
        ),
    ):
        if token is not None:
            token.raise_if_cancelled()
        issues.extend(detector())
    if token is not None:
        token.raise_if_cancelled()
    return issues


def scan_snapshot(
    snapshot: Snapshot,
    token: CancellationToken | None = None,
    config: EngineConfig | None = None,
) -> ScanResult:
    """
    Run every detector over ``snapshot``. Ids are ``issue-1``, ``issue-2``, ...
    in sorted order, so the same input always yields the same ids.

    Raises ``ScanCancelled`` when ``token`` is cancelled mid-scan.
    """
    config = config or EngineConfig()
    if snapshot.is_empty():
        if token is not None:
            token.raise_if_cancelled()
        return ScanResult.from_issues([], snapshot.address)

    if snapshot.data_row_count > config.chunk_rows:
        checkpoint = ScanCheckpoint(token, config.chunk_rows)
    elif token is not None:
        checkpoint = ScanCheckpoint(token, max(config.chunk_rows, snapshot.row_count))
    else:
        checkpoint = NULL_CHECKPOINT

    ordered = sort_issues(run_detectors(snapshot, checkpoint, config))
    numbered = [replace(issue, id=f"issue-{index}") for index, issue in enumerate(ordered, start=1)]
    return ScanResult.from_issues(numbered, snapshot.address)


class Scanner:
    """
    Owns the single scan slot of a session. Starting a scan cancels whatever
    scan is still running; that scan ends with ``ScanCancelled``.
    """

    def __init__(self, adapter: SheetAdapter, config: EngineConfig | None = None) -> None:
        self.adapter = adapter
        self.config = config or EngineConfig()
        self._lock = threading.Lock()
        self._current: CancellationToken | None = None

    @property
    def scanning(self) -> bool:
        with self._lock:
            return self._current is not None

    def _claim(self, token: CancellationToken) -> None:
        with self._lock:
            previous = self._current
            self._current = token
        if previous is not None and previous is not token:
            logger.info("Cancelling running scan in favour of a new one")
            previous.cancel("superseded by a newer scan")

    def _release(self, token: CancellationToken) -> None:
        with self._lock:
            if self._current is token:
                self._current = None

    def cancel(self, reason: str = "cancelled by caller") -> bool:
        with self._lock:
            current = self._current
        if current is None:
            return False
        current.cancel(reason)
        return True

    def scan(
        self,
        address: RangeAddress | None = None,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> ScanResult:
        token = token or CancellationToken()
        self._claim(token)
        started = time.perf_counter()
        try:
            if address is None:
                address = self.adapter.used_range()
            if address is None:
                logger.info("Scan skipped: sheet is empty")
                return ScanResult.from_issues([])
            logger.info("Scan started for %s", address)
            snapshot = read_snapshot(
                self.adapter,
                address,
                chunk_rows=self.config.chunk_rows,
                on_progress=on_progress,
                token=token,
            )
            result = scan_snapshot(snapshot, token, self.config)
            logger.info(
                "Scan finished for %s: %d issues in %.3fs",
                address,
                len(result.issues),
                time.perf_counter() - started,
            )
            return result
        except ScanCancelled:
            logger.info("Scan cancelled for %s", address)
            raise
        finally:
            self._release(token)

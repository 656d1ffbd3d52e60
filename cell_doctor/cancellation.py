from __future__ import annotations

import threading
import time

from cell_doctor.errors import ScanCancelled


class CancellationToken:
    """Explicit cancel signal threaded through a scan and checked at chunk boundaries."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ScanCancelled(f"Scan cancelled: {self.reason}")


class ScanCheckpoint:
    """
    Counts processed rows and, every ``chunk_rows`` rows, checks the token and
    yields to other threads so a host UI stays responsive.
    """

    def __init__(self, token: CancellationToken | None = None, chunk_rows: int = 1000) -> None:
        self.token = token
        self.chunk_rows = max(1, chunk_rows)
        self.rows_seen = 0
        self.chunks = 0

    def tick(self, rows: int = 1) -> None:
        before = self.rows_seen // self.chunk_rows
        self.rows_seen += rows
        if self.rows_seen // self.chunk_rows != before:
            self.boundary()

    def boundary(self) -> None:
        self.chunks += 1
        if self.token is not None:
            self.token.raise_if_cancelled()
        time.sleep(0)


class _NullCheckpoint(ScanCheckpoint):
    def tick(self, rows: int = 1) -> None:
        return None

    def boundary(self) -> None:
        return None


NULL_CHECKPOINT = _NullCheckpoint()

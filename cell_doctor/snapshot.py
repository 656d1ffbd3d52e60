from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterator

from cell_doctor.adapters import SheetAdapter
from cell_doctor.cancellation import NULL_CHECKPOINT, CancellationToken, ScanCheckpoint
from cell_doctor.cells import CellAddress, CellValue, RangeAddress, column_letter
from cell_doctor.errors import ReadFailure

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_ROWS = 1000

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class Snapshot:
    """
    Immutable read of a range. Row 0 is the header row; detectors only look at
    rows 1..row_count-1.
    """

    address: RangeAddress
    values: tuple[tuple[CellValue, ...], ...]
    formulas: tuple[tuple[str | None, ...], ...]

    @classmethod
    def from_rows(cls, address: RangeAddress, values, formulas=None) -> "Snapshot":
        value_rows = tuple(tuple(CellValue.from_raw(value) for value in row) for row in values)
        if formulas is None:
            formula_rows = tuple(tuple(None for _ in row) for row in value_rows)
        else:
            formula_rows = tuple(tuple(formula or None for formula in row) for row in formulas)
        return cls(address, value_rows, formula_rows)

    @property
    def row_count(self) -> int:
        return len(self.values)

    @property
    def col_count(self) -> int:
        return len(self.values[0]) if self.values else 0

    @property
    def data_row_count(self) -> int:
        return max(0, self.row_count - 1)

    @property
    def sheet(self) -> str | None:
        return self.address.sheet

    def is_empty(self) -> bool:
        return self.data_row_count == 0 or self.col_count == 0

    def cell_address(self, row: int, col: int) -> CellAddress:
        return CellAddress(self.address.first_row + row, self.address.first_col + col)

    def headers(self) -> list[str]:
        if not self.values:
            return []
        headers = []
        for col, value in enumerate(self.values[0]):
            text = value.display()
            headers.append(text if text else column_letter(self.address.first_col + col))
        return headers

    def column_name(self, col: int) -> str:
        return self.headers()[col]

    def column_cells(self, col: int, checkpoint: ScanCheckpoint = NULL_CHECKPOINT) -> Iterator[tuple[int, CellValue]]:
        """Yield ``(row, value)`` for the data rows of a column, ticking the checkpoint per row."""
        for row in range(1, self.row_count):
            checkpoint.tick()
            yield row, self.values[row][col]

    def formula_at(self, row: int, col: int) -> str | None:
        return self.formulas[row][col]


def read_snapshot(
    adapter: SheetAdapter,
    address: RangeAddress,
    *,
    chunk_rows: int = DEFAULT_CHUNK_ROWS,
    on_progress: ProgressCallback | None = None,
    token: CancellationToken | None = None,
) -> Snapshot:
    """
    Read ``address`` through the adapter. Ranges above ``chunk_rows`` rows are
    read one chunk at a time; the token is checked between chunks.
    """
    total = address.row_count
    if total <= chunk_rows:
        data = adapter.read_range(address)
        _check_read_shape(address, data.values, data.formulas)
        if on_progress:
            on_progress(total, total)
        return Snapshot.from_rows(address, data.values, data.formulas)

    values: list = []
    formulas: list = []
    checkpoint = ScanCheckpoint(token, chunk_rows)
    for start in range(0, total, chunk_rows):
        if start:
            checkpoint.boundary()
        chunk = address.row_slice(start, start + chunk_rows)
        data = adapter.read_range(chunk)
        _check_read_shape(chunk, data.values, data.formulas)
        values.extend(data.values)
        formulas.extend(data.formulas)
        if on_progress:
            on_progress(len(values), total)
        logger.debug("Read rows %d-%d of %s", start + 1, len(values), address)
    return Snapshot.from_rows(address, values, formulas)


def _check_read_shape(address: RangeAddress, values, formulas) -> None:
    if len(values) != address.row_count or any(len(row) != address.col_count for row in values):
        raise ReadFailure(address, "adapter returned a grid that does not match the requested range")
    if len(formulas) != address.row_count:
        raise ReadFailure(address, "adapter returned formulas that do not match the requested range")

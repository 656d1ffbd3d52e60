"""
Spreadsheet access adapters.

The engine never touches a workbook directly; it goes through the
``SheetAdapter`` protocol. ``GridSheetAdapter`` keeps sheets in memory and is
what embedding hosts and the tests use. ``OpenpyxlSheetAdapter`` works on real
.xlsx/.xlsm files.
"""

from __future__ import annotations

import logging
import zipfile
from dataclasses import dataclass
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Iterable, Protocol, Sequence

import openpyxl
from openpyxl.utils.datetime import to_excel
from openpyxl.utils.exceptions import InvalidFileException

from cell_doctor.cells import CellAddress, RangeAddress
from cell_doctor.errors import ReadFailure, WriteFailure

logger = logging.getLogger(__name__)

Grid = list[list[Any]]


@dataclass
class RangeData:
    values: Grid
    formulas: Grid

    @property
    def shape(self) -> tuple[int, int]:
        return len(self.values), len(self.values[0]) if self.values else 0


class SheetAdapter(Protocol):
    def read_range(self, address: RangeAddress) -> RangeData: ...

    def write_range(self, address: RangeAddress, values: Grid, formulas: Grid | None = None) -> None: ...

    def select_cells(self, cells: Sequence[CellAddress], sheet: str | None = None) -> None: ...

    def navigate_to(self, cell: CellAddress, sheet: str | None = None) -> None: ...

    def used_range(self, sheet: str | None = None) -> RangeAddress | None: ...


def check_shape(address: RangeAddress, values: Grid, formulas: Grid | None) -> None:
    expected = (address.row_count, address.col_count)
    if len(values) != expected[0] or any(len(row) != expected[1] for row in values):
        raise WriteFailure(address, f"values do not match the {expected[0]}x{expected[1]} target")
    if formulas is not None and (
        len(formulas) != expected[0] or any(len(row) != expected[1] for row in formulas)
    ):
        raise WriteFailure(address, f"formulas do not match the {expected[0]}x{expected[1]} target")


def _formula_text(raw: Any) -> str | None:
    if raw is None:
        return None
    text = getattr(raw, "text", raw)
    if isinstance(text, str) and text.startswith("="):
        return text
    return None


class GridSheetAdapter:
    """In-memory sheets of raw scalars, with optional formulas per cell."""

    def __init__(self, default_sheet: str = "Sheet1") -> None:
        self.default_sheet = default_sheet
        self._values: dict[str, dict[tuple[int, int], Any]] = {default_sheet: {}}
        self._formulas: dict[str, dict[tuple[int, int], str]] = {default_sheet: {}}
        self.selection: list[CellAddress] = []
        self.active_cell: CellAddress | None = None
        self.active_sheet: str = default_sheet

    @classmethod
    def from_rows(cls, rows: Iterable[Sequence[Any]], sheet: str = "Sheet1") -> "GridSheetAdapter":
        adapter = cls(default_sheet=sheet)
        adapter.load_rows(rows, sheet)
        return adapter

    def load_rows(self, rows: Iterable[Sequence[Any]], sheet: str | None = None, origin: CellAddress | None = None) -> None:
        sheet = sheet or self.default_sheet
        origin = origin or CellAddress(0, 0)
        cells = self._values.setdefault(sheet, {})
        self._formulas.setdefault(sheet, {})
        for r, row in enumerate(rows):
            for c, value in enumerate(row):
                if value is not None:
                    cells[(origin.row + r, origin.col + c)] = value

    def set_formula(self, cell: CellAddress, formula: str, cached_value: Any = None, sheet: str | None = None) -> None:
        sheet = sheet or self.default_sheet
        self._formulas.setdefault(sheet, {})[(cell.row, cell.col)] = formula
        self._values.setdefault(sheet, {})[(cell.row, cell.col)] = cached_value

    @property
    def sheet_names(self) -> list[str]:
        return list(self._values)

    def _sheet_key(self, address_sheet: str | None) -> str:
        return address_sheet or self.default_sheet

    def read_range(self, address: RangeAddress) -> RangeData:
        sheet = self._sheet_key(address.sheet)
        if sheet not in self._values:
            raise ReadFailure(address, f"unknown sheet {sheet!r}")
        cells = self._values[sheet]
        formulas = self._formulas[sheet]
        values: Grid = []
        formula_grid: Grid = []
        for row in range(address.first_row, address.last_row + 1):
            values.append([cells.get((row, col)) for col in range(address.first_col, address.last_col + 1)])
            formula_grid.append([formulas.get((row, col)) for col in range(address.first_col, address.last_col + 1)])
        return RangeData(values, formula_grid)

    def write_range(self, address: RangeAddress, values: Grid, formulas: Grid | None = None) -> None:
        sheet = self._sheet_key(address.sheet)
        if sheet not in self._values:
            raise WriteFailure(address, f"unknown sheet {sheet!r}")
        check_shape(address, values, formulas)
        cells = self._values[sheet]
        formula_cells = self._formulas[sheet]
        for r, row in enumerate(values):
            for c, value in enumerate(row):
                key = (address.first_row + r, address.first_col + c)
                formula = formulas[r][c] if formulas is not None else None
                if formula:
                    formula_cells[key] = formula
                else:
                    formula_cells.pop(key, None)
                if value is None:
                    cells.pop(key, None)
                else:
                    cells[key] = value

    def select_cells(self, cells: Sequence[CellAddress], sheet: str | None = None) -> None:
        self.active_sheet = self._sheet_key(sheet)
        self.selection = list(cells)
        self.active_cell = self.selection[0] if self.selection else None

    def navigate_to(self, cell: CellAddress, sheet: str | None = None) -> None:
        self.active_sheet = self._sheet_key(sheet)
        self.selection = [cell]
        self.active_cell = cell

    def used_range(self, sheet: str | None = None) -> RangeAddress | None:
        sheet = self._sheet_key(sheet)
        if sheet not in self._values:
            raise ReadFailure(sheet, f"unknown sheet {sheet!r}")
        keys = [key for key, value in self._values[sheet].items() if value is not None]
        keys.extend(self._formulas[sheet])
        if not keys:
            return None
        return RangeAddress.bounding((CellAddress(r, c) for r, c in keys), sheet)


def _excel_scalar(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return float(to_excel(value))
    return value


class OpenpyxlSheetAdapter:
    """
    Adapter over an openpyxl workbook.

    The workbook is kept twice: once with formulas (the one that gets written
    and saved) and once with cached values (``data_only=True``) so reads see
    what Excel last calculated. Dates come back as Excel serial numbers.
    """

    def __init__(self, workbook, values_workbook=None, path: Path | None = None) -> None:
        self.workbook = workbook
        self.values_workbook = values_workbook
        self.path = path

    @classmethod
    def open(cls, path: Path) -> "OpenpyxlSheetAdapter":
        path = Path(path)
        if not path.exists():
            raise ReadFailure(path, "file not found")
        keep_vba = path.suffix.lower() == ".xlsm"
        try:
            workbook = openpyxl.load_workbook(path, keep_vba=keep_vba)
            values_workbook = openpyxl.load_workbook(path, data_only=True, keep_vba=keep_vba)
        except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
            raise ReadFailure(path, f"could not open workbook ({exc})") from exc
        logger.info("Opened workbook %s (%d sheets)", path, len(workbook.sheetnames))
        return cls(workbook, values_workbook, path)

    @property
    def sheet_names(self) -> list[str]:
        return list(self.workbook.sheetnames)

    def _sheets(self, sheet: str | None, address: Any):
        name = sheet or self.workbook.active.title
        if name not in self.workbook.sheetnames:
            raise ReadFailure(address, f"unknown sheet {name!r}")
        formula_ws = self.workbook[name]
        values_ws = self.values_workbook[name] if self.values_workbook is not None else None
        return formula_ws, values_ws

    def read_range(self, address: RangeAddress) -> RangeData:
        formula_ws, values_ws = self._sheets(address.sheet, address)
        values: Grid = []
        formulas: Grid = []
        for row in range(address.first_row + 1, address.last_row + 2):
            value_row = []
            formula_row = []
            for col in range(address.first_col + 1, address.last_col + 2):
                raw = formula_ws.cell(row=row, column=col).value
                formula = _formula_text(raw)
                if values_ws is not None:
                    value = values_ws.cell(row=row, column=col).value
                else:
                    value = None if formula else raw
                value_row.append(_excel_scalar(value))
                formula_row.append(formula)
            values.append(value_row)
            formulas.append(formula_row)
        return RangeData(values, formulas)

    def write_range(self, address: RangeAddress, values: Grid, formulas: Grid | None = None) -> None:
        try:
            formula_ws, values_ws = self._sheets(address.sheet, address)
        except ReadFailure as exc:
            raise WriteFailure(address, exc.reason) from exc
        check_shape(address, values, formulas)

        previous = [
            [
                (
                    formula_ws.cell(row=address.first_row + r + 1, column=address.first_col + c + 1).value,
                    values_ws.cell(row=address.first_row + r + 1, column=address.first_col + c + 1).value
                    if values_ws is not None
                    else None,
                )
                for c in range(address.col_count)
            ]
            for r in range(address.row_count)
        ]
        try:
            self._assign(formula_ws, values_ws, address, values, formulas)
        except (ValueError, TypeError) as exc:
            for r, row in enumerate(previous):
                for c, (formula_value, cached_value) in enumerate(row):
                    cell_row, cell_col = address.first_row + r + 1, address.first_col + c + 1
                    formula_ws.cell(row=cell_row, column=cell_col).value = formula_value
                    if values_ws is not None:
                        values_ws.cell(row=cell_row, column=cell_col).value = cached_value
            raise WriteFailure(address, str(exc)) from exc

    @staticmethod
    def _assign(formula_ws, values_ws, address: RangeAddress, values: Grid, formulas: Grid | None) -> None:
        for r, row in enumerate(values):
            for c, value in enumerate(row):
                cell_row, cell_col = address.first_row + r + 1, address.first_col + c + 1
                formula = formulas[r][c] if formulas is not None else None
                formula_ws.cell(row=cell_row, column=cell_col).value = formula or value
                if values_ws is not None:
                    values_ws.cell(row=cell_row, column=cell_col).value = value

    def select_cells(self, cells: Sequence[CellAddress], sheet: str | None = None) -> None:
        formula_ws, _ = self._sheets(sheet, sheet)
        if not cells:
            return
        selection = formula_ws.sheet_view.selection[0]
        selection.activeCell = cells[0].a1
        selection.sqref = " ".join(cell.a1 for cell in cells)
        self.workbook.active = self.workbook.sheetnames.index(formula_ws.title)

    def navigate_to(self, cell: CellAddress, sheet: str | None = None) -> None:
        self.select_cells([cell], sheet)

    def used_range(self, sheet: str | None = None) -> RangeAddress | None:
        formula_ws, _ = self._sheets(sheet, sheet)
        if formula_ws.max_row == 1 and formula_ws.max_column == 1 and formula_ws.cell(row=1, column=1).value is None:
            return None
        return RangeAddress(
            formula_ws.min_row - 1,
            formula_ws.min_column - 1,
            formula_ws.max_row - 1,
            formula_ws.max_column - 1,
            formula_ws.title,
        )

    def save(self, path: Path | None = None) -> Path:
        target = Path(path or self.path)
        target.parent.mkdir(parents=True, exist_ok=True)
        self.workbook.save(target)
        logger.info("Saved workbook %s", target)
        return target

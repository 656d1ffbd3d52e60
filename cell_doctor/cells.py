"""
Cell values, representation classes and A1 addresses.

Every detector classifies cells through ``classify_representation`` instead of
poking at raw Python types, so the rules below are the single source of truth
for "what kind of thing is in this cell".
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Iterable, Iterator

from openpyxl.utils.cell import column_index_from_string, get_column_letter, range_boundaries
from openpyxl.utils.datetime import from_excel, to_excel

ERROR_VALUES = {"#REF!", "#VALUE!", "#DIV/0!", "#NAME?", "#NULL!", "#N/A", "#NUM!"}

SERIAL_MIN = 1
SERIAL_MAX = 80_000

_MONTH = r"(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)[a-z]*\.?"

# Ordered: ISO first, then day-first before month-first for ambiguous numeric dates.
DATE_FORMAT_PATTERNS = [
    ("%Y-%m-%d", re.compile(r"^\d{4}-\d{1,2}-\d{1,2}$"), "YYYY-MM-DD"),
    ("%Y/%m/%d", re.compile(r"^\d{4}/\d{1,2}/\d{1,2}$"), "YYYY/MM/DD"),
    ("%d/%m/%Y", re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$"), "DD/MM/YYYY"),
    ("%m/%d/%Y", re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$"), "MM/DD/YYYY"),
    ("%d-%m-%Y", re.compile(r"^\d{1,2}-\d{1,2}-\d{4}$"), "DD-MM-YYYY"),
    ("%m-%d-%Y", re.compile(r"^\d{1,2}-\d{1,2}-\d{4}$"), "MM-DD-YYYY"),
    ("%d/%m/%y", re.compile(r"^\d{1,2}/\d{1,2}/\d{2}$"), "DD/MM/YY"),
    ("%m/%d/%y", re.compile(r"^\d{1,2}/\d{1,2}/\d{2}$"), "MM/DD/YY"),
    ("%d-%m-%y", re.compile(r"^\d{1,2}-\d{1,2}-\d{2}$"), "DD-MM-YY"),
    ("%m-%d-%y", re.compile(r"^\d{1,2}-\d{1,2}-\d{2}$"), "MM-DD-YY"),
    ("%d %B %Y", re.compile(rf"^\d{{1,2}}\s+{_MONTH}\s+\d{{4}}$", re.IGNORECASE), "D Month YYYY"),
    ("%d %b %Y", re.compile(rf"^\d{{1,2}}\s+{_MONTH}\s+\d{{4}}$", re.IGNORECASE), "D Mon YYYY"),
    ("%B %d, %Y", re.compile(rf"^{_MONTH}\s+\d{{1,2}},\s*\d{{4}}$", re.IGNORECASE), "Month D, YYYY"),
    ("%b %d, %Y", re.compile(rf"^{_MONTH}\s+\d{{1,2}},\s*\d{{4}}$", re.IGNORECASE), "Mon D, YYYY"),
    ("%B %d %Y", re.compile(rf"^{_MONTH}\s+\d{{1,2}}\s+\d{{4}}$", re.IGNORECASE), "Month D YYYY"),
    ("%b %d %Y", re.compile(rf"^{_MONTH}\s+\d{{1,2}}\s+\d{{4}}$", re.IGNORECASE), "Mon D YYYY"),
]
NUMERIC_TEXT_RE = re.compile(r"^[+-]?(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?$")


class CellKind(str, Enum):
    EMPTY = "empty"
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ERROR = "error"


class RepresentationClass(str, Enum):
    PLAIN_TEXT = "plain_text"
    PLAIN_NUMBER = "plain_number"
    NUMERIC_TEXT = "numeric_text"
    NUMERIC_DATE_SERIAL = "numeric_date_serial"
    DATE_LIKE_TEXT = "date_like_text"
    BOOLEAN = "boolean"
    ERROR = "error"


@dataclass(frozen=True)
class CellValue:
    kind: CellKind
    value: Any = None

    @classmethod
    def text(cls, value: str) -> "CellValue":
        return cls(CellKind.TEXT, value)

    @classmethod
    def number(cls, value: float) -> "CellValue":
        return cls(CellKind.NUMBER, float(value))

    @classmethod
    def boolean(cls, value: bool) -> "CellValue":
        return cls(CellKind.BOOLEAN, bool(value))

    @classmethod
    def error(cls, value: str) -> "CellValue":
        return cls(CellKind.ERROR, value)

    @classmethod
    def from_raw(cls, raw: Any) -> "CellValue":
        """Convert a scalar as handed out by a spreadsheet adapter."""
        if isinstance(raw, CellValue):
            return raw
        if raw is None:
            return EMPTY
        if isinstance(raw, bool):
            return cls.boolean(raw)
        if isinstance(raw, (int, float)):
            if isinstance(raw, float) and math.isnan(raw):
                return EMPTY
            return cls.number(raw)
        if isinstance(raw, (datetime, date, time)):
            return cls.number(to_excel(raw))
        text = str(raw)
        if text.strip().upper() in ERROR_VALUES:
            return cls.error(text.strip().upper())
        return cls.text(text)

    @property
    def is_empty(self) -> bool:
        if self.kind is CellKind.EMPTY:
            return True
        return self.kind is CellKind.TEXT and self.value.strip() == ""

    def to_raw(self) -> Any:
        if self.kind is CellKind.EMPTY:
            return None
        if self.kind is CellKind.NUMBER and float(self.value).is_integer() and abs(self.value) < 2**53:
            return int(self.value)
        return self.value

    def display(self) -> str:
        if self.kind is CellKind.EMPTY:
            return ""
        if self.kind is CellKind.NUMBER:
            return format_number_text(self.value)
        if self.kind is CellKind.BOOLEAN:
            return "TRUE" if self.value else "FALSE"
        return str(self.value).strip()


EMPTY = CellValue(CellKind.EMPTY)


def is_blank(value: Any) -> bool:
    return CellValue.from_raw(value).is_empty


def format_number_text(value: float) -> str:
    if float(value).is_integer() and abs(value) < 2**53:
        return str(int(value))
    return repr(float(value))


def parse_numeric_text(text: str) -> float | None:
    stripped = text.strip()
    if not NUMERIC_TEXT_RE.match(stripped):
        return None
    return float(stripped.replace(",", ""))


def detect_date_format(text: str) -> str | None:
    stripped = text.strip()
    for _, pattern, label in DATE_FORMAT_PATTERNS:
        if pattern.match(stripped):
            return label
    return None


def parse_date_text(text: str) -> date | None:
    stripped = " ".join(text.strip().split())
    for fmt, pattern, _ in DATE_FORMAT_PATTERNS:
        if not pattern.match(stripped):
            continue
        try:
            return datetime.strptime(stripped.replace(".", ""), fmt).date()
        except ValueError:
            continue
    return None


def date_to_serial(value: date) -> int:
    return int(round(float(to_excel(value))))


def serial_to_date(serial: float) -> date:
    return from_excel(serial).date()


def classify_representation(
    value: CellValue,
    *,
    date_context: bool = False,
    serial_range: tuple[float, float] = (SERIAL_MIN, SERIAL_MAX),
) -> RepresentationClass | None:
    """
    Classify a non-empty cell. Returns None for empty cells.

    Rules, first match wins:
      1. Boolean -> BOOLEAN, ErrorValue -> ERROR
      2. Number inside ``serial_range`` in a date-context column -> NUMERIC_DATE_SERIAL,
         any other Number -> PLAIN_NUMBER
      3. Text matching a DATE_FORMAT_PATTERNS regex -> DATE_LIKE_TEXT
      4. Text matching NUMERIC_TEXT_RE -> NUMERIC_TEXT
      5. Anything else -> PLAIN_TEXT
    """
    if value.is_empty:
        return None
    if value.kind is CellKind.BOOLEAN:
        return RepresentationClass.BOOLEAN
    if value.kind is CellKind.ERROR:
        return RepresentationClass.ERROR
    if value.kind is CellKind.NUMBER:
        low, high = serial_range
        if date_context and low <= value.value <= high:
            return RepresentationClass.NUMERIC_DATE_SERIAL
        return RepresentationClass.PLAIN_NUMBER
    text = str(value.value).strip()
    if detect_date_format(text):
        return RepresentationClass.DATE_LIKE_TEXT
    if NUMERIC_TEXT_RE.match(text):
        return RepresentationClass.NUMERIC_TEXT
    return RepresentationClass.PLAIN_TEXT


def is_date_context(values: Iterable[CellValue]) -> bool:
    """True when at least one cell is date-like text. Header wording alone never makes a date column."""
    return any(
        value.kind is CellKind.TEXT and detect_date_format(str(value.value)) is not None
        for value in values
    )


# ── Addresses ────────────────────────────────────────────────────────────────

_SIMPLE_SHEET_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


def column_letter(index: int) -> str:
    return get_column_letter(index + 1)


def column_index(letter: str) -> int:
    return column_index_from_string(letter.upper()) - 1


def quote_sheet(sheet: str) -> str:
    if _SIMPLE_SHEET_RE.match(sheet):
        return sheet
    return "'" + sheet.replace("'", "''") + "'"


def _split_sheet(text: str) -> tuple[str | None, str]:
    text = text.strip()
    if "!" not in text:
        return None, text
    sheet, ref = text.rsplit("!", 1)
    sheet = sheet.strip()
    if sheet.startswith("'") and sheet.endswith("'") and len(sheet) >= 2:
        sheet = sheet[1:-1].replace("''", "'")
    return sheet or None, ref.strip()


@dataclass(frozen=True, order=True)
class CellAddress:
    row: int
    col: int

    @classmethod
    def parse(cls, text: str) -> "CellAddress":
        rng = RangeAddress.parse(text)
        if rng.row_count != 1 or rng.col_count != 1:
            raise ValueError(f"Not a single cell: {text!r}")
        return cls(rng.first_row, rng.first_col)

    @property
    def a1(self) -> str:
        return f"{column_letter(self.col)}{self.row + 1}"

    def __str__(self) -> str:
        return self.a1


@dataclass(frozen=True)
class RangeAddress:
    first_row: int
    first_col: int
    last_row: int
    last_col: int
    sheet: str | None = None

    def __post_init__(self) -> None:
        if self.first_row < 0 or self.first_col < 0:
            raise ValueError("Range bounds must be non-negative")
        if self.last_row < self.first_row or self.last_col < self.first_col:
            raise ValueError("Range end precedes range start")

    @classmethod
    def parse(cls, text: str) -> "RangeAddress":
        sheet, ref = _split_sheet(text)
        if not ref:
            raise ValueError(f"Empty range reference: {text!r}")
        try:
            min_col, min_row, max_col, max_row = range_boundaries(ref.replace("$", "").upper())
        except (ValueError, TypeError) as exc:
            raise ValueError(f"Invalid range reference: {text!r}") from exc
        if None in (min_col, min_row, max_col, max_row):
            raise ValueError(f"Whole-row/column references are not supported: {text!r}")
        return cls(min_row - 1, min_col - 1, max_row - 1, max_col - 1, sheet)

    @classmethod
    def bounding(cls, cells: Iterable[CellAddress], sheet: str | None = None) -> "RangeAddress":
        cells = list(cells)
        if not cells:
            raise ValueError("Cannot build a bounding box from zero cells")
        return cls(
            min(cell.row for cell in cells),
            min(cell.col for cell in cells),
            max(cell.row for cell in cells),
            max(cell.col for cell in cells),
            sheet,
        )

    @property
    def row_count(self) -> int:
        return self.last_row - self.first_row + 1

    @property
    def col_count(self) -> int:
        return self.last_col - self.first_col + 1

    @property
    def a1(self) -> str:
        start = CellAddress(self.first_row, self.first_col).a1
        end = CellAddress(self.last_row, self.last_col).a1
        return start if start == end else f"{start}:{end}"

    def __str__(self) -> str:
        if self.sheet:
            return f"{quote_sheet(self.sheet)}!{self.a1}"
        return self.a1

    def contains(self, cell: CellAddress) -> bool:
        return self.first_row <= cell.row <= self.last_row and self.first_col <= cell.col <= self.last_col

    def cells(self) -> Iterator[CellAddress]:
        for row in range(self.first_row, self.last_row + 1):
            for col in range(self.first_col, self.last_col + 1):
                yield CellAddress(row, col)

    def offset_of(self, cell: CellAddress) -> tuple[int, int]:
        if not self.contains(cell):
            raise ValueError(f"{cell.a1} lies outside {self}")
        return cell.row - self.first_row, cell.col - self.first_col

    def row_slice(self, start: int, stop: int) -> "RangeAddress":
        """Rows ``start`` (inclusive) to ``stop`` (exclusive), relative to this range."""
        stop = min(stop, self.row_count)
        if start < 0 or start >= stop:
            raise ValueError(f"Empty row slice {start}:{stop} of {self}")
        return RangeAddress(
            self.first_row + start,
            self.first_col,
            self.first_row + stop - 1,
            self.last_col,
            self.sheet,
        )

    def with_sheet(self, sheet: str | None) -> "RangeAddress":
        return RangeAddress(self.first_row, self.first_col, self.last_row, self.last_col, sheet)

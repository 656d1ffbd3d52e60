"""
Bounded undo history.

Entries are kept newest first. Pushing past ``max_entries`` drops the oldest
entry; nothing else removes entries except ``pop`` (after a successful undo)
and an explicit ``clear``.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field

from cell_doctor.adapters import Grid
from cell_doctor.cells import RangeAddress

logger = logging.getLogger(__name__)

MAX_ENTRIES = 20

TYPE_LABELS = {
    "remove_duplicates": "Remove Duplicates",
    "standardize_format": "Standardize Format",
}


@dataclass(frozen=True)
class UndoData:
    address: RangeAddress
    values: Grid
    formulas: Grid


@dataclass(frozen=True)
class HistoryEntry:
    id: str
    type: str
    target: RangeAddress
    timestamp: float
    undo_data: UndoData
    issue_id: str = ""
    label: str = ""

    @classmethod
    def create(cls, type: str, target: RangeAddress, undo_data: UndoData, issue_id: str = "") -> "HistoryEntry":
        return cls(
            id=uuid.uuid4().hex[:12],
            type=type,
            target=target,
            timestamp=time.time(),
            undo_data=undo_data,
            issue_id=issue_id,
            label=TYPE_LABELS.get(type, type),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "label": self.label,
            "target": str(self.target),
            "issue_id": self.issue_id,
            "timestamp": self.timestamp,
            "when": format_relative_time(self.timestamp),
        }


@dataclass
class HistoryStore:
    max_entries: int = MAX_ENTRIES
    _entries: deque = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._entries = deque(maxlen=self.max_entries)

    def push(self, entry: HistoryEntry) -> None:
        if len(self._entries) == self.max_entries:
            evicted = self._entries[-1]
            logger.info("History full, dropping oldest entry %s (%s)", evicted.id, evicted.type)
        self._entries.appendleft(entry)

    def peek(self) -> HistoryEntry | None:
        return self._entries[0] if self._entries else None

    def pop(self) -> HistoryEntry | None:
        return self._entries.popleft() if self._entries else None

    def list(self) -> list[HistoryEntry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)


def format_relative_time(timestamp: float, now: float | None = None) -> str:
    now = time.time() if now is None else now
    seconds = int(max(0, now - timestamp))
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    if seconds < 60:
        return "just now"
    if minutes < 60:
        return f"{minutes} min ago"
    if hours < 24:
        return f"{hours} hr ago"
    if days == 1:
        return "yesterday"
    return f"{days} days ago"

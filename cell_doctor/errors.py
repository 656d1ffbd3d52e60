"""Error taxonomy shared by the scanner, the apply/undo pipeline and the CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    READ_FAILURE = "read_failure"
    WRITE_FAILURE = "write_failure"
    CAPTURE_FAILURE = "capture_failure"
    MUTATION_FAILURE = "mutation_failure"
    RESTORE_FAILURE = "restore_failure"
    EMPTY_HISTORY = "empty_history"
    CONFIRMATION_REQUIRED = "confirmation_required"
    INVALID_ACTION = "invalid_action"
    BUSY = "busy"
    SCAN_CANCELLED = "scan_cancelled"


class CellDoctorError(Exception):
    kind: ErrorKind = ErrorKind.READ_FAILURE

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ReadFailure(CellDoctorError):
    """The adapter could not resolve or read a range."""

    kind = ErrorKind.READ_FAILURE

    def __init__(self, address: Any, reason: str) -> None:
        super().__init__(f"Could not read {address}: {reason}", address=str(address), reason=reason)
        self.address = address
        self.reason = reason


class WriteFailure(CellDoctorError):
    """The adapter rejected a write. Writes are all-or-nothing."""

    kind = ErrorKind.WRITE_FAILURE

    def __init__(self, address: Any, reason: str) -> None:
        super().__init__(f"Could not write {address}: {reason}", address=str(address), reason=reason)
        self.address = address
        self.reason = reason


class ScanCancelled(CellDoctorError):
    kind = ErrorKind.SCAN_CANCELLED

    def __init__(self, message: str = "Scan cancelled") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class OperationError:
    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict, hash=False)

    @classmethod
    def from_exception(cls, kind: ErrorKind, exc: Exception) -> "OperationError":
        details = dict(getattr(exc, "details", {}) or {})
        return cls(kind, str(exc), details)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "details": dict(self.details)}


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of an apply or undo: either ``value`` or ``error`` is set."""

    value: T | None = None
    error: OperationError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T | None = None) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, **details: Any) -> "Outcome[T]":
        return cls(error=OperationError(kind, message, details))

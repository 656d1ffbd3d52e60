"""
Session facade: one adapter, one history store, one scan slot and one
apply/undo critical section.
"""

from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Iterable

from cell_doctor.adapters import SheetAdapter
from cell_doctor.cancellation import CancellationToken
from cell_doctor.cells import RangeAddress
from cell_doctor.config import EngineConfig
from cell_doctor.errors import CellDoctorError, OperationError, Outcome
from cell_doctor.fixes import FixAction
from cell_doctor.fixes import resolve_fix_actions as _resolve_fix_actions
from cell_doctor.history import HistoryEntry, HistoryStore
from cell_doctor.issues import Issue, ScanResult, Severity
from cell_doctor.issues import filter_and_sort as _filter_and_sort
from cell_doctor.pipeline import ApplyPipeline, MutationGate, UndoExecutor
from cell_doctor.scanner import Scanner
from cell_doctor.snapshot import ProgressCallback

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    REVIEWING = "reviewing"
    APPLYING = "applying"
    UNDOING = "undoing"


class TerminalOutcome(str, Enum):
    APPLIED = "applied"
    APPLY_FAILED = "apply_failed"
    REVERTED = "reverted"
    UNDO_FAILED = "undo_failed"


class Session:
    def __init__(
        self,
        adapter: SheetAdapter,
        config: EngineConfig | None = None,
        history: HistoryStore | None = None,
    ) -> None:
        self.adapter = adapter
        self.config = config or EngineConfig()
        self.history = history or HistoryStore(self.config.max_history_entries)
        self.gate = MutationGate(self.config.queue_mutations)
        self.scanner = Scanner(adapter, self.config)
        self.pipeline = ApplyPipeline(
            adapter,
            self.history,
            self.gate,
            self.config,
            on_phase=self._enter_phase,
            on_finish=lambda outcome: self._finish(outcome, TerminalOutcome.APPLIED, TerminalOutcome.APPLY_FAILED),
        )
        self.undo_executor = UndoExecutor(
            adapter,
            self.history,
            self.gate,
            on_phase=self._enter_phase,
            on_finish=lambda outcome: self._finish(outcome, TerminalOutcome.REVERTED, TerminalOutcome.UNDO_FAILED),
        )
        self._state_lock = threading.Lock()
        self._state = SessionState.IDLE
        self.last_outcome: TerminalOutcome | None = None
        self.last_error: OperationError | None = None
        self.last_result: ScanResult | None = None

    @property
    def state(self) -> SessionState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: SessionState) -> None:
        with self._state_lock:
            self._state = state

    def _enter_phase(self, phase: str) -> None:
        self._set_state(SessionState(phase))

    def _finish(self, outcome: Outcome, success: TerminalOutcome, failure: TerminalOutcome) -> None:
        self.last_outcome = success if outcome.ok else failure
        self.last_error = outcome.error
        self._set_state(SessionState.IDLE)

    # ── Scanning ──────────────────────────────────────────────────────────

    def scan(
        self,
        address: RangeAddress | str | None = None,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> ScanResult:
        if isinstance(address, str):
            address = RangeAddress.parse(address)
        self._set_state(SessionState.SCANNING)
        try:
            result = self.scanner.scan(address, on_progress=on_progress, token=token)
        except CellDoctorError as exc:
            self.last_error = OperationError.from_exception(exc.kind, exc)
            if not self.scanner.scanning:
                self._set_state(SessionState.IDLE)
            raise
        self.last_result = result
        self._set_state(SessionState.REVIEWING)
        return result

    def cancel_scan(self, reason: str = "cancelled by caller") -> bool:
        return self.scanner.cancel(reason)

    def filter_and_sort(
        self,
        issues: Iterable[Issue] | None = None,
        severity_filter: Severity | str | Iterable[Severity | str] | None = None,
    ) -> list[Issue]:
        if issues is None:
            issues = self.last_result.issues if self.last_result else []
        return _filter_and_sort(issues, severity_filter)

    def find_issue(self, issue_id: str) -> Issue | None:
        return self.last_result.find(issue_id) if self.last_result else None

    # ── Fixing ────────────────────────────────────────────────────────────

    def resolve_fix_actions(self, issue: Issue) -> list[FixAction]:
        return _resolve_fix_actions(issue)

    def apply_fix(self, action: FixAction, confirmed: bool = False) -> Outcome[HistoryEntry]:
        outcome = self.pipeline.apply(action, confirmed=confirmed)
        if not outcome.ok:
            self.last_error = outcome.error
        return outcome

    # ── History ───────────────────────────────────────────────────────────

    def get_history(self) -> list[HistoryEntry]:
        return self.history.list()

    def can_undo(self) -> bool:
        return bool(self.history) and not self.gate.busy

    def perform_undo(self) -> Outcome[HistoryEntry]:
        outcome = self.undo_executor.perform_undo()
        if not outcome.ok:
            self.last_error = outcome.error
        return outcome

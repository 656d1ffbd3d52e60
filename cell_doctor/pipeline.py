"""
Reversible apply/undo pipeline.

Apply: validate, compute the target range, capture what is there now,
write the planned values, then record a history entry. Undo: write the most
recent capture back and drop its entry. Both run inside one critical section
per session; adapter exceptions are turned into ``Outcome`` failures.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator

from cell_doctor.adapters import SheetAdapter
from cell_doctor.config import EngineConfig
from cell_doctor.errors import ErrorKind, OperationError, Outcome
from cell_doctor.fixes import FixAction, FixKind, plan_mutation
from cell_doctor.history import HistoryEntry, HistoryStore, UndoData

logger = logging.getLogger(__name__)

PhaseCallback = Callable[[str], None]
FinishCallback = Callable[[Outcome], None]


class MutationGate:
    """The single apply/undo critical section. Waiting callers queue unless queueing is off."""

    def __init__(self, queue_mutations: bool = True) -> None:
        self.queue_mutations = queue_mutations
        self._lock = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def hold(self) -> Iterator[bool]:
        acquired = self._lock.acquire(blocking=self.queue_mutations)
        try:
            yield acquired
        finally:
            if acquired:
                self._lock.release()


def _busy(operation: str) -> Outcome:
    logger.warning("%s rejected: another apply or undo is in progress", operation)
    return Outcome.failure(ErrorKind.BUSY, f"Another apply or undo is in progress; {operation} was not started")


def _failed(kind: ErrorKind, message: str, exc: Exception) -> Outcome:
    details = dict(getattr(exc, "details", {}) or {})
    return Outcome(error=OperationError(kind, f"{message}: {exc}", details))


class ApplyPipeline:
    def __init__(
        self,
        adapter: SheetAdapter,
        history: HistoryStore,
        gate: MutationGate,
        config: EngineConfig | None = None,
        on_phase: PhaseCallback | None = None,
        on_finish: FinishCallback | None = None,
    ) -> None:
        self.adapter = adapter
        self.history = history
        self.gate = gate
        self.config = config or EngineConfig()
        self.on_phase = on_phase
        self.on_finish = on_finish

    def _phase(self, name: str) -> None:
        if self.on_phase is not None:
            self.on_phase(name)

    def validate(self, action: FixAction, confirmed: bool) -> Outcome | None:
        if not action.cells:
            return Outcome.failure(ErrorKind.INVALID_ACTION, f"{action.kind.value} has no cells to act on", action_id=action.id)
        if action.requires_confirmation and not confirmed:
            return Outcome.failure(
                ErrorKind.CONFIRMATION_REQUIRED,
                f"{action.label} changes the sheet and must be confirmed first",
                action_id=action.id,
            )
        return None

    def apply(self, action: FixAction, confirmed: bool = False) -> Outcome[HistoryEntry]:
        rejected = self.validate(action, confirmed)
        if rejected is not None:
            logger.info("Fix %s not applied: %s", action.id, rejected.error.message)
            return rejected

        if not action.kind.mutates:
            return self._navigate(action)

        with self.gate.hold() as acquired:
            if not acquired:
                return _busy("apply")
            self._phase("applying")
            outcome = self._apply_locked(action)
            # terminal state is published before the gate is released
            if self.on_finish is not None:
                self.on_finish(outcome)
            return outcome

    def _navigate(self, action: FixAction) -> Outcome:
        try:
            if action.kind is FixKind.GO_TO_CELL:
                self.adapter.navigate_to(action.params.get("cell", min(action.cells)), action.sheet)
            else:
                self.adapter.select_cells(list(action.cells), action.sheet)
        except Exception as exc:
            logger.error("Could not move the selection for %s: %s", action.id, exc)
            return _failed(getattr(exc, "kind", ErrorKind.READ_FAILURE), "Could not select cells", exc)
        return Outcome.success(None)

    def _apply_locked(self, action: FixAction) -> Outcome[HistoryEntry]:
        target = action.target
        try:
            captured = self.adapter.read_range(target)
        except Exception as exc:
            logger.error("Capture failed for %s, nothing changed: %s", target, exc)
            return _failed(ErrorKind.CAPTURE_FAILURE, f"Could not capture {target}", exc)

        plan = plan_mutation(action, captured, target, self.config.serial_range)
        if not plan.changed:
            logger.info("Fix %s left %s untouched: nothing to change", action.id, target)
            return Outcome.failure(
                ErrorKind.INVALID_ACTION,
                f"{action.label}: nothing to change in {target}",
                action_id=action.id,
                reason="nothing_to_change",
            )
        try:
            self.adapter.write_range(target, plan.values, plan.formulas)
        except Exception as exc:
            logger.error("Mutation failed for %s, no history recorded: %s", target, exc)
            return _failed(ErrorKind.MUTATION_FAILURE, f"Could not write {target}", exc)

        entry = HistoryEntry.create(
            type=action.kind.value,
            target=target,
            undo_data=UndoData(target, captured.values, captured.formulas),
            issue_id=action.issue_id,
        )
        self.history.push(entry)
        logger.info("Applied %s to %s (%d cells changed)", action.kind.value, target, len(plan.changed))
        return Outcome.success(entry)


class UndoExecutor:
    def __init__(
        self,
        adapter: SheetAdapter,
        history: HistoryStore,
        gate: MutationGate,
        on_phase: PhaseCallback | None = None,
        on_finish: FinishCallback | None = None,
    ) -> None:
        self.adapter = adapter
        self.history = history
        self.gate = gate
        self.on_phase = on_phase
        self.on_finish = on_finish

    def perform_undo(self) -> Outcome[HistoryEntry]:
        with self.gate.hold() as acquired:
            if not acquired:
                return _busy("undo")
            if self.on_phase is not None:
                self.on_phase("undoing")
            outcome = self._undo_locked()
            if self.on_finish is not None:
                self.on_finish(outcome)
            return outcome

    def _undo_locked(self) -> Outcome[HistoryEntry]:
        entry = self.history.peek()
        if entry is None:
            return Outcome.failure(ErrorKind.EMPTY_HISTORY, "Nothing to undo")
        undo = entry.undo_data
        try:
            self.adapter.write_range(undo.address, undo.values, undo.formulas)
        except Exception as exc:
            logger.error("Undo of %s failed, entry kept for retry: %s", entry.id, exc)
            return _failed(ErrorKind.RESTORE_FAILURE, f"Could not restore {undo.address}", exc)
        self.history.pop()
        logger.info("Undid %s on %s", entry.type, undo.address)
        return Outcome.success(entry)

"""
Report payloads for scans and applied fixes, plus their plain-text rendering.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd

from cell_doctor import __version__ as TOOL_VERSION
from cell_doctor.errors import Outcome
from cell_doctor.fixes import FixAction, resolve_fix_actions
from cell_doctor.history import HistoryEntry
from cell_doctor.issues import Issue, IssueKind, ScanResult

MAX_TEXT_CELLS = 6
SCHEMA_VERSIONS = {"cell_doctor.scan": "1.0.0", "cell_doctor.fix_summary": "1.0.0"}


def _contract(name: str) -> dict[str, str]:
    return {"name": name, "version": SCHEMA_VERSIONS[name]}


def _run_summary(
    command: str,
    input_path: Path | None,
    output_path: Path | None,
    metrics: dict[str, Any],
    status: str = "ok",
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    generated_at = datetime.now(timezone.utc).replace(microsecond=0)
    return {
        "tool": "cell-doctor",
        "command": command,
        "status": status,
        "generated_at": generated_at.strftime("%Y-%m-%dT%H:%M:%SZ"),
        "input_file": str(input_path) if input_path else None,
        "output_file": str(output_path) if output_path else None,
        "warnings_count": len(warnings or []),
        "warnings": list(warnings or []),
        "metrics": metrics,
    }


def issue_row(issue: Issue) -> dict[str, Any]:
    cells = [cell.a1 for cell in issue.cells]
    shown = ", ".join(cells[:MAX_TEXT_CELLS])
    if len(cells) > MAX_TEXT_CELLS:
        shown += f" (+{len(cells) - MAX_TEXT_CELLS} more)"
    return {
        "id": issue.id,
        "severity": issue.severity.value,
        "kind": issue.kind.value,
        "column": issue.column_name,
        "cells": shown,
        "message": issue.message,
    }


def issues_frame(issues: list[Issue]) -> pd.DataFrame:
    columns = ["id", "severity", "kind", "column", "cells", "message"]
    if not issues:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame([issue_row(issue) for issue in issues], columns=columns)


def build_scan_report(
    result: ScanResult,
    *,
    input_path: Path | None = None,
    sheet: str | None = None,
    output_path: Path | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    contract = _contract("cell_doctor.scan")
    issues = []
    for issue in result.issues:
        payload = issue.to_dict()
        payload["fix_actions"] = [action.kind.value for action in resolve_fix_actions(issue)]
        issues.append(payload)
    kinds = {kind.value: 0 for kind in IssueKind}
    for issue in result.issues:
        kinds[issue.kind.value] += 1
    return {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
        "file": input_path.name if input_path else None,
        "sheet": sheet or (result.address.sheet if result.address else None),
        "range": result.address.a1 if result.address else None,
        "summary": {
            "verdict": result.verdict,
            "issue_count": len(result.issues),
            "counts_by_severity": dict(result.counts_by_severity),
            "counts_by_kind": kinds,
        },
        "issues": issues,
        "run_summary": _run_summary(
            "scan",
            input_path,
            output_path,
            warnings=warnings,
            metrics={
                "issues_found": len(result.issues),
                "cells_flagged": sum(len(issue.cells) for issue in result.issues),
                "verdict": result.verdict,
            },
        ),
    }


def render_scan_text(report: dict[str, Any], issues: list[Issue]) -> str:
    summary = report.get("summary", {})
    counts = summary.get("counts_by_severity", {})
    lines = [
        "cell-doctor scan",
        f"File: {report.get('file') or '[unknown]'}",
        f"Sheet: {report.get('sheet') or '[active]'}",
        f"Range: {report.get('range') or '[empty]'}",
        f"Verdict: {summary.get('verdict', '[unknown]')}",
        f"Issues: {summary.get('issue_count', 0)} "
        f"(error {counts.get('error', 0)}, warning {counts.get('warning', 0)}, info {counts.get('info', 0)})",
    ]
    if issues:
        lines.append("")
        lines.append(issues_frame(issues).to_string(index=False))
    return "\n".join(lines) + "\n"


def build_fix_summary(
    action: FixAction,
    outcome: Outcome[HistoryEntry],
    *,
    input_path: Path | None = None,
    output_path: Path | None = None,
) -> dict[str, Any]:
    contract = _contract("cell_doctor.fix_summary")
    entry = outcome.value
    return {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
        "input_file": str(input_path) if input_path else None,
        "output_file": str(output_path) if output_path else None,
        "action": action.to_dict(),
        "applied": outcome.ok,
        "history_entry": entry.to_dict() if entry is not None else None,
        "error": outcome.error.to_dict() if outcome.error else None,
        "run_summary": _run_summary(
            "fix",
            input_path,
            output_path,
            status="ok" if outcome.ok else "failed",
            metrics={
                "action": action.kind.value,
                "cells_targeted": len(action.cells),
                "history_recorded": entry is not None,
            },
        ),
    }


def render_fix_text(summary: dict[str, Any]) -> str:
    action = summary.get("action", {})
    lines = [
        "cell-doctor fix",
        f"Input: {summary.get('input_file') or '[unknown]'}",
        f"Output: {summary.get('output_file') or '[not written]'}",
        f"Issue: {action.get('issue_id', '[unknown]')}",
        f"Action: {action.get('label', '[unknown]')}",
        f"Cells: {len(action.get('cells', []))}",
        f"Applied: {'yes' if summary.get('applied') else 'no'}",
    ]
    entry = summary.get("history_entry")
    if entry:
        lines.append(f"Undo range: {entry['target']}")
    error = summary.get("error")
    if error:
        lines.append(f"Error ({error['kind']}): {error['message']}")
    return "\n".join(lines) + "\n"

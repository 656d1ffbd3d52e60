from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from cell_doctor import __version__ as TOOL_VERSION
from cell_doctor.adapters import OpenpyxlSheetAdapter
from cell_doctor.cells import RangeAddress
from cell_doctor.config import ConfigError, EngineConfig, load_config, starter_config_text
from cell_doctor.errors import ErrorKind, ReadFailure, WriteFailure
from cell_doctor.fixes import FixKind
from cell_doctor.issues import EXPLAIN_RULES, IssueKind, ScanResult, Severity
from cell_doctor.reporting import (
    build_fix_summary,
    build_scan_report,
    render_fix_text,
    render_scan_text,
)
from cell_doctor.session import Session

WORKBOOK_FORMATS = {".xlsx", ".xlsm"}
DEFAULT_CONFIG_PATH = "cell-doctor.json"

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_READ_FAILED = 2
EXIT_ISSUES_FOUND = 3
EXIT_FIX_FAILED = 4


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class CellDoctorArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_text(path: Path, payload: str) -> None:
    ensure_parent(path)
    path.write_text(payload, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json_dumps(payload))


def configure_logging(args: argparse.Namespace) -> None:
    if getattr(args, "verbose", False):
        level = logging.INFO
    elif getattr(args, "quiet", False):
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, stream=sys.stderr, format="%(levelname)s %(name)s: %(message)s")


def classify_backend_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, ReadFailure):
        return EXIT_READ_FAILED
    if isinstance(exc, WriteFailure):
        return EXIT_FIX_FAILED
    if isinstance(exc, (ConfigError, ValueError, FileNotFoundError)):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, OSError):
        return EXIT_READ_FAILED
    return EXIT_COMMAND_ERROR


def check_input(input_path: Path) -> None:
    if not input_path.exists():
        raise CliError(f"File not found: {input_path}", EXIT_COMMAND_ERROR)
    suffix = input_path.suffix.lower()
    if suffix not in WORKBOOK_FORMATS:
        raise CliError(
            f"Unsupported file type '{suffix or '[missing extension]'}'. "
            f"Supported: {', '.join(sorted(WORKBOOK_FORMATS))}",
            EXIT_COMMAND_ERROR,
        )


def load_engine_config(args: argparse.Namespace) -> EngineConfig:
    path = getattr(args, "config", None)
    return load_config(Path(path) if path else None)


def resolve_scan_range(adapter: OpenpyxlSheetAdapter, sheet_name: str | None, range_text: str | None) -> RangeAddress | None:
    if sheet_name and sheet_name not in adapter.sheet_names:
        raise CliError(
            f"Sheet not found: {sheet_name}. Available: {', '.join(adapter.sheet_names)}",
            EXIT_COMMAND_ERROR,
        )
    if range_text:
        try:
            address = RangeAddress.parse(range_text)
        except ValueError as exc:
            raise CliError(str(exc), EXIT_COMMAND_ERROR) from exc
        if address.sheet is None:
            address = address.with_sheet(sheet_name or adapter.workbook.active.title)
        return address
    return adapter.used_range(sheet_name)


def open_session(args: argparse.Namespace) -> tuple[Path, OpenpyxlSheetAdapter, Session, RangeAddress | None]:
    input_path = Path(args.input)
    check_input(input_path)
    config = load_engine_config(args)
    adapter = OpenpyxlSheetAdapter.open(input_path)
    address = resolve_scan_range(adapter, args.sheet_name, args.range)
    return input_path, adapter, Session(adapter, config), address


def build_parser() -> argparse.ArgumentParser:
    parser = CellDoctorArgumentParser(prog="cell-doctor", description="Find and fix data-quality problems in spreadsheet ranges.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Scan a sheet range for data-quality issues.")
    scan.add_argument("input", help="Workbook path (.xlsx/.xlsm)")
    scan.add_argument("--sheet", dest="sheet_name", help="Sheet to scan (default: active sheet)")
    scan.add_argument("--range", help="Range to scan, e.g. A1:D200 (default: used range)")
    scan.add_argument("--severity", nargs="+", choices=[level.value for level in Severity], help="Only show these severities")
    scan.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    scan.add_argument("--output", help="Also write the JSON report to this path")
    scan.add_argument("--config", help="Engine config path (.json)")
    scan.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    scan.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    fix = subparsers.add_parser("fix", help="Apply one fix action to an issue and save the workbook.")
    fix.add_argument("input", help="Workbook path (.xlsx/.xlsm)")
    fix.add_argument("--issue", required=True, help="Issue id from a previous scan, e.g. issue-3")
    fix.add_argument("--action", required=True, choices=[kind.value for kind in FixKind], help="Fix action kind")
    fix.add_argument("--yes", action="store_true", help="Confirm actions that need confirmation")
    fix.add_argument("--sheet", dest="sheet_name", help="Sheet the issue was found on")
    fix.add_argument("--range", help="Range the issue was found in")
    fix.add_argument("--output", help="Where to save the fixed workbook")
    fix.add_argument("--in-place", action="store_true", help="Overwrite the input workbook")
    fix.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    fix.add_argument("--config", help="Engine config path (.json)")
    fix.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    fix.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    config = subparsers.add_parser("config", help="Manage engine configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default=DEFAULT_CONFIG_PATH, help="Config output path")

    explain = subparsers.add_parser("explain", help="Explain an issue kind.")
    explain.add_argument("rule_id", help="Issue kind, e.g. duplicate")
    explain.add_argument("--json", action="store_true", help="Write machine JSON to stdout")

    subparsers.add_parser("version", help="Print version")
    return parser


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def safe_output_path(explicit: Path | None, default_path: Path, *, in_place: bool = False) -> Path:
    path = explicit or default_path
    if not in_place and path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def fix_output_path(args: argparse.Namespace, input_path: Path) -> Path:
    if args.in_place and args.output:
        raise CliError("Use either --output or --in-place, not both.", EXIT_COMMAND_ERROR)
    if args.in_place:
        return input_path
    default_path = input_path.with_name(f"{input_path.stem}-fixed{input_path.suffix}")
    return safe_output_path(Path(args.output) if args.output else None, default_path)


def run_scan(args: argparse.Namespace) -> int:
    try:
        input_path, adapter, session, address = open_session(args)
        result = session.scan(address) if address is not None else ScanResult.from_issues([])
        issues = session.filter_and_sort(result.issues, args.severity)
        report = build_scan_report(
            result,
            input_path=input_path,
            sheet=address.sheet if address else args.sheet_name,
            output_path=Path(args.output) if args.output else None,
        )
        if args.severity:
            shown = {issue.id for issue in issues}
            report["issues"] = [item for item in report["issues"] if item["id"] in shown]
            report["severity_filter"] = list(args.severity)
        if args.output:
            write_json(Path(args.output), report)
        if args.json:
            maybe_emit_json_stdout(report, True)
        else:
            emit_human(render_scan_text(report, issues).rstrip(), quiet=args.quiet)
            if args.output:
                emit_human(f"Report written: {args.output}", quiet=args.quiet)
        return EXIT_SUCCESS if result.is_clean else EXIT_ISSUES_FOUND
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_fix(args: argparse.Namespace) -> int:
    try:
        input_path, adapter, session, address = open_session(args)
        output_path = fix_output_path(args, input_path)
        result = session.scan(address) if address is not None else ScanResult.from_issues([])
        issue = result.find(args.issue)
        if issue is None:
            known = ", ".join(item.id for item in result.issues) or "none"
            raise CliError(f"Unknown issue id: {args.issue}. Current issues: {known}", EXIT_COMMAND_ERROR)
        actions = {action.kind.value: action for action in session.resolve_fix_actions(issue)}
        action = actions.get(args.action)
        if action is None:
            raise CliError(
                f"Action {args.action} does not apply to {issue.kind.value} issues. "
                f"Available: {', '.join(actions)}",
                EXIT_COMMAND_ERROR,
            )

        outcome = session.apply_fix(action, confirmed=args.yes)
        if not outcome.ok and outcome.error.kind is ErrorKind.CONFIRMATION_REQUIRED:
            raise CliError(f"{outcome.error.message}. Re-run with --yes to confirm.", EXIT_COMMAND_ERROR)

        saved_path = adapter.save(output_path) if outcome.ok else None
        summary = build_fix_summary(action, outcome, input_path=input_path, output_path=saved_path)
        if args.json:
            maybe_emit_json_stdout(summary, True)
        else:
            emit_human(render_fix_text(summary).rstrip(), quiet=args.quiet)
            if saved_path:
                emit_human(f"Fixed workbook: {saved_path}", quiet=args.quiet)
        return EXIT_SUCCESS if outcome.ok else EXIT_FIX_FAILED
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_text(config_path, starter_config_text())
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_explain(args: argparse.Namespace) -> int:
    try:
        kind = IssueKind(args.rule_id)
    except ValueError:
        eprint(f"Unknown issue kind: {args.rule_id}. Known: {', '.join(item.value for item in IssueKind)}")
        return EXIT_COMMAND_ERROR
    rule = EXPLAIN_RULES[kind]
    payload = {
        "rule_id": kind.value,
        "description": rule["description"],
        "evidence": rule["evidence"],
        "fixes": rule["fixes"],
    }
    if args.json:
        maybe_emit_json_stdout(payload, True)
    else:
        print(
            "\n".join(
                [
                    f"Issue: {kind.value}",
                    f"What it means: {payload['description']}",
                    f"What triggers it: {payload['evidence']}",
                    f"Fixes: {payload['fixes']}",
                ]
            )
        )
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args)
        if args.command == "scan":
            return run_scan(args)
        if args.command == "fix":
            return run_fix(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "explain":
            return run_explain(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())

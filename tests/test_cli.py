from __future__ import annotations

import importlib.util
import json
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

import openpyxl

ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "cell_doctor.cli"]


def load_module(module_path: Path, module_name: str):
    spec = importlib.util.spec_from_file_location(module_name, module_path)
    module = importlib.util.module_from_spec(spec)
    assert spec and spec.loader
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


SAMPLE = load_module(ROOT / "sample-data" / "generate_xlsx.py", "cell_doctor_sample_tests")


def run_cli(*args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [*CLI, *args],
        cwd=ROOT,
        capture_output=True,
        text=True,
    )


def write_clean_workbook(path: Path) -> Path:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(["name", "amount"])
    ws.append(["Alice", 10])
    ws.append(["Bob", 20])
    wb.save(path)
    return path


def find_issue(report: dict, kind: str, column: str) -> dict:
    return next(item for item in report["issues"] if item["kind"] == kind and item["column"] == column)


class CellDoctorCliTests(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmpdir.name)
        self.messy = SAMPLE.build_workbook(self.tmp / "messy.xlsx")

    def tearDown(self):
        self._tmpdir.cleanup()

    def scan_json(self, *extra: str) -> dict:
        proc = run_cli("scan", str(self.messy), "--json", *extra)
        self.assertEqual(proc.returncode, 3, proc.stderr)
        return json.loads(proc.stdout)

    def test_scan_messy_workbook_returns_exit_3(self):
        proc = run_cli("scan", str(self.messy))
        self.assertEqual(proc.returncode, 3, proc.stderr)
        self.assertIn("cell-doctor scan", proc.stderr)
        self.assertIn("Verdict:", proc.stderr)

    def test_scan_json_stdout_contains_only_json(self):
        proc = run_cli("scan", str(self.messy), "--json")
        self.assertEqual(proc.returncode, 3, proc.stderr)
        report = json.loads(proc.stdout)
        self.assertEqual(proc.stderr.strip(), "")
        self.assertEqual(report["contract"]["name"], "cell_doctor.scan")
        self.assertEqual(report["file"], "messy.xlsx")
        self.assertEqual(report["sheet"], "Customers")
        self.assertEqual(report["range"], "A1:H13")
        kinds = {item["kind"] for item in report["issues"]}
        self.assertTrue({"duplicate", "missing_value", "mixed_format", "inconsistent_casing", "outlier"} <= kinds)
        duplicate = find_issue(report, "duplicate", "customer_id")
        self.assertEqual(duplicate["cells"], ["B5", "B11"])
        self.assertEqual(duplicate["fix_actions"], ["remove_duplicates", "highlight_only"])

    def test_scan_writes_report_file_and_filters_severity(self):
        output = self.tmp / "reports" / "scan.json"
        report = self.scan_json("--severity", "info", "--output", str(output))
        self.assertTrue(output.exists())
        self.assertTrue(report["issues"])
        self.assertTrue(all(item["severity"] == "info" for item in report["issues"]))
        self.assertEqual(report["severity_filter"], ["info"])

    def test_scan_clean_workbook_returns_exit_0(self):
        clean = write_clean_workbook(self.tmp / "clean.xlsx")
        proc = run_cli("scan", str(clean), "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        report = json.loads(proc.stdout)
        self.assertEqual(report["summary"]["issue_count"], 0)
        self.assertEqual(report["summary"]["verdict"], "HEALTHY")

    def test_scan_unknown_sheet_and_missing_file_return_exit_1(self):
        proc = run_cli("scan", str(self.messy), "--sheet", "Nope")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Sheet not found: Nope", proc.stderr)
        proc = run_cli("scan", str(self.tmp / "missing.xlsx"))
        self.assertEqual(proc.returncode, 1)
        self.assertIn("File not found", proc.stderr)

    def test_scan_rejects_csv_input(self):
        path = self.tmp / "data.csv"
        path.write_text("a,b\n1,2\n", encoding="utf-8")
        proc = run_cli("scan", str(path))
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Unsupported file type '.csv'", proc.stderr)

    def test_scan_corrupt_workbook_returns_exit_2(self):
        corrupt = self.tmp / "corrupt.xlsx"
        corrupt.write_bytes(b"not a workbook")
        proc = run_cli("scan", str(corrupt))
        self.assertEqual(proc.returncode, 2)
        self.assertIn("Could not read", proc.stderr)

    def test_fix_remove_duplicates_needs_yes(self):
        issue_id = find_issue(self.scan_json(), "duplicate", "customer_id")["id"]
        proc = run_cli("fix", str(self.messy), "--issue", issue_id, "--action", "remove_duplicates")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("--yes", proc.stderr)
        self.assertFalse((self.tmp / "messy-fixed.xlsx").exists())

    def test_fix_remove_duplicates_writes_fixed_copy(self):
        issue_id = find_issue(self.scan_json(), "duplicate", "customer_id")["id"]
        proc = run_cli("fix", str(self.messy), "--issue", issue_id, "--action", "remove_duplicates", "--yes", "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        summary = json.loads(proc.stdout)
        self.assertTrue(summary["applied"])
        self.assertEqual(summary["history_entry"]["type"], "remove_duplicates")

        fixed = self.tmp / "messy-fixed.xlsx"
        self.assertEqual(Path(summary["output_file"]), fixed)
        ws = openpyxl.load_workbook(fixed)["Customers"]
        self.assertEqual(ws["B5"].value, "C004")
        self.assertIsNone(ws["B11"].value)
        self.assertEqual(ws["F2"].value, "=E2*2")
        original = openpyxl.load_workbook(self.messy)["Customers"]
        self.assertEqual(original["B11"].value, "C004")

    def test_fix_standardize_casing_in_place(self):
        issue_id = find_issue(self.scan_json(), "inconsistent_casing", "country")["id"]
        proc = run_cli("fix", str(self.messy), "--issue", issue_id, "--action", "standardize_format", "--in-place")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("Applied: yes", proc.stderr)
        ws = openpyxl.load_workbook(self.messy)["Customers"]
        self.assertEqual([ws[f"G{row}"].value for row in (2, 4, 7)], ["Germany", "Germany", "Germany"])

    def test_fix_refuses_to_overwrite_existing_output(self):
        issue_id = find_issue(self.scan_json(), "duplicate", "customer_id")["id"]
        (self.tmp / "messy-fixed.xlsx").write_bytes(b"keep me")
        proc = run_cli("fix", str(self.messy), "--issue", issue_id, "--action", "highlight_only")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Refusing to overwrite", proc.stderr)
        self.assertEqual((self.tmp / "messy-fixed.xlsx").read_bytes(), b"keep me")

    def test_fix_unknown_issue_and_wrong_action(self):
        proc = run_cli("fix", str(self.messy), "--issue", "issue-999", "--action", "highlight_only")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Unknown issue id: issue-999", proc.stderr)

        issue_id = find_issue(self.scan_json(), "outlier", "score")["id"]
        proc = run_cli("fix", str(self.messy), "--issue", issue_id, "--action", "remove_duplicates", "--yes")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("does not apply to outlier issues", proc.stderr)

    def test_explain_known_and_unknown_rules(self):
        proc = run_cli("explain", "duplicate", "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["rule_id"], "duplicate")
        self.assertIn("remove_duplicates", payload["fixes"])

        proc = run_cli("explain", "nonsense")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Unknown issue kind", proc.stderr)

    def test_config_init_writes_starter_and_refuses_overwrite(self):
        path = self.tmp / "cell-doctor.json"
        proc = run_cli("config", "init", "--path", str(path))
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(path.read_text(encoding="utf-8"))
        self.assertEqual(payload["max_history_entries"], 20)

        proc = run_cli("config", "init", "--path", str(path))
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Refusing to overwrite", proc.stderr)

    def test_scan_with_invalid_config_returns_exit_1(self):
        config = self.tmp / "bad.json"
        config.write_text('{"chunk_rows": 0}', encoding="utf-8")
        proc = run_cli("scan", str(self.messy), "--config", str(config))
        self.assertEqual(proc.returncode, 1)
        self.assertIn("chunk_rows", proc.stderr)

    def test_version_and_bad_arguments(self):
        proc = run_cli("version")
        self.assertEqual(proc.returncode, 0)
        self.assertRegex(proc.stdout.strip(), r"^\d+\.\d+\.\d+$")

        proc = run_cli("scan")
        self.assertEqual(proc.returncode, 1)


if __name__ == "__main__":
    unittest.main()

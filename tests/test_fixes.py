from __future__ import annotations

import unittest

from cell_doctor.adapters import GridSheetAdapter
from cell_doctor.cells import CellAddress, RangeAddress
from cell_doctor.fixes import FixKind, plan_mutation, resolve_fix_actions
from cell_doctor.issues import IssueKind
from cell_doctor.scanner import Scanner


def issues_for(rows, formulas=None):
    adapter = GridSheetAdapter.from_rows(rows)
    for (row, col), (formula, cached) in (formulas or {}).items():
        adapter.set_formula(CellAddress(row, col), formula, cached)
    return adapter, Scanner(adapter).scan().issues


def first_issue(issues, kind):
    return next(issue for issue in issues if issue.kind is kind)


def plan_for(adapter, issue, kind):
    action = next(action for action in resolve_fix_actions(issue) if action.kind is kind)
    target = action.target
    return action, plan_mutation(action, adapter.read_range(target), target)


class ResolveFixActionsTests(unittest.TestCase):
    def test_fix_table(self):
        rows = [
            ["code", "note", "amount", "country", "score"],
            ["A", "x", 10, "Germany", 2],
            ["A", None, "20", "germany", 2],
            ["B", "y", 30, "France", 2],
            ["C", "z", 40, "Spain", 2],
            ["D", "w", 50, "Italy", 2],
            ["E", "v", 60, "Peru", 2],
            ["F", "u", 70, "Chile", 2],
            ["G", "t", 80, "Japan", 2],
            ["H", "s", 90, "India", 2],
            ["I", "r", 100, "Kenya", 2],
            ["J", "q", 110, "Nepal", 50],
        ]
        _, issues = issues_for(rows)
        expected = {
            IssueKind.DUPLICATE: [FixKind.REMOVE_DUPLICATES, FixKind.HIGHLIGHT_ONLY],
            IssueKind.MISSING_VALUE: [FixKind.GO_TO_CELL],
            IssueKind.MIXED_FORMAT: [FixKind.STANDARDIZE_FORMAT],
            IssueKind.INCONSISTENT_CASING: [FixKind.STANDARDIZE_FORMAT],
            IssueKind.OUTLIER: [FixKind.HIGHLIGHT_ONLY],
        }
        for kind, fix_kinds in expected.items():
            with self.subTest(kind=kind):
                actions = resolve_fix_actions(first_issue(issues, kind))
                self.assertEqual([action.kind for action in actions], fix_kinds)

    def test_only_remove_duplicates_needs_confirmation(self):
        _, issues = issues_for([["code"], ["A"], ["A"]])
        actions = resolve_fix_actions(issues[0])
        self.assertEqual(
            {action.kind: action.requires_confirmation for action in actions},
            {FixKind.REMOVE_DUPLICATES: True, FixKind.HIGHLIGHT_ONLY: False},
        )
        self.assertEqual(actions[0].issue_id, issues[0].id)
        self.assertEqual(actions[0].id, f"{issues[0].id}:remove_duplicates")

    def test_issues_and_actions_can_be_used_in_sets(self):
        _, issues = issues_for([["code"], ["A"], ["A"]])
        actions = resolve_fix_actions(issues[0])
        self.assertEqual(len({issues[0], issues[0]}), 1)
        self.assertEqual(len(set(actions)), 2)
        self.assertIn(actions[0], {action: action.kind for action in actions})

    def test_target_is_minimal_bounding_box(self):
        _, issues = issues_for([["a", "b"], [1, "x"], [2, "y"], [3, "x"], [4, "z"]])
        action = resolve_fix_actions(issues[0])[0]
        self.assertEqual(action.target.a1, "B2:B4")


class PlanMutationTests(unittest.TestCase):
    def test_remove_duplicates_clears_later_occurrences_in_place(self):
        adapter, issues = issues_for([["v"], ["x"], ["y"], ["x"], [" x "]])
        issue = first_issue(issues, IssueKind.DUPLICATE)
        _, plan = plan_for(adapter, issue, FixKind.REMOVE_DUPLICATES)
        self.assertEqual(plan.values, [["x"], ["y"], [None], [None]])
        self.assertEqual([cell.a1 for cell in plan.changed], ["A4", "A5"])

    def test_cells_edited_after_the_scan_are_left_alone(self):
        adapter, issues = issues_for([["v"], ["x"], ["x"], ["x"]])
        issue = first_issue(issues, IssueKind.DUPLICATE)
        adapter.write_range(RangeAddress.parse("A2"), [["changed"]])
        _, plan = plan_for(adapter, issue, FixKind.REMOVE_DUPLICATES)
        self.assertEqual(plan.values, [["changed"], ["x"], [None]])
        self.assertEqual([cell.a1 for cell in plan.changed], ["A4"])

    def test_formula_cells_are_never_rewritten(self):
        adapter, issues = issues_for(
            [["v"], ["x"], [None], ["x"]],
            formulas={(2, 0): ("=A2", "x")},
        )
        issue = first_issue(issues, IssueKind.DUPLICATE)
        self.assertEqual(len(issue.cells), 3)
        _, plan = plan_for(adapter, issue, FixKind.REMOVE_DUPLICATES)
        self.assertEqual(plan.values, [["x"], ["x"], [None]])
        self.assertEqual(plan.formulas, [[None], ["=A2"], [None]])
        self.assertEqual([cell.a1 for cell in plan.changed], ["A4"])

    def test_casing_rewrites_to_first_spelling(self):
        adapter, issues = issues_for([["country"], ["Germany"], ["germany"], ["France"], ["GERMANY"]])
        issue = first_issue(issues, IssueKind.INCONSISTENT_CASING)
        _, plan = plan_for(adapter, issue, FixKind.STANDARDIZE_FORMAT)
        self.assertEqual(plan.values, [["Germany"], ["Germany"], ["France"], ["Germany"]])

    def test_numeric_text_becomes_number(self):
        adapter, issues = issues_for([["amount"], [10], ["1,200"], [30]])
        issue = first_issue(issues, IssueKind.MIXED_FORMAT)
        _, plan = plan_for(adapter, issue, FixKind.STANDARDIZE_FORMAT)
        self.assertEqual(plan.values, [[10], [1200], [30]])
        self.assertIsInstance(plan.values[1][0], int)

    def test_minority_numbers_become_numeric_text(self):
        adapter, issues = issues_for([["code"], ["100"], ["200"], [300]])
        issue = first_issue(issues, IssueKind.MIXED_FORMAT)
        _, plan = plan_for(adapter, issue, FixKind.STANDARDIZE_FORMAT)
        self.assertEqual(plan.values, [["100"], ["200"], ["300"]])

    def test_date_text_becomes_serial(self):
        adapter, issues = issues_for([["joined"], [45000], ["2023-01-15"], [45010]])
        issue = first_issue(issues, IssueKind.MIXED_FORMAT)
        _, plan = plan_for(adapter, issue, FixKind.STANDARDIZE_FORMAT)
        self.assertEqual(plan.values, [[45000], [44941], [45010]])

    def test_serial_becomes_date_text_in_the_column_format(self):
        adapter, issues = issues_for([["signup date"], ["15/02/2023"], ["22/05/2023"], [45000]])
        issue = first_issue(issues, IssueKind.MIXED_FORMAT)
        _, plan = plan_for(adapter, issue, FixKind.STANDARDIZE_FORMAT)
        self.assertEqual(plan.values[2], ["15/03/2023"])

    def test_unparseable_date_text_is_left_alone(self):
        adapter, issues = issues_for([["date"], [45000], [45001], ["31/02/2023"]])
        issue = first_issue(issues, IssueKind.MIXED_FORMAT)
        _, plan = plan_for(adapter, issue, FixKind.STANDARDIZE_FORMAT)
        self.assertEqual(plan.values, [[45000], [45001], ["31/02/2023"]])
        self.assertEqual(plan.changed, ())

    def test_non_mutating_actions_have_no_plan(self):
        adapter, issues = issues_for([["v"], ["x"], ["x"]])
        action = next(a for a in resolve_fix_actions(issues[0]) if a.kind is FixKind.HIGHLIGHT_ONLY)
        with self.assertRaises(ValueError):
            plan_mutation(action, adapter.read_range(action.target), action.target)


if __name__ == "__main__":
    unittest.main()

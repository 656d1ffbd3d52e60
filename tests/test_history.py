from __future__ import annotations

import unittest

from cell_doctor.cells import RangeAddress
from cell_doctor.history import HistoryEntry, HistoryStore, UndoData, format_relative_time

TARGET = RangeAddress(1, 0, 3, 0, "Sheet1")


def make_entry(index: int) -> HistoryEntry:
    return HistoryEntry.create(
        type="remove_duplicates",
        target=TARGET,
        undo_data=UndoData(TARGET, [[index], [None], [None]], [[None], [None], [None]]),
        issue_id=f"issue-{index}",
    )


class HistoryStoreTests(unittest.TestCase):
    def test_push_beyond_capacity_evicts_oldest(self):
        store = HistoryStore(max_entries=20)
        entries = [make_entry(n) for n in range(1, 22)]
        for entry in entries:
            store.push(entry)
        self.assertEqual(len(store), 20)
        self.assertIs(store.peek(), entries[-1])
        self.assertNotIn(entries[0], store.list())
        self.assertIs(store.list()[-1], entries[1])

    def test_newest_first_and_pop(self):
        store = HistoryStore()
        first, second, third = make_entry(1), make_entry(2), make_entry(3)
        for entry in (first, second, third):
            store.push(entry)
        self.assertEqual(store.list(), [third, second, first])
        self.assertIs(store.pop(), third)
        self.assertEqual(store.list(), [second, first])

    def test_list_is_a_copy(self):
        store = HistoryStore()
        store.push(make_entry(1))
        snapshot = store.list()
        snapshot.clear()
        self.assertEqual(len(store), 1)

    def test_empty_store(self):
        store = HistoryStore()
        self.assertFalse(store)
        self.assertIsNone(store.peek())
        self.assertIsNone(store.pop())
        store.push(make_entry(1))
        self.assertTrue(store)
        store.clear()
        self.assertEqual(len(store), 0)

    def test_capacity_must_be_positive(self):
        with self.assertRaises(ValueError):
            HistoryStore(max_entries=0)


class HistoryEntryTests(unittest.TestCase):
    def test_entries_get_unique_ids_and_labels(self):
        first, second = make_entry(1), make_entry(2)
        self.assertNotEqual(first.id, second.id)
        self.assertEqual(first.label, "Remove Duplicates")
        payload = first.to_dict()
        self.assertEqual(payload["target"], "Sheet1!A2:A4")
        self.assertEqual(payload["when"], "just now")


class RelativeTimeTests(unittest.TestCase):
    NOW = 1_700_000_000.0

    def test_buckets(self):
        cases = [
            (0, "just now"),
            (30, "just now"),
            (60, "1 min ago"),
            (300, "5 min ago"),
            (3540, "59 min ago"),
            (3600, "1 hr ago"),
            (7200, "2 hr ago"),
            (86400, "yesterday"),
            (172800, "2 days ago"),
        ]
        for seconds_ago, expected in cases:
            with self.subTest(seconds_ago=seconds_ago):
                self.assertEqual(format_relative_time(self.NOW - seconds_ago, now=self.NOW), expected)


if __name__ == "__main__":
    unittest.main()

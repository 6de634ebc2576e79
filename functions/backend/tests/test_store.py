import threading
import time
import unittest
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

from backend.store import (
    FirebaseRecordStore,
    InMemoryRecordStore,
    join_path,
    split_path,
)


class PathTests(unittest.TestCase):
    def test_join_and_split(self):
        self.assertEqual(join_path("generators", "GN0001", "status"), "generators/GN0001/status")
        self.assertEqual(join_path("/generators/", "", "GN0001"), "generators/GN0001")
        self.assertEqual(split_path("/a//b/c/"), ["a", "b", "c"])


class InMemoryRecordStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryRecordStore()

    def test_get_returns_copies(self):
        self.store.set("generators/GN0001", {"serial_no": "SN1"})
        record = self.store.get("generators/GN0001")
        record["serial_no"] = "changed"
        self.assertEqual(self.store.get("generators/GN0001/serial_no"), "SN1")

    def test_missing_path_is_none(self):
        self.assertIsNone(self.store.get("generators/GN0404"))
        self.assertIsNone(self.store.get("generators/GN0404/status"))

    def test_update_merges_per_key(self):
        self.store.set("generators/GN0001", {"serial_no": "SN1", "status": "Active"})
        self.store.update("generators/GN0001", {"status": "Repair", "model": "X"})
        self.assertEqual(
            self.store.get("generators/GN0001"),
            {"serial_no": "SN1", "status": "Repair", "model": "X"},
        )

    def test_update_accepts_multi_location_keys(self):
        self.store.set("serviceLogs/SL0001", {"overdue": False})
        self.store.set("serviceLogs/SL0002", {"overdue": False})
        self.store.update(
            "serviceLogs", {"SL0001/overdue": True, "SL0002/overdue": True}
        )
        self.assertTrue(self.store.get("serviceLogs/SL0001/overdue"))
        self.assertTrue(self.store.get("serviceLogs/SL0002/overdue"))

    def test_update_with_none_removes_field(self):
        self.store.set("batteries/BT0001", {"serial_no": "B1", "generator_id": "GN0001"})
        self.store.update("batteries/BT0001", {"generator_id": None})
        self.assertEqual(self.store.get("batteries/BT0001"), {"serial_no": "B1"})

    def test_update_rejects_empty_values(self):
        with self.assertRaises(ValueError):
            self.store.update("generators/GN0001", {})

    def test_remove_prunes_empty_parents(self):
        self.store.set("notifications/u1/n1", {"title": "hi"})
        self.store.remove("notifications/u1/n1")
        self.assertIsNone(self.store.get("notifications/u1"))
        self.assertIsNone(self.store.get("notifications"))

    def test_set_none_deletes(self):
        self.store.set("shops/SH0001", {"name": "Main"})
        self.store.set("shops/SH0001", None)
        self.assertIsNone(self.store.get("shops/SH0001"))

    def test_allocate_counter_starts_at_one(self):
        self.assertEqual(self.store.allocate_counter("counters/generators"), 1)
        self.assertEqual(self.store.allocate_counter("counters/generators"), 2)
        self.assertEqual(self.store.allocate_counter("counters/tasks"), 1)

    def test_allocate_counter_is_unique_under_concurrency(self):
        with ThreadPoolExecutor(max_workers=16) as pool:
            values = list(
                pool.map(
                    lambda _: self.store.allocate_counter("counters/tasks"), range(200)
                )
            )
        self.assertEqual(sorted(values), list(range(1, 201)))

    def test_query_matches_field_equality(self):
        self.store.set("tasks/TK0002", {"status": "Pending"})
        self.store.set("tasks/TK0001", {"status": "Pending"})
        self.store.set("tasks/TK0003", {"status": "Completed"})
        result = self.store.query("tasks", "status", "Pending")
        self.assertEqual(list(result), ["TK0001", "TK0002"])
        self.assertEqual(self.store.query("missing", "status", "Pending"), {})

    def test_watch_receives_before_and_after(self):
        handler = MagicMock()
        self.store.watch("generators", handler)
        self.store.set("generators/GN0001", {"status": "Active"})
        self.store.update("generators/GN0001", {"status": "Repair"})
        self.store.remove("generators/GN0001")

        self.assertEqual(
            [c.args for c in handler.call_args_list],
            [
                (None, {"status": "Active"}, "GN0001"),
                ({"status": "Active"}, {"status": "Repair"}, "GN0001"),
                ({"status": "Repair"}, None, "GN0001"),
            ],
        )

    def test_unchanged_write_dispatches_nothing(self):
        self.store.set("generators/GN0001", {"status": "Active"})
        handler = MagicMock()
        self.store.watch("generators", handler)
        self.store.update("generators/GN0001", {"status": "Active"})
        handler.assert_not_called()

    def test_unwatched_collections_are_ignored(self):
        handler = MagicMock()
        self.store.watch("generators", handler)
        self.store.set("notifications/u1/n1", {"title": "hi"})
        handler.assert_not_called()

    def test_writes_from_handlers_are_queued(self):
        calls = []

        def handler(before, after, record_id):
            calls.append((record_id, dict(after or {})))
            if after is not None and "seen" not in after:
                self.store.update(f"tasks/{record_id}", {"seen": True})
                nested.append(len(calls))

        nested = []

        self.store.watch("tasks", handler)
        self.store.set("tasks/TK0001", {"description": "x"})
        self.assertEqual(
            calls,
            [
                ("TK0001", {"description": "x"}),
                ("TK0001", {"description": "x", "seen": True}),
            ],
        )
        # The nested write was delivered only after the first handler returned.
        self.assertEqual(nested, [1])

    def test_concurrent_writes_return_after_their_handlers(self):
        handled = set()
        handled_lock = threading.Lock()

        def handler(before, after, record_id):
            time.sleep(0.005)
            with handled_lock:
                handled.add(record_id)

        def write(n):
            record_id = f"TK{n:04d}"
            self.store.set(f"tasks/{record_id}", {"description": "x"})
            with handled_lock:
                return record_id in handled

        self.store.watch("tasks", handler)
        with ThreadPoolExecutor(max_workers=8) as pool:
            seen = list(pool.map(write, range(1, 25)))
        self.assertTrue(all(seen))
        self.assertEqual(len(handled), 24)

    def test_failing_handler_is_logged(self):
        self.store.watch("tasks", MagicMock(side_effect=RuntimeError("boom")))
        with self.assertLogs("backend.store", level="ERROR"):
            self.store.set("tasks/TK0001", {"description": "x"})
        self.assertEqual(self.store.get("tasks/TK0001"), {"description": "x"})

    def test_reset_clears_data(self):
        self.store.set("shops/SH0001", {"name": "Main"})
        self.store.reset()
        self.assertIsNone(self.store.get("shops"))


class FirebaseRecordStoreTests(unittest.TestCase):
    @patch("backend.store.db")
    def test_allocate_counter_uses_transaction(self, db_mock):
        ref = db_mock.reference.return_value
        ref.transaction.return_value = 7
        store = FirebaseRecordStore()

        self.assertEqual(store.allocate_counter("counters/generators"), 7)
        db_mock.reference.assert_called_with("/counters/generators", app=None)
        increment = ref.transaction.call_args.args[0]
        self.assertEqual(increment(None), 1)
        self.assertEqual(increment(6), 7)

    @patch("backend.store.db")
    def test_query_orders_by_child(self, db_mock):
        ref = db_mock.reference.return_value
        ref.order_by_child.return_value.equal_to.return_value.get.return_value = {
            "TK0001": {"status": "Pending"}
        }
        store = FirebaseRecordStore()

        result = store.query("tasks", "status", "Pending")
        ref.order_by_child.assert_called_once_with("status")
        ref.order_by_child.return_value.equal_to.assert_called_once_with("Pending")
        self.assertEqual(result, {"TK0001": {"status": "Pending"}})

    @patch("backend.store.db")
    def test_set_none_deletes(self, db_mock):
        ref = db_mock.reference.return_value
        FirebaseRecordStore().set("shops/SH0001", None)
        ref.delete.assert_called_once_with()
        ref.set.assert_not_called()


if __name__ == "__main__":
    unittest.main()

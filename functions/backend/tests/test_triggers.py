import unittest
from unittest.mock import MagicMock

from backend.notifications import Notifier
from backend.store import InMemoryRecordStore
from backend.testing_utils import FakeClock
from backend.triggers import (
    ChangeReactionTrigger,
    RecordChange,
    assignment_fan_out,
    is_metadata_only_change,
    strip_metadata,
)
from shared.types import NotificationType


class MetadataDiffTests(unittest.TestCase):
    def test_strip_metadata(self):
        self.assertEqual(
            strip_metadata({"a": 1, "createdAt": 1, "updatedAt": 2}), {"a": 1}
        )
        self.assertEqual(strip_metadata(None), {})

    def test_metadata_only_change(self):
        before = {"a": 1, "nested": {"x": [1, 2]}, "updatedAt": 1}
        after = {"nested": {"x": [1, 2]}, "a": 1, "updatedAt": 2, "createdAt": 1}
        self.assertTrue(is_metadata_only_change(before, after))

    def test_field_change_is_not_metadata_only(self):
        self.assertFalse(
            is_metadata_only_change({"a": 1, "updatedAt": 1}, {"a": 2, "updatedAt": 1})
        )
        self.assertFalse(is_metadata_only_change(None, {"a": 1}))


class TriggerOnStoreTests(unittest.TestCase):
    """Triggers wired to the in-memory store, as they run after each write."""

    def setUp(self):
        self.clock = FakeClock()
        self.store = InMemoryRecordStore()
        self.trigger = ChangeReactionTrigger("generators", self.store, clock=self.clock)
        self.handled = []

        def handle(before, after, record_id):
            self.handled.append(self.trigger.handle(before, after, record_id))

        self.store.watch("generators", handle)

    def test_create_sets_equal_timestamps(self):
        self.store.set(
            "generators/GN0001", {"serial_no": "SN1", "createdAt": 5, "updatedAt": 5}
        )
        record = self.store.get("generators/GN0001")
        self.assertIsInstance(record["createdAt"], int)
        self.assertEqual(record["createdAt"], record["updatedAt"])
        # Provisional values are replaced.
        self.assertGreater(record["createdAt"], 5)

    def test_own_stamp_does_not_loop(self):
        self.store.set("generators/GN0001", {"serial_no": "SN1"})
        # One stamp for the create, then the stamp's own echo writes nothing.
        self.assertEqual(len(self.handled), 2)
        self.assertIsNotNone(self.handled[0])
        self.assertIsNone(self.handled[1])

    def test_metadata_only_write_is_left_as_is(self):
        self.store.set("generators/GN0001", {"serial_no": "SN1"})
        self.store.update("generators/GN0001", {"updatedAt": 42})
        self.assertEqual(self.store.get("generators/GN0001/updatedAt"), 42)
        self.assertIsNone(self.handled[-1])

    def test_field_change_increases_updated_at(self):
        self.store.set("generators/GN0001", {"serial_no": "SN1"})
        created = self.store.get("generators/GN0001")
        self.store.update("generators/GN0001", {"location": "DOWN"})
        updated = self.store.get("generators/GN0001")
        self.assertGreater(updated["updatedAt"], created["updatedAt"])
        self.assertEqual(updated["createdAt"], created["createdAt"])

    def test_updated_at_increases_even_if_clock_lags(self):
        self.store.set(
            "generators/GN0001", {"serial_no": "SN1"}
        )
        self.clock.now = 0
        previous = self.store.get("generators/GN0001/updatedAt")
        self.store.update("generators/GN0001", {"location": "UP"})
        self.assertEqual(self.store.get("generators/GN0001/updatedAt"), previous + 1)

    def test_created_at_is_restored(self):
        self.store.set("generators/GN0001", {"serial_no": "SN1"})
        created_at = self.store.get("generators/GN0001/createdAt")
        self.store.update("generators/GN0001", {"createdAt": 1, "model": "X"})
        self.assertEqual(self.store.get("generators/GN0001/createdAt"), created_at)

    def test_deletion_writes_nothing(self):
        self.store.set("generators/GN0001", {"serial_no": "SN1"})
        self.store.remove("generators/GN0001")
        self.assertIsNone(self.store.get("generators/GN0001"))
        self.assertIsNone(self.handled[-1])


class TriggerUnitTests(unittest.TestCase):
    def test_stamp_failure_is_logged(self):
        store = MagicMock()
        store.update.side_effect = RuntimeError("unavailable")
        trigger = ChangeReactionTrigger("tasks", store, clock=lambda: 100)

        with self.assertLogs("backend.triggers", level="ERROR"):
            stamp = trigger.handle(None, {"description": "x"}, "TK0001")
        self.assertEqual(stamp, {"createdAt": 100, "updatedAt": 100})

    def test_first_stamp_on_legacy_record_sets_created_at(self):
        store = MagicMock()
        trigger = ChangeReactionTrigger("tasks", store, clock=lambda: 100)
        stamp = trigger.handle({"a": 1}, {"a": 2}, "TK0001")
        self.assertEqual(stamp, {"createdAt": 100, "updatedAt": 100})
        store.update.assert_called_once_with("tasks/TK0001", stamp)

    def test_fan_out_failure_does_not_raise(self):
        store = InMemoryRecordStore()
        notifier = MagicMock()
        fan_out = MagicMock(side_effect=KeyError("bad"))
        trigger = ChangeReactionTrigger(
            "tasks", store, notifier=notifier, fan_out=fan_out, clock=lambda: 100
        )
        with self.assertLogs("backend.triggers", level="ERROR"):
            trigger.handle(None, {"assigned_to": "u1"}, "TK0001")
        notifier.notify.assert_not_called()

    def test_delivery_failure_does_not_raise(self):
        store = MagicMock()
        store.set.side_effect = RuntimeError("unavailable")
        trigger = ChangeReactionTrigger(
            "tasks",
            store,
            notifier=Notifier(store, clock=lambda: 100),
            fan_out=assignment_fan_out("Task"),
            clock=lambda: 100,
        )
        with self.assertLogs("backend.notifications", level="ERROR"):
            stamp = trigger.handle(None, {"assigned_to": "u1"}, "TK0001")
        self.assertIsNotNone(stamp)


class AssignmentFanOutTests(unittest.TestCase):
    def setUp(self):
        self.policy = assignment_fan_out("Task")

    def deliveries(self, before, after):
        return list(self.policy(RecordChange("tasks", "TK0001", before, after)))

    def test_creation_notifies_assignee(self):
        [delivery] = self.deliveries(None, {"assigned_to": "u1", "created_by": "a"})
        self.assertEqual(delivery.recipient_id, "u1")
        self.assertEqual(delivery.type, NotificationType.CREATED)

    def test_creation_without_assignee_is_silent(self):
        self.assertEqual(self.deliveries(None, {"description": "x"}), [])

    def test_deletion_notifies_previous_assignee(self):
        [delivery] = self.deliveries({"assigned_to": "u1"}, None)
        self.assertEqual(delivery.recipient_id, "u1")
        self.assertEqual(delivery.type, NotificationType.DELETED)

    def test_reassignment_notifies_new_assignee(self):
        [delivery] = self.deliveries(
            {"assigned_to": "u1", "status": "Pending"},
            {"assigned_to": "u2", "status": "Pending"},
        )
        self.assertEqual(delivery.recipient_id, "u2")
        self.assertEqual(delivery.type, NotificationType.UPDATED)

    def test_status_change_notifies_assignee_and_owner(self):
        deliveries = self.deliveries(
            {"assigned_to": "u1", "created_by": "boss", "status": "Pending"},
            {"assigned_to": "u1", "created_by": "boss", "status": "Completed"},
        )
        self.assertEqual([d.recipient_id for d in deliveries], ["u1", "boss"])
        self.assertIn("Completed", deliveries[0].body)

    def test_recipients_are_deduplicated(self):
        deliveries = self.deliveries(
            {"assigned_to": "u1", "created_by": "u1", "status": "Pending"},
            {"assigned_to": "u1", "created_by": "u1", "status": "Cancelled"},
        )
        self.assertEqual(len(deliveries), 1)

    def test_unrelated_change_is_silent(self):
        self.assertEqual(
            self.deliveries(
                {"assigned_to": "u1", "description": "a"},
                {"assigned_to": "u1", "description": "b"},
            ),
            [],
        )


if __name__ == "__main__":
    unittest.main()

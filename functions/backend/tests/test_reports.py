import unittest
from datetime import date
from unittest.mock import MagicMock

from firebase_functions import https_fn

from backend.reports import ReportService
from backend.testing_utils import (
    ADMIN,
    OPERATOR,
    START_MS,
    FakeClock,
    make_services,
)

ErrorCode = https_fn.FunctionsErrorCode

DAY_MS = 24 * 60 * 60 * 1000


class ReportTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.services = make_services(self.clock)
        self.reports = self.services.reports
        self.store = self.services.store

    def seed(self):
        generators = self.services.generators
        generators.create(ADMIN, {"serial_no": "G1", "location": "UP"})
        generators.create(ADMIN, {"serial_no": "G2", "location": "UP", "status": "Repair"})

        tasks = self.services.tasks
        tasks.create(ADMIN, {"description": "a", "assigned_to": "u1", "due_date": START_MS})
        tasks.create(
            ADMIN, {"description": "b", "assigned_to": "u1", "due_date": START_MS + 3 * DAY_MS}
        )
        tasks.set_status(ADMIN, {"id": "TK0002", "status": "Completed"})

        self.services.issues.create(
            OPERATOR,
            {"equipment_type": "battery", "equipment_id": "BT1", "description": "Leak"},
        )
        self.services.invoices.create(ADMIN, {"id": "INV-1"})
        self.services.invoices.create(ADMIN, {"id": "INV-2"})
        self.services.invoices.mark_paid(ADMIN, {"id": "INV-2"})

    def test_daily_report(self):
        self.seed()
        key, stats = self.reports.generate("daily")
        self.assertEqual(key, "2023-11-14")
        self.assertEqual(stats["tasksDueToday"], 1)
        self.assertEqual(stats["newIssues"], 1)
        self.assertEqual(self.store.get(f"reports/daily/{key}"), stats)

    def test_monthly_report(self):
        self.seed()
        key, stats = self.reports.generate("monthly")
        self.assertEqual(key, "2023-11")
        self.assertEqual(
            {k: v for k, v in stats.items() if k != "generatedAt"},
            {
                "totalGenerators": 2,
                "activeGenerators": 1,
                "tasksCompleted": 1,
                "tasksPending": 1,
                "openIssues": 1,
                "invoicesPaid": 1,
                "invoicesPending": 1,
            },
        )

    def test_empty_store(self):
        _, stats = self.reports.generate("monthly")
        self.assertEqual(stats["totalGenerators"], 0)
        self.assertEqual(stats["openIssues"], 0)

    def test_timezone_decides_the_day(self):
        # 22:13 UTC is already the next day in Colombo (UTC+05:30).
        reports = ReportService(
            self.store, timezone="Asia/Colombo", clock=FakeClock()
        )
        self.assertEqual(reports.generate("daily")[0], "2023-11-15")

    def test_unreadable_collection_counts_as_empty(self):
        store = MagicMock()
        store.get.side_effect = RuntimeError("unavailable")
        reports = ReportService(store, clock=FakeClock())
        with self.assertLogs("backend.reports", level="ERROR"):
            stats = reports.daily_stats(date(2023, 11, 14))
        self.assertEqual(stats["tasksDueToday"], 0)

    def test_generate_report_endpoint(self):
        result = self.reports.generate_report(ADMIN, {"period": "daily"})
        self.assertTrue(result["ok"])
        self.assertEqual(result["period"], "daily")
        self.assertIsNotNone(self.store.get(f"reports/daily/{result['key']}"))

        with self.assertRaises(https_fn.HttpsError) as ctx:
            self.reports.generate_report(OPERATOR, {"period": "daily"})
        self.assertEqual(ctx.exception.code, ErrorCode.PERMISSION_DENIED)

        with self.assertRaises(https_fn.HttpsError) as ctx:
            self.reports.generate_report(ADMIN, {"period": "weekly"})
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_ARGUMENT)

        with self.assertRaises(https_fn.HttpsError) as ctx:
            self.reports.generate_report(ADMIN, {})
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_ARGUMENT)


if __name__ == "__main__":
    unittest.main()

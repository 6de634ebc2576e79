"""
Aggregate fleet reports written under reports/daily/<YYYY-MM-DD> and
reports/monthly/<YYYY-MM>.

Each source collection is read independently and treated as empty when
absent, so a partial snapshot still yields a report.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from backend import auth, errors
from backend.clock import Clock, now_ms
from backend.store import RecordStore, join_path
from backend.validation import choice
from shared.constants import (
    CREATED_AT,
    GENERATORS_COLLECTION,
    INVOICES_COLLECTION,
    ISSUES_COLLECTION,
    REPORTS_COLLECTION,
    TASKS_COLLECTION,
)
from shared.types import (
    CallerIdentity,
    GeneratorStatus,
    InvoiceStatus,
    IssueStatus,
    ReportPeriod,
    Role,
    TaskStatus,
)

logger = logging.getLogger(__name__)


def _count(records: List[dict], field: str, value: str) -> int:
    return sum(1 for record in records if record.get(field) == value)


class ReportService:
    def __init__(
        self, store: RecordStore, *, timezone: str = "UTC", clock: Clock = now_ms
    ):
        self.store = store
        self.tz = ZoneInfo(timezone)
        self.clock = clock

    def _records(self, collection: str) -> List[dict]:
        try:
            node = self.store.get(collection) or {}
        except Exception:
            logger.exception(f"Could not read {collection}; reporting it as empty")
            return []
        if not isinstance(node, dict):
            return []
        return [record for record in node.values() if isinstance(record, dict)]

    def _local_date(self, epoch_ms: Any) -> Optional[date]:
        if not isinstance(epoch_ms, (int, float)) or isinstance(epoch_ms, bool):
            return None
        return datetime.fromtimestamp(epoch_ms / 1000, tz=self.tz).date()

    def daily_stats(self, today: date) -> Dict[str, int]:
        tasks = self._records(TASKS_COLLECTION)
        issues = self._records(ISSUES_COLLECTION)
        return {
            "tasksDueToday": sum(
                1 for t in tasks if self._local_date(t.get("due_date")) == today
            ),
            "newIssues": sum(
                1 for i in issues if self._local_date(i.get(CREATED_AT)) == today
            ),
            "generatedAt": self.clock(),
        }

    def monthly_stats(self) -> Dict[str, int]:
        generators = self._records(GENERATORS_COLLECTION)
        tasks = self._records(TASKS_COLLECTION)
        issues = self._records(ISSUES_COLLECTION)
        invoices = self._records(INVOICES_COLLECTION)
        return {
            "totalGenerators": len(generators),
            "activeGenerators": _count(generators, "status", GeneratorStatus.ACTIVE),
            "tasksCompleted": _count(tasks, "status", TaskStatus.COMPLETED),
            "tasksPending": _count(tasks, "status", TaskStatus.PENDING),
            "openIssues": _count(issues, "status", IssueStatus.OPEN),
            "invoicesPaid": _count(invoices, "status", InvoiceStatus.PAID),
            "invoicesPending": _count(invoices, "status", InvoiceStatus.PENDING),
            "generatedAt": self.clock(),
        }

    def generate(self, period: ReportPeriod | str) -> Tuple[str, Dict[str, int]]:
        """Computes and stores the report for the current period."""
        period = ReportPeriod(period)
        today = self._local_date(self.clock())
        if period == ReportPeriod.DAILY:
            key = today.isoformat()
            stats = self.daily_stats(today)
        else:
            key = f"{today.year}-{today.month:02d}"
            stats = self.monthly_stats()
        self.store.set(join_path(REPORTS_COLLECTION, period.value, key), stats)
        logger.info(f"Wrote {period.value} report {key}")
        return key, stats

    def generate_report(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        auth.require_role(caller, {Role.ADMIN})
        period = choice(ReportPeriod)("period", (payload or {}).get("period"))
        if period is None:
            raise errors.invalid_argument("period is required.")
        with errors.store_errors("generate report"):
            key, stats = self.generate(period)
        return {"ok": True, "period": period, "key": key, "stats": stats}

"""
Service logs recorded by technicians against an existing generator.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from backend import auth, errors
from backend.pipeline import CounterIds, EntitySpec, RecordService
from backend.store import join_path
from backend.validation import FieldRule, epoch_ms, identifier, text
from shared.constants import (
    GENERATORS_COLLECTION,
    SERVICE_LOG_ID_PREFIX,
    SERVICE_LOGS_COLLECTION,
)
from shared.types import CallerIdentity, Role

TECHNICIAN_ROLES = frozenset({Role.ADMIN.value, Role.TECHNICIAN.value})

SERVICE_LOG_FIELDS = {
    "generator_id": FieldRule(identifier(), required=True),
    "technician_id": FieldRule(identifier()),
    "service_type": FieldRule(text(), required=True),
    "service_date": FieldRule(epoch_ms()),
    "next_due_date": FieldRule(epoch_ms()),
    "notes": FieldRule(text(), default=""),
}

SERVICE_LOG_SPEC = EntitySpec(
    kind="Service log",
    collection=SERVICE_LOGS_COLLECTION,
    fields=SERVICE_LOG_FIELDS,
    id_strategy=CounterIds(SERVICE_LOG_ID_PREFIX),
    create_roles=TECHNICIAN_ROLES,
    update_roles=TECHNICIAN_ROLES,
    delete_roles=frozenset({Role.ADMIN.value}),
    read_roles=TECHNICIAN_ROLES,
    list_filters=("generator_id", "technician_id"),
)


def is_overdue(next_due_date: Optional[int], now: int) -> bool:
    return next_due_date is not None and next_due_date < now


class ServiceLogService(RecordService):
    def __init__(self, store, **kwargs):
        super().__init__(SERVICE_LOG_SPEC, store, **kwargs)

    def validate(
        self,
        record: Dict[str, Any],
        *,
        caller: CallerIdentity,
        existing: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.check_reference(
            record, existing, "generator_id", GENERATORS_COLLECTION, "Generator"
        )

    def prepare_create(
        self, record: Dict[str, Any], caller: CallerIdentity
    ) -> Dict[str, Any]:
        now = self.clock()
        record["technician_id"] = record.get("technician_id") or caller.uid
        if record.get("service_date") is None:
            record["service_date"] = now
        record["overdue"] = is_overdue(record.get("next_due_date"), now)
        return record

    def prepare_update(
        self,
        patch: Dict[str, Any],
        existing: Dict[str, Any],
        caller: CallerIdentity,
    ) -> Dict[str, Any]:
        if "next_due_date" in patch:
            patch["overdue"] = is_overdue(patch["next_due_date"], self.clock())
        return patch

    def after_create(
        self, record_id: str, record: Dict[str, Any], caller: CallerIdentity
    ) -> None:
        self.store.set(
            join_path(GENERATORS_COLLECTION, record["generator_id"], "last_service_date"),
            record["service_date"],
        )

    def result_fields(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return {"overdue": record["overdue"]}

    def mark_overdue(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        auth.require_role(caller, TECHNICIAN_ROLES)
        with errors.store_errors("mark overdue services"):
            updated = self.mark_overdue_now()
        return {"ok": True, "updated": updated}

    def mark_overdue_now(self) -> int:
        """Flags every log whose next_due_date has passed; returns the count."""
        now = self.clock()
        logs = self.store.get(self.spec.collection) or {}
        updates = {
            f"{log_id}/overdue": True
            for log_id, log in logs.items()
            if isinstance(log, dict)
            and not log.get("overdue")
            and is_overdue(log.get("next_due_date"), now)
        }
        if updates:
            self.store.update(self.spec.collection, updates)
        return len(updates)

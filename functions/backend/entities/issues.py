"""
Equipment issues reported by any signed-in staff member and worked by an
assigned technician.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from backend import auth, errors, validation
from backend.pipeline import CounterIds, EntitySpec, RecordService
from backend.triggers import assignment_fan_out
from backend.validation import FieldRule, choice, identifier, text
from shared.constants import ISSUE_ID_PREFIX, ISSUES_COLLECTION
from shared.types import (
    CallerIdentity,
    EquipmentType,
    IssueSeverity,
    IssueStatus,
    Role,
)

INVENTORY_ROLES = frozenset({Role.ADMIN.value, Role.INVENTORY.value})

ISSUE_FIELDS = {
    "equipment_type": FieldRule(choice(EquipmentType), required=True),
    "equipment_id": FieldRule(identifier(), required=True),
    "description": FieldRule(text(), required=True),
    "severity": FieldRule(
        choice(IssueSeverity), required=True, default=IssueSeverity.MEDIUM.value
    ),
    "status": FieldRule(
        choice(IssueStatus), required=True, default=IssueStatus.OPEN.value
    ),
    "assigned_to": FieldRule(identifier()),
    "gate_pass": FieldRule(text()),
}

ISSUE_SPEC = EntitySpec(
    kind="Issue",
    collection=ISSUES_COLLECTION,
    fields=ISSUE_FIELDS,
    id_strategy=CounterIds(ISSUE_ID_PREFIX),
    # Any signed-in caller may report.
    create_roles=None,
    update_roles=INVENTORY_ROLES,
    delete_roles=INVENTORY_ROLES,
    status_choices=IssueStatus,
    terminal_statuses=frozenset({IssueStatus.CLOSED.value}),
    list_filters=("status", "severity", "assigned_to", "equipment_type"),
)

issue_fan_out = assignment_fan_out("Issue")


class IssueService(RecordService):
    def __init__(self, store, **kwargs):
        super().__init__(ISSUE_SPEC, store, **kwargs)

    def prepare_create(
        self, record: Dict[str, Any], caller: CallerIdentity
    ) -> Dict[str, Any]:
        record["status"] = IssueStatus.OPEN.value
        record["created_by"] = caller.uid
        record["created_by_role"] = caller.role
        return record

    def authorize_status_change(
        self, caller: Optional[CallerIdentity], existing: Dict[str, Any]
    ) -> CallerIdentity:
        caller = auth.require_caller(caller)
        if caller.role in INVENTORY_ROLES:
            return caller
        if existing.get("assigned_to") == caller.uid:
            return caller
        raise errors.permission_denied("Admin/Inventory or the assignee only.")

    def _patch_open_issue(self, record_id: str, patch: Dict[str, Any]) -> None:
        existing = self.fetch_existing(record_id)
        if existing.get("status") in self.spec.terminal_statuses:
            raise errors.failed_precondition(
                f"Issue '{record_id}' is closed and cannot be edited."
            )
        self.store.update(self.path(record_id), patch)

    def assign(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        auth.require_role(caller, INVENTORY_ROLES)
        payload = payload or {}
        record_id = validation.require_id(payload)
        technician_id = validation.require_id(payload, "technician_id")
        with errors.store_errors("assign issue"):
            self._patch_open_issue(record_id, {"assigned_to": technician_id})
        return {"ok": True, "id": record_id, "assigned_to": technician_id}

    def link_gate_pass(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        auth.require_role(caller, INVENTORY_ROLES)
        payload = payload or {}
        record_id = validation.require_id(payload)
        gate_pass_id = validation.require_id(payload, "gate_pass_id")
        with errors.store_errors("link gate pass"):
            self._patch_open_issue(record_id, {"gate_pass": gate_pass_id})
        return {"ok": True, "id": record_id, "gate_pass": gate_pass_id}

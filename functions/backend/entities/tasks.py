"""
Maintenance tasks assigned to a user, optionally about one generator or
one battery.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from backend import auth, errors, validation
from backend.pipeline import CounterIds, EntitySpec, RecordService
from backend.triggers import assignment_fan_out
from backend.validation import (
    FieldRule,
    choice,
    epoch_ms,
    identifier,
    string_list,
    text,
)
from shared.constants import (
    BATTERIES_COLLECTION,
    GENERATORS_COLLECTION,
    TASK_ID_PREFIX,
    TASKS_COLLECTION,
)
from shared.types import CallerIdentity, Role, TaskPriority, TaskStatus

CREATOR_ROLES = frozenset({Role.ADMIN.value, Role.OPERATOR.value})

TASK_FIELDS = {
    "description": FieldRule(text(), required=True),
    "assigned_to": FieldRule(identifier(), required=True),
    "generator_id": FieldRule(identifier()),
    "battery_id": FieldRule(identifier()),
    "due_date": FieldRule(epoch_ms()),
    "priority": FieldRule(
        choice(TaskPriority), required=True, default=TaskPriority.MEDIUM.value
    ),
    "status": FieldRule(
        choice(TaskStatus), required=True, default=TaskStatus.PENDING.value
    ),
    "related_parts": FieldRule(string_list(), default=list),
}

TASK_SPEC = EntitySpec(
    kind="Task",
    collection=TASKS_COLLECTION,
    fields=TASK_FIELDS,
    id_strategy=CounterIds(TASK_ID_PREFIX),
    create_roles=CREATOR_ROLES,
    update_roles=CREATOR_ROLES,
    delete_roles=CREATOR_ROLES,
    status_choices=TaskStatus,
    terminal_statuses=frozenset(
        {TaskStatus.COMPLETED.value, TaskStatus.CANCELLED.value}
    ),
    list_filters=("assigned_to", "status", "priority", "generator_id"),
)

task_fan_out = assignment_fan_out("Task")


class TaskService(RecordService):
    def __init__(self, store, **kwargs):
        super().__init__(TASK_SPEC, store, **kwargs)

    def validate(
        self,
        record: Dict[str, Any],
        *,
        caller: CallerIdentity,
        existing: Optional[Dict[str, Any]] = None,
    ) -> None:
        validation.mutually_exclusive(record, "generator_id", "battery_id")
        self.check_reference(
            record, existing, "generator_id", GENERATORS_COLLECTION, "Generator"
        )
        self.check_reference(
            record, existing, "battery_id", BATTERIES_COLLECTION, "Battery"
        )

    def prepare_create(
        self, record: Dict[str, Any], caller: CallerIdentity
    ) -> Dict[str, Any]:
        record["status"] = TaskStatus.PENDING.value
        record["created_by"] = caller.uid
        return record

    def authorize_status_change(
        self, caller: Optional[CallerIdentity], existing: Dict[str, Any]
    ) -> CallerIdentity:
        """Admins, or the user the task is assigned to."""
        caller = auth.require_caller(caller)
        if auth.is_admin(caller) or existing.get("assigned_to") == caller.uid:
            return caller
        raise errors.permission_denied("Not your task.")

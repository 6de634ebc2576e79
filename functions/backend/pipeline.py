"""
Generic mutation pipeline shared by every record type.

An `EntitySpec` names the collection, field rules, id strategy and the
roles allowed to perform each operation. `RecordService` runs the common
authorize -> validate/normalize -> resolve id -> write flow for it; record
types with extra rules subclass it and override the hooks.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, FrozenSet, Optional, Tuple, Type, Union

from backend import auth, errors, validation
from backend.clock import Clock, now_ms
from backend.store import RecordStore, join_path
from shared.constants import (
    COUNTERS_COLLECTION,
    CREATED_AT,
    DEFAULT_LIST_LIMIT,
    UPDATED_AT,
)
from shared.types import CallerIdentity

logger = logging.getLogger(__name__)

# Upper bound on counter values skipped because the id was already taken.
MAX_ID_ALLOCATION_ATTEMPTS = 10


@dataclass(frozen=True)
class CounterIds:
    """Server-allocated ids: prefix + zero-padded sequence, e.g. GN0001."""

    prefix: str


@dataclass(frozen=True)
class ManualIds:
    """Caller-supplied ids, rejected when a record already holds them."""

    field: str = "id"


IdStrategy = Union[CounterIds, ManualIds]


@dataclass(frozen=True)
class EntitySpec:
    kind: str
    collection: str
    fields: Dict[str, validation.FieldRule]
    id_strategy: IdStrategy
    # None lets any signed-in caller create.
    create_roles: Optional[FrozenSet[str]]
    update_roles: FrozenSet[str]
    delete_roles: FrozenSet[str]
    # None lets any signed-in caller read.
    read_roles: Optional[FrozenSet[str]] = None
    status_roles: Optional[FrozenSet[str]] = None
    status_choices: Optional[Type[StrEnum]] = None
    # Records in these statuses can no longer be edited.
    terminal_statuses: FrozenSet[str] = frozenset()
    list_filters: Tuple[str, ...] = field(default_factory=tuple)


def format_sequential_id(prefix: str, sequence: int, width: int) -> str:
    return f"{prefix}{sequence:0{width}d}"


class RecordService:
    def __init__(
        self,
        spec: EntitySpec,
        store: RecordStore,
        *,
        clock: Clock = now_ms,
        id_width: int = 4,
        list_limit_max: int = 500,
    ):
        self.spec = spec
        self.store = store
        self.clock = clock
        self.id_width = id_width
        self.list_limit_max = list_limit_max

    # Paths and lookups

    def path(self, record_id: str, *children: str) -> str:
        return join_path(self.spec.collection, record_id, *children)

    @property
    def counter_path(self) -> str:
        return join_path(COUNTERS_COLLECTION, self.spec.collection)

    @property
    def id_field(self) -> str:
        if isinstance(self.spec.id_strategy, ManualIds):
            return self.spec.id_strategy.field
        return "id"

    def fetch(self, record_id: str) -> Optional[Dict[str, Any]]:
        return self.store.get(self.path(record_id))

    def fetch_existing(self, record_id: str) -> Dict[str, Any]:
        record = self.fetch(record_id)
        if record is None:
            raise errors.not_found(f"{self.spec.kind} '{record_id}' not found.")
        return record

    def require_reference(
        self, collection: str, record_id: Optional[str], kind: str
    ) -> None:
        """Weak references are not enforced by the store; check them here."""
        if record_id is None:
            return
        if self.store.get(join_path(collection, record_id)) is None:
            raise errors.not_found(f"{kind} '{record_id}' not found.")

    def check_reference(
        self,
        record: Dict[str, Any],
        existing: Optional[Dict[str, Any]],
        field_name: str,
        collection: str,
        kind: str,
    ) -> None:
        """Checks `field_name` only when it is new or was changed."""
        value = record.get(field_name)
        if existing is not None and existing.get(field_name) == value:
            return
        self.require_reference(collection, value, kind)

    # Hooks

    def validate(
        self,
        record: Dict[str, Any],
        *,
        caller: CallerIdentity,
        existing: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Cross-field and referential checks; `record` is the merged result."""

    def prepare_create(
        self, record: Dict[str, Any], caller: CallerIdentity
    ) -> Dict[str, Any]:
        return record

    def prepare_update(
        self,
        patch: Dict[str, Any],
        existing: Dict[str, Any],
        caller: CallerIdentity,
    ) -> Dict[str, Any]:
        return patch

    def after_create(
        self, record_id: str, record: Dict[str, Any], caller: CallerIdentity
    ) -> None:
        pass

    def after_update(
        self,
        record_id: str,
        patch: Dict[str, Any],
        existing: Dict[str, Any],
        caller: CallerIdentity,
    ) -> None:
        pass

    def after_delete(
        self, record_id: str, existing: Dict[str, Any], caller: CallerIdentity
    ) -> None:
        pass

    def result_fields(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Derived fields echoed back to the caller after a create."""
        return {}

    def sort_key(self, record: Dict[str, Any]):
        """Listing order, applied descending."""
        return (
            record.get(UPDATED_AT) or record.get(CREATED_AT) or 0,
            str(record.get(self.id_field, "")),
        )

    def authorize_status_change(
        self, caller: Optional[CallerIdentity], existing: Dict[str, Any]
    ) -> CallerIdentity:
        return auth.require_role(
            caller, self.spec.status_roles or self.spec.update_roles
        )

    # Operations

    def allocate_id(self, payload: Dict[str, Any]) -> str:
        strategy = self.spec.id_strategy
        if isinstance(strategy, ManualIds):
            record_id = validation.require_id(payload, strategy.field)
            if self.fetch(record_id) is not None:
                raise errors.already_exists(
                    f"{self.spec.kind} '{record_id}' already exists."
                )
            return record_id

        for _ in range(MAX_ID_ALLOCATION_ATTEMPTS):
            sequence = self.store.allocate_counter(self.counter_path)
            record_id = format_sequential_id(strategy.prefix, sequence, self.id_width)
            if self.fetch(record_id) is None:
                return record_id
            logger.warning(f"Skipping taken id {self.spec.collection}/{record_id}")
        raise errors.internal(f"Could not allocate a {self.spec.kind} id.")

    def create(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        if self.spec.create_roles is None:
            caller = auth.require_caller(caller)
        else:
            caller = auth.require_role(caller, self.spec.create_roles)
        payload = payload or {}
        record = validation.normalize(payload, self.spec.fields)

        with errors.store_errors(f"create {self.spec.kind}"):
            record = self.prepare_create(record, caller)
            self.validate(record, caller=caller)
            record_id = self.allocate_id(payload)
            now = self.clock()
            record = validation.strip_none(record)
            record[self.id_field] = record_id
            # Provisional; the change trigger owns these fields.
            record[CREATED_AT] = now
            record[UPDATED_AT] = now
            self.store.set(self.path(record_id), record)
            self.after_create(record_id, record, caller)

        logger.info(f"Created {self.spec.collection}/{record_id}")
        return {"ok": True, "id": record_id, **self.result_fields(record)}

    def update(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        caller = auth.require_role(caller, self.spec.update_roles)
        payload = payload or {}
        record_id = validation.require_id(payload, self.id_field)
        patch = validation.strip_reserved(payload, {"id", self.id_field})
        patch = validation.normalize(patch, self.spec.fields, partial=True)

        with errors.store_errors(f"update {self.spec.kind}"):
            existing = self.fetch_existing(record_id)
            status = existing.get("status")
            if status in self.spec.terminal_statuses:
                raise errors.failed_precondition(
                    f"{self.spec.kind} '{record_id}' is {status} and cannot be edited."
                )
            patch = self.prepare_update(patch, existing, caller)
            if not patch:
                raise errors.invalid_argument("No updatable fields supplied.")
            merged = validation.strip_none({**existing, **patch})
            self.validate(merged, caller=caller, existing=existing)
            self.store.update(self.path(record_id), patch)
            self.after_update(record_id, patch, existing, caller)

        return {"ok": True, "id": record_id}

    def set_status(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        if self.spec.status_choices is None:
            raise errors.failed_precondition(f"{self.spec.kind} has no status.")
        payload = payload or {}
        # Authenticate before touching the store.
        auth.require_caller(caller)
        record_id = validation.require_id(payload, self.id_field)
        status = validation.choice(self.spec.status_choices)(
            "status", payload.get("status")
        )
        if status is None:
            raise errors.invalid_argument("status is required.")

        with errors.store_errors(f"set {self.spec.kind} status"):
            existing = self.fetch_existing(record_id)
            self.authorize_status_change(caller, existing)
            self.store.update(self.path(record_id), {"status": status})

        return {"ok": True, "id": record_id, "status": status}

    def delete(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        caller = auth.require_role(caller, self.spec.delete_roles)
        record_id = validation.require_id(payload or {}, self.id_field)
        with errors.store_errors(f"delete {self.spec.kind}"):
            existing = self.fetch_existing(record_id)
            self.store.remove(self.path(record_id))
            self.after_delete(record_id, existing, caller)
        logger.info(f"Deleted {self.spec.collection}/{record_id}")
        return {"ok": True, "id": record_id}

    def _authorize_read(self, caller: Optional[CallerIdentity]) -> CallerIdentity:
        if self.spec.read_roles is None:
            return auth.require_caller(caller)
        return auth.require_role(caller, self.spec.read_roles)

    def get(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        self._authorize_read(caller)
        record_id = validation.require_id(payload or {}, self.id_field)
        with errors.store_errors(f"get {self.spec.kind}"):
            record = self.fetch_existing(record_id)
        return {"ok": True, "item": record}

    def list(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        """
        Lists records in descending `sort_key` order.

        The first supplied filter is answered by an equality query on the
        store; any further filters are applied to its result.
        """
        self._authorize_read(caller)
        payload = payload or {}
        filters = {}
        for name in self.spec.list_filters:
            if payload.get(name) is not None:
                filters[name] = self.spec.fields[name].coerce(name, payload[name])
        limit = validation.number(minimum=1)("limit", payload.get("limit"))
        limit = min(int(limit or DEFAULT_LIST_LIMIT), self.list_limit_max)

        with errors.store_errors(f"list {self.spec.kind}"):
            if filters:
                first = next(iter(filters))
                records = self.store.query(
                    self.spec.collection, first, filters[first]
                )
            else:
                records = self.store.get(self.spec.collection) or {}

        items = [
            record
            for record in records.values()
            if isinstance(record, dict)
            and all(record.get(name) == value for name, value in filters.items())
        ]
        items.sort(key=self.sort_key, reverse=True)
        return {"ok": True, "items": items[:limit]}

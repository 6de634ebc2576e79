"""
Generators: admin-managed, sequential ids (GN0001).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from backend.pipeline import CounterIds, EntitySpec, RecordService
from backend.validation import (
    FieldRule,
    boolean,
    choice,
    epoch_ms,
    identifier,
    number,
    text,
)
from shared.constants import (
    GENERATOR_ID_PREFIX,
    GENERATORS_COLLECTION,
    SHOPS_COLLECTION,
)
from shared.types import CallerIdentity, GeneratorLocation, GeneratorStatus, Role

ADMIN_ONLY = frozenset({Role.ADMIN.value})

GENERATOR_FIELDS = {
    "serial_no": FieldRule(text(), required=True),
    "brand": FieldRule(text()),
    "model": FieldRule(text()),
    "size_kw": FieldRule(number(minimum=0)),
    "shop_id": FieldRule(identifier()),
    "status": FieldRule(
        choice(GeneratorStatus), required=True, default=GeneratorStatus.ACTIVE.value
    ),
    "location": FieldRule(choice(GeneratorLocation), required=True),
    "battery_id": FieldRule(identifier()),
    "has_battery_charger": FieldRule(boolean()),
    "has_auto_start": FieldRule(boolean()),
    "issued_date": FieldRule(epoch_ms()),
    "installed_date": FieldRule(epoch_ms()),
    "warranty_expiry_date": FieldRule(epoch_ms()),
}

GENERATOR_SPEC = EntitySpec(
    kind="Generator",
    collection=GENERATORS_COLLECTION,
    fields=GENERATOR_FIELDS,
    id_strategy=CounterIds(GENERATOR_ID_PREFIX),
    create_roles=ADMIN_ONLY,
    update_roles=ADMIN_ONLY,
    delete_roles=ADMIN_ONLY,
    status_choices=GeneratorStatus,
    list_filters=("status", "location", "shop_id"),
)


class GeneratorService(RecordService):
    def __init__(self, store, **kwargs):
        super().__init__(GENERATOR_SPEC, store, **kwargs)

    def validate(
        self,
        record: Dict[str, Any],
        *,
        caller: CallerIdentity,
        existing: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.check_reference(record, existing, "shop_id", SHOPS_COLLECTION, "Shop")

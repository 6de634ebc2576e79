"""
Batteries and their link to a generator's battery slot.

A link is two independent writes (battery.generator_id and
generator.battery_id) with no atomicity between them.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from backend import auth, errors, validation
from backend.pipeline import CounterIds, EntitySpec, RecordService
from backend.store import join_path
from backend.validation import FieldRule, choice, epoch_ms, identifier, text
from shared.constants import (
    BATTERIES_COLLECTION,
    BATTERY_ID_PREFIX,
    GENERATORS_COLLECTION,
)
from shared.types import BatteryType, CallerIdentity, Role

logger = logging.getLogger(__name__)

INVENTORY_ROLES = frozenset({Role.ADMIN.value, Role.INVENTORY.value})

BATTERY_FIELDS = {
    "type": FieldRule(choice(BatteryType), required=True),
    "serial_no": FieldRule(text(), required=True),
    "size": FieldRule(text()),
    "install_date": FieldRule(epoch_ms()),
    "generator_id": FieldRule(identifier()),
    "gate_pass": FieldRule(text()),
}

BATTERY_SPEC = EntitySpec(
    kind="Battery",
    collection=BATTERIES_COLLECTION,
    fields=BATTERY_FIELDS,
    id_strategy=CounterIds(BATTERY_ID_PREFIX),
    create_roles=INVENTORY_ROLES,
    update_roles=INVENTORY_ROLES,
    delete_roles=INVENTORY_ROLES,
    read_roles=INVENTORY_ROLES,
    list_filters=("type", "generator_id"),
)


class BatteryService(RecordService):
    def __init__(self, store, **kwargs):
        super().__init__(BATTERY_SPEC, store, **kwargs)

    def _generator_path(self, generator_id: str, *children: str) -> str:
        return join_path(GENERATORS_COLLECTION, generator_id, *children)

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

    def after_create(
        self, record_id: str, record: Dict[str, Any], caller: CallerIdentity
    ) -> None:
        generator_id = record.get("generator_id")
        if generator_id:
            self._fill_slot(generator_id, record_id)

    def after_update(
        self,
        record_id: str,
        patch: Dict[str, Any],
        existing: Dict[str, Any],
        caller: CallerIdentity,
    ) -> None:
        if "generator_id" not in patch:
            return
        previous_generator = existing.get("generator_id")
        generator_id = patch["generator_id"]
        if previous_generator == generator_id:
            return
        if previous_generator:
            self._release_slot(previous_generator, record_id)
        if generator_id:
            self._fill_slot(generator_id, record_id)

    def after_delete(
        self, record_id: str, existing: Dict[str, Any], caller: CallerIdentity
    ) -> None:
        generator_id = existing.get("generator_id")
        if generator_id:
            self._release_slot(generator_id, record_id)

    def assign(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        """Links a battery into a generator's battery slot."""
        auth.require_role(caller, INVENTORY_ROLES)
        payload = payload or {}
        battery_id = validation.require_id(payload, "battery_id")
        generator_id = validation.require_id(payload, "generator_id")

        with errors.store_errors("assign battery"):
            battery = self.fetch_existing(battery_id)
            self.require_reference(GENERATORS_COLLECTION, generator_id, "Generator")

            previous_generator = battery.get("generator_id")
            if previous_generator and previous_generator != generator_id:
                self._release_slot(previous_generator, battery_id)

            self.store.update(self.path(battery_id), {"generator_id": generator_id})
            self._fill_slot(generator_id, battery_id)

        return {"ok": True, "battery_id": battery_id, "generator_id": generator_id}

    def replace(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        """Unlinks the old battery from a generator and links the new one."""
        auth.require_role(caller, INVENTORY_ROLES)
        payload = payload or {}
        old_battery_id = validation.require_id(payload, "old_battery_id")
        new_battery_id = validation.require_id(payload, "new_battery_id")
        generator_id = validation.require_id(payload, "generator_id")
        if old_battery_id == new_battery_id:
            raise errors.invalid_argument(
                "old_battery_id and new_battery_id must differ."
            )

        with errors.store_errors("replace battery"):
            self.fetch_existing(old_battery_id)
            new_battery = self.fetch_existing(new_battery_id)
            self.require_reference(GENERATORS_COLLECTION, generator_id, "Generator")

            previous_generator = new_battery.get("generator_id")
            if previous_generator and previous_generator != generator_id:
                self._release_slot(previous_generator, new_battery_id)

            self.store.update(self.path(old_battery_id), {"generator_id": None})
            self.store.update(self.path(new_battery_id), {"generator_id": generator_id})
            self._fill_slot(generator_id, new_battery_id)

        return {
            "ok": True,
            "generator_id": generator_id,
            "battery_id": new_battery_id,
        }

    def _fill_slot(self, generator_id: str, battery_id: str) -> None:
        self.store.set(self._generator_path(generator_id, "battery_id"), battery_id)

    def _release_slot(self, generator_id: str, battery_id: str) -> None:
        slot = self._generator_path(generator_id, "battery_id")
        if self.store.get(slot) == battery_id:
            self.store.remove(slot)
            logger.info(f"Released battery {battery_id} from generator {generator_id}")

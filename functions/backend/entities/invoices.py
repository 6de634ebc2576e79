"""
Invoices: admin-only, identified by a caller-supplied invoice number.

The amount is computed from the line items unless an explicit amount is
given. Paid invoices can no longer be edited.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from dacite import Config, from_dict

from backend import auth, errors, validation
from backend.pipeline import EntitySpec, ManualIds, RecordService
from backend.validation import FieldRule, choice, epoch_ms, number, text
from shared.constants import INVOICES_COLLECTION
from shared.types import CallerIdentity, InvoiceStatus, LineItem, Role

logger = logging.getLogger(__name__)

ADMIN_ONLY = frozenset({Role.ADMIN.value})
MAX_LINE_ITEMS = 200


def _coerce_line_items(name: str, value: Any) -> Optional[List[dict]]:
    if value is None:
        return None
    if not isinstance(value, list) or len(value) > MAX_LINE_ITEMS:
        raise errors.invalid_argument(f"{name} must be a list of line items.")
    items = []
    for raw in value:
        if not isinstance(raw, dict):
            raise errors.invalid_argument(f"{name} entries must be objects.")
        item = from_dict(
            data_class=LineItem,
            data={
                "description": text()("description", raw.get("description")),
                "qty": number(minimum=0)("qty", raw.get("qty")),
                "unit_price": number()("unit_price", raw.get("unit_price")),
                "amount": number()("amount", raw.get("amount")),
            },
            config=Config(check_types=False),
        )
        items.append(validation.strip_none(asdict(item)))
    return items


def compute_total(items: List[dict]) -> float:
    """Sums line amounts (or qty * unit_price), rounded to cents, never negative."""
    total = 0.0
    for item in items or []:
        if item.get("amount") is not None:
            total += item["amount"]
        elif item.get("qty") is not None and item.get("unit_price") is not None:
            total += item["qty"] * item["unit_price"]
    return max(0.0, round(total, 2))


INVOICE_FIELDS = {
    "date": FieldRule(epoch_ms()),
    "line_items": FieldRule(_coerce_line_items, default=list),
    "amount": FieldRule(number(minimum=0)),
    "status": FieldRule(
        choice(InvoiceStatus), required=True, default=InvoiceStatus.PENDING.value
    ),
    "due_date": FieldRule(epoch_ms()),
    "description": FieldRule(text(), default=""),
    "company_name": FieldRule(text(), default=""),
}

INVOICE_SPEC = EntitySpec(
    kind="Invoice",
    collection=INVOICES_COLLECTION,
    fields=INVOICE_FIELDS,
    id_strategy=ManualIds("id"),
    create_roles=ADMIN_ONLY,
    update_roles=ADMIN_ONLY,
    delete_roles=ADMIN_ONLY,
    read_roles=ADMIN_ONLY,
    status_choices=InvoiceStatus,
    terminal_statuses=frozenset({InvoiceStatus.PAID.value}),
    list_filters=("status",),
)


class InvoiceService(RecordService):
    def __init__(self, store, **kwargs):
        super().__init__(INVOICE_SPEC, store, **kwargs)

    def prepare_create(
        self, record: Dict[str, Any], caller: CallerIdentity
    ) -> Dict[str, Any]:
        record["status"] = InvoiceStatus.PENDING.value
        if record.get("date") is None:
            record["date"] = self.clock()
        if record.get("amount") is None:
            record["amount"] = compute_total(record.get("line_items"))
        return record

    def prepare_update(
        self,
        patch: Dict[str, Any],
        existing: Dict[str, Any],
        caller: CallerIdentity,
    ) -> Dict[str, Any]:
        if patch.get("line_items") is not None and patch.get("amount") is None:
            patch["amount"] = compute_total(patch["line_items"])
        return patch

    def result_fields(self, record: Dict[str, Any]) -> Dict[str, Any]:
        return {"amount": record["amount"]}

    def mark_paid(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        return self.set_status(
            caller, {**(payload or {}), "status": InvoiceStatus.PAID.value}
        )

    def sort_key(self, record: Dict[str, Any]):
        return (record.get("date") or 0, str(record.get("id", "")))

    def mark_overdue_now(self) -> int:
        """Moves Pending invoices past their due date to Overdue."""
        now = self.clock()
        invoices = self.store.get(self.spec.collection) or {}
        updates = {
            f"{invoice_id}/status": InvoiceStatus.OVERDUE.value
            for invoice_id, invoice in invoices.items()
            if isinstance(invoice, dict)
            and invoice.get("status") == InvoiceStatus.PENDING.value
            and isinstance(invoice.get("due_date"), (int, float))
            and invoice["due_date"] < now
        }
        if updates:
            self.store.update(self.spec.collection, updates)
            logger.info(f"Marked {len(updates)} invoices overdue")
        return len(updates)

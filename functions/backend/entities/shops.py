"""
Shops that generators are installed at.
"""

from __future__ import annotations

from backend.pipeline import CounterIds, EntitySpec, RecordService
from backend.validation import FieldRule, text
from shared.constants import SHOP_ID_PREFIX, SHOPS_COLLECTION
from shared.types import Role

ADMIN_ONLY = frozenset({Role.ADMIN.value})

SHOP_FIELDS = {
    "name": FieldRule(text(200), required=True),
    "address": FieldRule(text()),
    "phone": FieldRule(text(50)),
    "contact_name": FieldRule(text(200)),
}

SHOP_SPEC = EntitySpec(
    kind="Shop",
    collection=SHOPS_COLLECTION,
    fields=SHOP_FIELDS,
    id_strategy=CounterIds(SHOP_ID_PREFIX),
    create_roles=ADMIN_ONLY,
    update_roles=ADMIN_ONLY,
    delete_roles=ADMIN_ONLY,
)


class ShopService(RecordService):
    def __init__(self, store, **kwargs):
        super().__init__(SHOP_SPEC, store, **kwargs)

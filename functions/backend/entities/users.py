"""
User profiles keyed by auth uid. Role changes are mirrored onto the
account's custom claims so the role gate sees them on the next call.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from backend import auth, errors, validation
from backend.identity import IdentityAdmin
from backend.pipeline import EntitySpec, ManualIds, RecordService
from backend.validation import FieldRule, choice, text
from shared.constants import USERS_COLLECTION
from shared.types import CallerIdentity, Role, UserStatus

ADMIN_ONLY = frozenset({Role.ADMIN.value})


def _email(name: str, value: Any) -> Optional[str]:
    value = text(320)(name, value)
    if value is not None and "@" not in value:
        raise errors.invalid_argument(f"{name} must be an email address.")
    return value


USER_FIELDS = {
    "email": FieldRule(_email, required=True),
    "name": FieldRule(text(200), required=True),
    "role": FieldRule(choice(Role), required=True),
    "status": FieldRule(
        choice(UserStatus), required=True, default=UserStatus.ACTIVE.value
    ),
}

USER_SPEC = EntitySpec(
    kind="User",
    collection=USERS_COLLECTION,
    fields=USER_FIELDS,
    id_strategy=ManualIds("uid"),
    create_roles=ADMIN_ONLY,
    update_roles=ADMIN_ONLY,
    delete_roles=ADMIN_ONLY,
    read_roles=ADMIN_ONLY,
    status_choices=UserStatus,
    list_filters=("role", "status"),
)


class UserService(RecordService):
    def __init__(self, store, identity: IdentityAdmin, **kwargs):
        super().__init__(USER_SPEC, store, **kwargs)
        self.identity = identity

    def prepare_create(
        self, record: Dict[str, Any], caller: CallerIdentity
    ) -> Dict[str, Any]:
        record["status"] = UserStatus.ACTIVE.value
        return record

    def after_create(
        self, record_id: str, record: Dict[str, Any], caller: CallerIdentity
    ) -> None:
        self.identity.set_role(record_id, record["role"])

    def prepare_update(
        self,
        patch: Dict[str, Any],
        existing: Dict[str, Any],
        caller: CallerIdentity,
    ) -> Dict[str, Any]:
        # Role and status go through set_role/set_status so the auth account follows.
        patch.pop("role", None)
        patch.pop("status", None)
        return patch

    def set_role(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        auth.require_role(caller, ADMIN_ONLY)
        payload = payload or {}
        uid = validation.require_id(payload, "uid")
        role = choice(Role)("role", payload.get("role"))
        if role is None:
            raise errors.invalid_argument("uid + role required.")
        with errors.store_errors("set user role"):
            self.fetch_existing(uid)
            self.store.update(self.path(uid), {"role": role})
            self.identity.set_role(uid, role)
        return {"ok": True, "uid": uid, "role": role}

    def set_status(self, caller: Optional[CallerIdentity], payload: dict) -> dict:
        """Enables or disables the account; takes {uid, disabled}."""
        auth.require_role(caller, ADMIN_ONLY)
        payload = payload or {}
        uid = validation.require_id(payload, "uid")
        disabled = validation.boolean()("disabled", payload.get("disabled"))
        if disabled is None:
            raise errors.invalid_argument("uid + disabled required.")
        status = UserStatus.DISABLED if disabled else UserStatus.ACTIVE
        with errors.store_errors("set user status"):
            self.fetch_existing(uid)
            self.identity.set_disabled(uid, disabled)
            self.store.update(self.path(uid), {"status": status.value})
        return {"ok": True, "uid": uid, "status": status.value}

"""
Identity administration: role claims and account enablement.

Account issuance itself happens outside these functions; this only mirrors
profile changes onto the auth account.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Protocol

from firebase_admin import auth as firebase_auth

from backend import errors
from backend.auth import ROLE_CLAIM


class IdentityAdmin(Protocol):
    def set_role(self, uid: str, role: str) -> None:
        ...

    def set_disabled(self, uid: str, disabled: bool) -> None:
        ...


@dataclass
class InMemoryIdentityAdmin:
    """Test double recording claims and disabled flags per uid."""

    claims: Dict[str, dict] = field(default_factory=dict)
    disabled: Dict[str, bool] = field(default_factory=dict)

    def set_role(self, uid: str, role: str) -> None:
        self.claims[uid] = {ROLE_CLAIM: role}

    def set_disabled(self, uid: str, disabled: bool) -> None:
        self.disabled[uid] = disabled


class FirebaseIdentityAdmin:
    def __init__(self, app=None):
        self.app = app

    def set_role(self, uid: str, role: str) -> None:
        try:
            firebase_auth.set_custom_user_claims(uid, {ROLE_CLAIM: role}, app=self.app)
        except firebase_auth.UserNotFoundError:
            raise errors.not_found(f"Auth account '{uid}' not found.")

    def set_disabled(self, uid: str, disabled: bool) -> None:
        try:
            firebase_auth.update_user(uid, disabled=disabled, app=self.app)
        except firebase_auth.UserNotFoundError:
            raise errors.not_found(f"Auth account '{uid}' not found.")

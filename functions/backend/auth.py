"""
Caller identity and role checks for callable endpoints.

The role is a custom claim issued outside these functions; it is read from
the verified token on every call and never cached.
"""

from __future__ import annotations

from typing import Iterable, Optional

from firebase_functions import https_fn

from backend import errors
from shared.types import CallerIdentity, Role

ROLE_CLAIM = "role"


def caller_from_request(req: https_fn.CallableRequest) -> Optional[CallerIdentity]:
    """Builds the caller identity from the platform's verified auth data."""
    auth = req.auth
    if auth is None or not auth.uid:
        return None
    token = dict(auth.token or {})
    role = token.get(ROLE_CLAIM)
    # Older accounts carry a boolean admin claim instead of a role.
    if role is None and (token.get("admin") is True or token.get("isAdmin") is True):
        role = Role.ADMIN.value
    return CallerIdentity(
        uid=auth.uid, role=role if isinstance(role, str) else None, claims=token
    )


def require_caller(caller: Optional[CallerIdentity]) -> CallerIdentity:
    if caller is None:
        raise errors.unauthenticated()
    return caller


def require_role(
    caller: Optional[CallerIdentity], allowed_roles: Iterable[str]
) -> CallerIdentity:
    caller = require_caller(caller)
    allowed = {str(role) for role in allowed_roles}
    if caller.role not in allowed:
        raise errors.permission_denied(
            f"Permission denied. Allowed roles: {', '.join(sorted(allowed))}."
        )
    return caller


def is_admin(caller: Optional[CallerIdentity]) -> bool:
    return caller is not None and caller.role == Role.ADMIN

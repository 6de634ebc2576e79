import unittest
from unittest.mock import MagicMock

from firebase_functions import https_fn

from backend import auth
from shared.types import CallerIdentity, Role

ErrorCode = https_fn.FunctionsErrorCode


def _request(uid=None, token=None):
    req = MagicMock()
    if uid is None:
        req.auth = None
    else:
        req.auth = MagicMock(uid=uid, token=token or {})
    return req


class CallerFromRequestTests(unittest.TestCase):
    def test_no_auth_gives_no_caller(self):
        self.assertIsNone(auth.caller_from_request(_request()))

    def test_role_claim_is_read(self):
        caller = auth.caller_from_request(_request("u1", {"role": "technician"}))
        self.assertEqual(caller.uid, "u1")
        self.assertEqual(caller.role, Role.TECHNICIAN)

    def test_legacy_admin_flag(self):
        caller = auth.caller_from_request(_request("u1", {"isAdmin": True}))
        self.assertEqual(caller.role, Role.ADMIN)

    def test_missing_or_malformed_role(self):
        self.assertIsNone(auth.caller_from_request(_request("u1", {})).role)
        self.assertIsNone(auth.caller_from_request(_request("u1", {"role": 3})).role)


class RoleGateTests(unittest.TestCase):
    def test_require_caller(self):
        with self.assertRaises(https_fn.HttpsError) as ctx:
            auth.require_caller(None)
        self.assertEqual(ctx.exception.code, ErrorCode.UNAUTHENTICATED)

    def test_unauthenticated_before_permission(self):
        with self.assertRaises(https_fn.HttpsError) as ctx:
            auth.require_role(None, {Role.ADMIN})
        self.assertEqual(ctx.exception.code, ErrorCode.UNAUTHENTICATED)

    def test_operator_is_denied_admin_only(self):
        operator = CallerIdentity(uid="op", role=Role.OPERATOR)
        with self.assertRaises(https_fn.HttpsError) as ctx:
            auth.require_role(operator, {Role.ADMIN})
        self.assertEqual(ctx.exception.code, ErrorCode.PERMISSION_DENIED)

    def test_admin_is_allowed(self):
        admin = CallerIdentity(uid="a", role="admin")
        self.assertIs(auth.require_role(admin, {Role.ADMIN}), admin)
        self.assertTrue(auth.is_admin(admin))

    def test_caller_without_role_is_denied(self):
        with self.assertRaises(https_fn.HttpsError) as ctx:
            auth.require_role(CallerIdentity(uid="u"), {Role.ADMIN, Role.OPERATOR})
        self.assertEqual(ctx.exception.code, ErrorCode.PERMISSION_DENIED)
        self.assertFalse(auth.is_admin(None))


if __name__ == "__main__":
    unittest.main()

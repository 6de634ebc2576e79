import unittest

from firebase_functions import https_fn

from backend import validation
from backend.validation import FieldRule
from shared.types import GeneratorStatus

ErrorCode = https_fn.FunctionsErrorCode


class CoercerTests(unittest.TestCase):
    def assertInvalid(self, coerce, value):
        with self.assertRaises(https_fn.HttpsError) as ctx:
            coerce("field", value)
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_ARGUMENT)

    def test_text(self):
        coerce = validation.text(5)
        self.assertEqual(coerce("f", "  abc "), "abc")
        self.assertIsNone(coerce("f", "   "))
        self.assertEqual(coerce("f", 12), "12")
        self.assertInvalid(coerce, "abcdefg")
        self.assertInvalid(coerce, True)
        self.assertInvalid(coerce, {"a": 1})

    def test_identifier_rejects_key_characters(self):
        coerce = validation.identifier()
        self.assertEqual(coerce("f", "GN0001"), "GN0001")
        for bad in ("a.b", "a/b", "a#b", "a$b", "a[b]"):
            self.assertInvalid(coerce, bad)

    def test_choice(self):
        coerce = validation.choice(GeneratorStatus)
        self.assertEqual(coerce("f", "Repair"), "Repair")
        self.assertIsNone(coerce("f", None))
        self.assertInvalid(coerce, "repair")

    def test_number(self):
        coerce = validation.number(minimum=0)
        self.assertEqual(coerce("f", "12.5"), 12.5)
        self.assertEqual(coerce("f", 3.0), 3)
        self.assertIsNone(coerce("f", ""))
        self.assertInvalid(coerce, -1)
        self.assertInvalid(coerce, "abc")
        self.assertInvalid(coerce, True)
        self.assertInvalid(coerce, float("nan"))

    def test_boolean(self):
        coerce = validation.boolean()
        self.assertTrue(coerce("f", "TRUE"))
        self.assertFalse(coerce("f", "0"))
        self.assertFalse(coerce("f", False))
        self.assertInvalid(coerce, "yes")
        self.assertInvalid(coerce, 1)

    def test_epoch_ms(self):
        coerce = validation.epoch_ms()
        self.assertEqual(coerce("f", 1700000000000), 1700000000000)
        self.assertEqual(coerce("f", "1700000000000"), 1700000000000)
        self.assertIsNone(coerce("f", ""))
        self.assertIsNone(coerce("f", None))
        self.assertInvalid(coerce, "2024-01-01")
        self.assertInvalid(coerce, False)
        self.assertInvalid(coerce, [1])

    def test_string_list(self):
        coerce = validation.string_list()
        self.assertEqual(coerce("f", ["a ", " ", "b"]), ["a", "b"])
        self.assertInvalid(coerce, "a,b")


class NormalizeTests(unittest.TestCase):
    RULES = {
        "name": FieldRule(validation.text(), required=True),
        "status": FieldRule(
            validation.choice(GeneratorStatus), required=True, default="Active"
        ),
        "tags": FieldRule(validation.string_list(), default=list),
        "note": FieldRule(validation.text()),
    }

    def test_defaults_and_unknown_keys(self):
        result = validation.normalize({"name": "x", "extra": 1}, self.RULES)
        self.assertEqual(
            result, {"name": "x", "status": "Active", "tags": [], "note": None}
        )

    def test_defaults_are_not_shared(self):
        first = validation.normalize({"name": "x"}, self.RULES)
        first["tags"].append("t")
        second = validation.normalize({"name": "y"}, self.RULES)
        self.assertEqual(second["tags"], [])

    def test_required_field_missing(self):
        with self.assertRaises(https_fn.HttpsError) as ctx:
            validation.normalize({}, self.RULES)
        self.assertEqual(ctx.exception.code, ErrorCode.INVALID_ARGUMENT)

    def test_partial_only_keeps_present_fields(self):
        self.assertEqual(
            validation.normalize({"note": "n"}, self.RULES, partial=True),
            {"note": "n"},
        )

    def test_partial_cannot_clear_required(self):
        with self.assertRaises(https_fn.HttpsError):
            validation.normalize({"name": None}, self.RULES, partial=True)


class HelperTests(unittest.TestCase):
    def test_strip_reserved(self):
        self.assertEqual(
            validation.strip_reserved(
                {"id": "x", "createdAt": 1, "updatedAt": 2, "a": 1}, {"id"}
            ),
            {"a": 1},
        )

    def test_mutually_exclusive(self):
        validation.mutually_exclusive({"a": 1, "b": None}, "a", "b")
        with self.assertRaises(https_fn.HttpsError):
            validation.mutually_exclusive({"a": 1, "b": 2}, "a", "b")

    def test_require_id(self):
        self.assertEqual(validation.require_id({"id": " GN1 "}), "GN1")
        with self.assertRaises(https_fn.HttpsError):
            validation.require_id({})
        self.assertIsNone(validation.optional_id({}, "target_uid"))


if __name__ == "__main__":
    unittest.main()

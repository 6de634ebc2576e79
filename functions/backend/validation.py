"""
Field coercion and validation shared by the mutation endpoints.

Each record type declares a mapping of field name to `FieldRule`; the
`normalize` function applies it to an incoming payload.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Callable, Dict, Iterable, Optional, Type

from backend import errors
from shared.constants import MAX_ID_LENGTH, MAX_TEXT_LENGTH, METADATA_FIELDS

# Characters the Realtime Database forbids in keys.
_INVALID_KEY_CHARS = re.compile(r"[.#$\[\]/]")
_TRUE_STRINGS = {"true", "1"}
_FALSE_STRINGS = {"false", "0"}

Coercer = Callable[[str, Any], Any]


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


@dataclass(frozen=True)
class FieldRule:
    coerce: Coercer
    required: bool = False
    # Applied on create when the field is absent; callables are invoked.
    default: Any = MISSING


def text(max_length: int = MAX_TEXT_LENGTH) -> Coercer:
    def coerce(name: str, value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise errors.invalid_argument(f"{name} must be a string.")
        value = str(value).strip()
        if len(value) > max_length:
            raise errors.invalid_argument(f"{name} exceeds max length.")
        return value or None

    return coerce


def identifier() -> Coercer:
    """A string usable as a record key or a reference to one."""
    as_text = text(MAX_ID_LENGTH)

    def coerce(name: str, value: Any) -> Optional[str]:
        value = as_text(name, value)
        if value is not None and _INVALID_KEY_CHARS.search(value):
            raise errors.invalid_argument(
                f"{name} must not contain '.', '#', '$', '[', ']' or '/'."
            )
        return value

    return coerce


def choice(enum_type: Type[StrEnum]) -> Coercer:
    allowed = [member.value for member in enum_type]

    def coerce(name: str, value: Any) -> Optional[str]:
        if value is None:
            return None
        if value not in allowed:
            raise errors.invalid_argument(
                f"Invalid {name}. Allowed: {', '.join(allowed)}"
            )
        return str(value)

    return coerce


def _to_number(name: str, value: Any) -> float | int:
    if isinstance(value, bool):
        raise errors.invalid_argument(f"{name} must be a number.")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise errors.invalid_argument(f"{name} must be a number.")
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        raise errors.invalid_argument(f"{name} must be a number.")
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def number(minimum: Optional[float] = None) -> Coercer:
    def coerce(name: str, value: Any) -> Optional[float | int]:
        if value is None or value == "":
            return None
        value = _to_number(name, value)
        if minimum is not None and value < minimum:
            raise errors.invalid_argument(f"{name} must be at least {minimum}.")
        return value

    return coerce


def boolean() -> Coercer:
    def coerce(name: str, value: Any) -> Optional[bool]:
        if value is None:
            return None
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.lower() in _TRUE_STRINGS:
            return True
        if isinstance(value, str) and value.lower() in _FALSE_STRINGS:
            return False
        raise errors.invalid_argument(f"{name} must be true/false.")

    return coerce


def epoch_ms() -> Coercer:
    """Dates travel as epoch milliseconds; empty values clear the date."""

    def coerce(name: str, value: Any) -> Optional[int]:
        if value is None or value == "":
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise errors.invalid_argument(
                f"{name} must be ms epoch number (or null)."
            )
        return int(_to_number(name, value))

    return coerce


def string_list() -> Coercer:
    as_text = text()

    def coerce(name: str, value: Any) -> Optional[list]:
        if value is None:
            return None
        if not isinstance(value, (list, tuple)):
            raise errors.invalid_argument(f"{name} must be a list of strings.")
        items = [as_text(name, item) for item in value]
        return [item for item in items if item is not None]

    return coerce


def normalize(
    payload: Dict[str, Any], rules: Dict[str, FieldRule], *, partial: bool = False
) -> Dict[str, Any]:
    """
    Coerces the fields of `payload` named in `rules`; other keys are dropped.

    Absent or null fields take the rule's default, if it has one.
    With partial=True only the fields present in the payload are returned,
    for use as an update patch. A None value in a patch clears the field.
    """
    normalized = {}
    for name, rule in rules.items():
        if name in payload:
            value = rule.coerce(name, payload[name])
        elif partial:
            continue
        else:
            value = None
        if value is None and not partial and rule.default is not MISSING:
            value = rule.default() if callable(rule.default) else rule.default
        if value is None and rule.required:
            raise errors.invalid_argument(f"{name} is required.")
        normalized[name] = value
    return normalized


def strip_none(record: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in record.items() if value is not None}


def strip_reserved(payload: Dict[str, Any], id_fields: Iterable[str]) -> Dict[str, Any]:
    """Removes immutable identity and trigger-owned metadata from a patch."""
    reserved = set(METADATA_FIELDS) | set(id_fields)
    return {key: value for key, value in payload.items() if key not in reserved}


def mutually_exclusive(record: Dict[str, Any], *fields: str) -> None:
    supplied = [name for name in fields if record.get(name) is not None]
    if len(supplied) > 1:
        raise errors.invalid_argument(
            f"Only one of {', '.join(fields)} may be set."
        )


def require_id(payload: Dict[str, Any], name: str = "id") -> str:
    value = identifier()(name, payload.get(name))
    if value is None:
        raise errors.invalid_argument(f"{name} is required.")
    return value


def optional_id(payload: Dict[str, Any], name: str) -> Optional[str]:
    return identifier()(name, payload.get(name))

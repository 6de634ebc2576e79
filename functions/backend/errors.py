"""
Typed failures surfaced to callable clients.

Every failure is an `https_fn.HttpsError`; the callable runtime turns the
code into the HTTP status and the `{"error": {...}}` response body.
"""

from __future__ import annotations

import contextlib
import logging
from typing import Iterator

from firebase_admin import exceptions as firebase_exceptions
from firebase_functions import https_fn

logger = logging.getLogger(__name__)

ErrorCode = https_fn.FunctionsErrorCode


def unauthenticated(message: str = "Sign in required.") -> https_fn.HttpsError:
    return https_fn.HttpsError(ErrorCode.UNAUTHENTICATED, message)


def permission_denied(message: str) -> https_fn.HttpsError:
    return https_fn.HttpsError(ErrorCode.PERMISSION_DENIED, message)


def invalid_argument(message: str) -> https_fn.HttpsError:
    return https_fn.HttpsError(ErrorCode.INVALID_ARGUMENT, message)


def not_found(message: str) -> https_fn.HttpsError:
    return https_fn.HttpsError(ErrorCode.NOT_FOUND, message)


def already_exists(message: str) -> https_fn.HttpsError:
    return https_fn.HttpsError(ErrorCode.ALREADY_EXISTS, message)


def failed_precondition(message: str) -> https_fn.HttpsError:
    return https_fn.HttpsError(ErrorCode.FAILED_PRECONDITION, message)


def internal(message: str) -> https_fn.HttpsError:
    return https_fn.HttpsError(ErrorCode.INTERNAL, message)


@contextlib.contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Converts store/network failures into INTERNAL for the caller."""
    try:
        yield
    except firebase_exceptions.FirebaseError as e:
        logger.error(f"Store failure during {operation}: {e}")
        raise internal(f"Store failure during {operation}.") from e

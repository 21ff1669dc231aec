"""
Error taxonomy and the store-error normalizer.

Every failure that reaches a caller is a ``FleetError`` subclass carrying an
HTTP-style status and a stable code. Store exceptions are translated by
``normalize`` so raw driver messages never leave the server.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, NoResultFound

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Internal server error"


class FleetError(Exception):
    """Base class for every error surfaced to API callers."""
    status = 500
    code = "internal_error"
    default_message = GENERIC_ERROR_MESSAGE

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ── 401: identity could not be established ──────────────────────────

class MissingCredential(FleetError):
    status = 401
    code = "missing_credential"
    default_message = "Authorization token not provided"


class InvalidCredential(FleetError):
    status = 401
    code = "invalid_credential"
    default_message = "Invalid or expired token"


class UnknownPrincipal(FleetError):
    status = 401
    code = "unknown_principal"
    default_message = "No profile found for this account"


# ── 403: identity known, action not allowed ─────────────────────────

class InsufficientRole(FleetError):
    status = 403
    code = "insufficient_role"
    default_message = "Insufficient permissions"


class Unaffiliated(FleetError):
    status = 403
    code = "unaffiliated"
    default_message = "User is not linked to a company"


class Forbidden(FleetError):
    status = 403
    code = "forbidden"
    default_message = "Access denied"


# ── 4xx: request or state problems ──────────────────────────────────

class NotFound(FleetError):
    status = 404
    code = "not_found"
    default_message = "Record not found"


class Conflict(FleetError):
    status = 409
    code = "conflict"
    default_message = "Record already exists"


class InvalidReference(FleetError):
    status = 422
    code = "invalid_reference"
    default_message = "Referenced record does not exist"


class ValidationFailed(FleetError):
    status = 400
    code = "validation_failed"
    default_message = "Invalid request"

    def __init__(self, message: Optional[str] = None, missing_fields: Optional[List[str]] = None):
        self.missing_fields = list(missing_fields or [])
        if message is None and self.missing_fields:
            message = f"Missing required fields: {', '.join(self.missing_fields)}"
        super().__init__(message)


class InvalidTransition(FleetError):
    status = 409
    code = "invalid_transition"
    default_message = "Invalid state transition"


class InternalError(FleetError):
    pass


class RecordNotFound(LookupError):
    """Raised by the store layer when a keyed row does not exist."""


# ── Normalizer ───────────────────────────────────────────────────────

_UNIQUE_CODES = {"23505", "1062", "2627", "2601"}
_FOREIGN_KEY_CODES = {"23503", "1451", "1452", "547"}


def _integrity_kind(exc: IntegrityError) -> Optional[str]:
    """Classify an IntegrityError as 'unique', 'foreign_key' or None."""
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code is None and orig is not None and getattr(orig, "args", None):
        first = orig.args[0]
        code = str(first) if isinstance(first, int) else None
    if code in _UNIQUE_CODES:
        return "unique"
    if code in _FOREIGN_KEY_CODES:
        return "foreign_key"

    text = str(orig if orig is not None else exc).lower()
    if "unique" in text or "duplicate" in text:
        return "unique"
    if "foreign key" in text:
        return "foreign_key"
    return None


def normalize(error: BaseException) -> FleetError:
    """Map any exception to the fixed set of caller-facing outcomes."""
    if isinstance(error, FleetError):
        return error

    if isinstance(error, (RecordNotFound, NoResultFound)):
        return NotFound()

    if isinstance(error, IntegrityError):
        kind = _integrity_kind(error)
        if kind == "unique":
            logger.info("Unique constraint violation: %s", error.orig)
            return Conflict()
        if kind == "foreign_key":
            logger.info("Foreign key violation: %s", error.orig)
            return InvalidReference()

    logger.error("Unhandled store error: %r", error, exc_info=error)
    return InternalError()


def to_payload(error: FleetError) -> dict:
    """Render an error as the JSON body returned to callers."""
    payload = {"success": False, "error": error.message, "code": error.code}
    missing = getattr(error, "missing_fields", None)
    if missing:
        payload["missingFields"] = missing
    return payload

"""
Request payload and query-string validation helpers.
"""

import re
from typing import Any, Iterable, List, Mapping, Optional

from fleetguard.config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from fleetguard.errors import ValidationFailed
from fleetguard.models import Page

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Fields a create request must carry, per resource family.
REQUIRED_FIELDS = {
    "companies": ("name", "cnpj"),
    "drivers": ("name", "cpf", "email", "cnh"),
    "vehicles": ("plate", "model", "company_id"),
    "passengers": ("name", "cpf", "email", "company_id"),
    "routes": ("name", "scheduled_start", "company_id"),
    "alerts": ("type", "title", "message"),
}


def missing_fields(data: Mapping[str, Any], fields: Iterable[str]) -> List[str]:
    missing = []
    for name in fields:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(name)
    return missing


def validate_required_fields(data: Mapping[str, Any], fields: Iterable[str]) -> None:
    missing = missing_fields(data, fields)
    if missing:
        raise ValidationFailed(missing_fields=missing)


def validate_choice(data: Mapping[str, Any], field: str, choices: Iterable[str]) -> None:
    """Reject a present value that is not one of ``choices``."""
    value = data.get(field)
    choices = tuple(choices)
    if value is not None and value not in choices:
        raise ValidationFailed(f"Invalid {field} '{value}'. Expected one of: {', '.join(choices)}")


def is_valid_email(email: Optional[str]) -> bool:
    return bool(email) and bool(EMAIL_RE.match(email))


def sanitize_input(value: str) -> str:
    """Trim and drop angle brackets from free text."""
    return re.sub(r"[<>]", "", value.strip())


def _int_param(args: Mapping[str, Any], name: str, default: int) -> int:
    raw = args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationFailed(f"Query parameter '{name}' must be an integer") from None


def parse_pagination(args: Mapping[str, Any]) -> Page:
    """page >= 1, 1 <= limit <= MAX_PAGE_LIMIT, out-of-range values are clamped."""
    page = max(1, _int_param(args, "page", 1))
    limit = min(MAX_PAGE_LIMIT, max(1, _int_param(args, "limit", DEFAULT_PAGE_LIMIT)))
    return Page(page=page, limit=limit)

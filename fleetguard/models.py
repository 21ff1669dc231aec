"""
Domain dataclasses used across the application.
"""

from dataclasses import dataclass, field
from math import ceil
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional

from fleetguard.errors import ValidationFailed


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, loaded fresh for every request."""
    id: str
    email: str
    name: str
    role: str                  # "admin", "operator", "client", "driver" or "passenger"
    company_id: Optional[str]  # scope for company-scoped roles

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "company_id": self.company_id,
        }


# Columns each resource family may be filtered on. Keys outside these sets are
# rejected when a Criteria is built.
FILTER_COLUMNS: Dict[str, FrozenSet[str]] = {
    "companies": frozenset({"id", "status"}),
    "drivers": frozenset({"company_id", "user_id", "status", "cnh_category"}),
    "vehicles": frozenset({"company_id", "driver_id", "status"}),
    "passengers": frozenset({"company_id", "user_id", "status"}),
    "routes": frozenset({"company_id", "driver_id", "vehicle_id", "status"}),
    "alerts": frozenset({
        "company_id", "user_id", "route_id", "vehicle_id", "type", "priority", "is_read",
    }),
}


@dataclass(frozen=True)
class Criteria:
    """
    Filter criteria for one resource family.

    ``scope`` is the mandatory visibility restriction derived from the caller's
    role; ``filters`` are optional narrowing values taken from the query string.
    When both name the same column the scope value wins, so a query parameter
    can never widen what the caller sees.
    """
    family: str
    scope: Mapping[str, Any] = field(default_factory=dict)
    filters: Mapping[str, Any] = field(default_factory=dict)
    search: Optional[str] = None

    def __post_init__(self):
        allowed = FILTER_COLUMNS.get(self.family)
        if allowed is None:
            raise ValidationFailed(f"Unknown resource family '{self.family}'")
        unknown = (set(self.scope) | set(self.filters)) - allowed
        if unknown:
            raise ValidationFailed(
                f"Unsupported filter(s) for {self.family}: {', '.join(sorted(unknown))}"
            )
        object.__setattr__(self, "scope", MappingProxyType(dict(self.scope)))
        object.__setattr__(self, "filters", MappingProxyType(dict(self.filters)))
        if self.search is not None:
            object.__setattr__(self, "search", self.search.strip() or None)

    def as_conditions(self) -> Dict[str, Any]:
        """Equality conditions with the scope applied last."""
        merged = dict(self.filters)
        merged.update(self.scope)
        return merged

    def matches(self, record: Mapping[str, Any], search_columns=()) -> bool:
        """Evaluate the criteria against an already-loaded record."""
        for key, value in self.as_conditions().items():
            if record.get(key) != value:
                return False
        if self.search:
            needle = self.search.lower()
            return any(
                needle in str(record.get(col) or "").lower() for col in search_columns
            )
        return True


@dataclass(frozen=True)
class Page:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def describe(self, total: int) -> Dict[str, int]:
        return {
            "page": self.page,
            "limit": self.limit,
            "total": total,
            "totalPages": ceil(total / self.limit) if total else 0,
        }

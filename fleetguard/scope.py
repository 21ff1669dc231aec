"""
Role-scoped visibility and ownership rules.

One declarative ``ScopeRule`` per resource family decides, for every role,
which records the caller may see and mutate:

- admin sees everything and may narrow with admin-only query keys;
- company-scoped roles (client, operator) see records of their own company;
- owner-scoped roles (driver, passenger) see records that reference them;
- any other role is refused for that family.

The same table drives list filters, the post-read re-check on single records
and the write-path ownership check.
"""

import logging
from dataclasses import dataclass
from typing import Any, FrozenSet, Mapping, Optional, Tuple

from fleetguard.config import COMPANY_SCOPED_ROLES, ELEVATED_ROLE
from fleetguard.errors import Forbidden, InsufficientRole, Unaffiliated
from fleetguard.models import Criteria, Identity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScopeRule:
    family: str
    owner_key: Optional[str] = None             # column holding the owning user id
    owner_roles: FrozenSet[str] = frozenset()
    company_roles: FrozenSet[str] = frozenset()
    company_key: str = "company_id"             # column holding the owning company id
    company_can_list: bool = True
    admin_filters: Tuple[str, ...] = ()         # query keys honoured only for admin
    query_filters: Tuple[str, ...] = ()         # query keys honoured for every permitted role
    search_columns: Tuple[str, ...] = ()


SCOPE_RULES: Mapping[str, ScopeRule] = {
    "alerts": ScopeRule(
        family="alerts",
        owner_key="user_id",
        owner_roles=frozenset({"driver", "passenger"}),
        company_roles=COMPANY_SCOPED_ROLES,
        admin_filters=("company_id", "user_id"),
        query_filters=("type", "priority", "is_read", "route_id", "vehicle_id"),
        search_columns=("title", "message"),
    ),
    "drivers": ScopeRule(
        family="drivers",
        company_roles=COMPANY_SCOPED_ROLES,
        admin_filters=("company_id",),
        query_filters=("status", "cnh_category"),
        search_columns=("name", "cpf", "email", "cnh"),
    ),
    "passengers": ScopeRule(
        family="passengers",
        owner_key="user_id",
        owner_roles=frozenset({"passenger"}),
        company_roles=COMPANY_SCOPED_ROLES,
        admin_filters=("company_id",),
        query_filters=("status",),
        search_columns=("name", "cpf", "email", "address"),
    ),
    "routes": ScopeRule(
        family="routes",
        owner_key="driver_id",
        owner_roles=frozenset({"driver"}),
        company_roles=COMPANY_SCOPED_ROLES,
        admin_filters=("company_id", "driver_id"),
        query_filters=("status", "vehicle_id"),
        search_columns=("name", "origin", "destination"),
    ),
    "vehicles": ScopeRule(
        family="vehicles",
        company_roles=COMPANY_SCOPED_ROLES,
        admin_filters=("company_id", "driver_id"),
        query_filters=("status",),
        search_columns=("plate", "model"),
    ),
    # Company-scoped roles may open their own company record but never list.
    "companies": ScopeRule(
        family="companies",
        company_roles=COMPANY_SCOPED_ROLES,
        company_key="id",
        company_can_list=False,
        query_filters=("status",),
        search_columns=("name", "cnpj", "contact"),
    ),
}

# Query keys whose values are parsed as booleans.
BOOLEAN_FILTERS = frozenset({"is_read"})

_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


def rule_for(family: str) -> ScopeRule:
    try:
        return SCOPE_RULES[family]
    except KeyError:
        raise ValueError(f"Unknown resource family: {family}") from None


def _parse_value(key: str, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    value = value.strip()
    if key in BOOLEAN_FILTERS:
        if value.lower() in _TRUE:
            return True
        if value.lower() in _FALSE:
            return False
    return value


def _require_company(identity: Identity) -> str:
    if not identity.company_id:
        logger.warning("User %s (role=%s) has no company", identity.id, identity.role)
        raise Unaffiliated()
    return identity.company_id


def _refuse(identity: Identity, family: str):
    logger.warning("Role %s refused on %s (user %s)", identity.role, family, identity.id)
    return InsufficientRole(f"Role '{identity.role}' cannot access {family}")


def check_affiliation(identity: Identity, family: str) -> None:
    """Company-scoped callers without a company are refused before any store call."""
    if identity.role in rule_for(family).company_roles:
        _require_company(identity)


def derive_filter(identity: Identity, family: str,
                  params: Optional[Mapping[str, Any]] = None) -> Criteria:
    """Build the scoped Criteria for listing ``family`` as ``identity``."""
    rule = rule_for(family)
    params = params or {}

    if identity.role == ELEVATED_ROLE:
        scope = {}
        allowed_keys = rule.admin_filters + rule.query_filters
    elif identity.role in rule.company_roles and rule.company_can_list:
        scope = {rule.company_key: _require_company(identity)}
        allowed_keys = rule.query_filters
    elif identity.role in rule.owner_roles:
        scope = {rule.owner_key: identity.id}
        allowed_keys = rule.query_filters
    else:
        raise _refuse(identity, family)

    filters = {}
    for key in allowed_keys:
        value = params.get(key)
        if value is None or value == "":
            continue
        filters[key] = _parse_value(key, value)

    return Criteria(family=family, scope=scope, filters=filters, search=params.get("search"))


def check_record(identity: Identity, family: str, record: Mapping[str, Any]) -> None:
    """Re-validate a fetched record against the caller's scope."""
    rule = rule_for(family)

    if identity.role == ELEVATED_ROLE:
        return
    if identity.role in rule.company_roles:
        company_id = _require_company(identity)
        if record.get(rule.company_key) != company_id:
            logger.warning("User %s denied %s/%s (company mismatch)",
                           identity.id, family, record.get("id"))
            raise Forbidden()
        return
    if identity.role in rule.owner_roles:
        if record.get(rule.owner_key) != identity.id:
            logger.warning("User %s denied %s/%s (not owner)",
                           identity.id, family, record.get("id"))
            raise Forbidden()
        return
    raise _refuse(identity, family)


def check_write(identity: Identity, family: str, company_id: Optional[str],
                owner_id: Optional[str] = None) -> None:
    """
    Ownership check before a create, update or delete.

    ``company_id``/``owner_id`` describe the record being written: the payload
    for creates, the stored record (and any new payload value) for updates.
    """
    rule = rule_for(family)

    if identity.role == ELEVATED_ROLE:
        return
    if identity.role in rule.company_roles:
        own = _require_company(identity)
        if company_id != own:
            logger.warning("User %s denied write on %s (company %s != %s)",
                           identity.id, family, company_id, own)
            raise Forbidden("Records of another company cannot be modified")
        return
    if identity.role in rule.owner_roles:
        if owner_id != identity.id:
            logger.warning("User %s denied write on %s (not owner)", identity.id, family)
            raise Forbidden()
        # Owned records may carry no company or the owner's own company.
        if company_id is not None and company_id != identity.company_id:
            logger.warning("User %s denied write on %s (company %s != %s)",
                           identity.id, family, company_id, identity.company_id)
            raise Forbidden("Records of another company cannot be modified")
        return
    raise _refuse(identity, family)


def check_route_operator(identity: Identity, route: Mapping[str, Any]) -> None:
    """Who may start or finish a route."""
    if identity.role == ELEVATED_ROLE:
        return
    if identity.role == "operator":
        if route.get("company_id") != _require_company(identity):
            raise Forbidden()
        return
    if identity.role == "driver":
        if route.get("driver_id") != identity.id:
            raise Forbidden("Only the assigned driver can operate this route")
        return
    raise _refuse(identity, "routes")

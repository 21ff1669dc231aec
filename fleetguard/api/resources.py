"""
CRUD and state-transition endpoints for every resource family.

Each family gets the same five endpoints (list, create, get, update, delete),
all guarded by the authorization gate and the scope rules; the per-family
differences live in ``RESOURCES`` and in the action routes at the bottom.
"""

import logging
from dataclasses import dataclass, field
from typing import Mapping, Tuple

from flask import jsonify, request

from fleetguard.api.auth import current_identity
from fleetguard.api.routes import json_body
from fleetguard.config import (
    ALERT_PRIORITIES,
    ALERT_TYPES,
    COMPANY_STATUSES,
    VEHICLE_STATUSES,
)
from fleetguard.errors import ValidationFailed
from fleetguard.scope import (
    check_affiliation,
    check_record,
    check_route_operator,
    check_write,
    derive_filter,
    rule_for,
)
from fleetguard.validation import (
    REQUIRED_FIELDS,
    parse_pagination,
    validate_choice,
    validate_required_fields,
)

logger = logging.getLogger(__name__)

ANY_ROLE: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ResourceEndpoints:
    family: str
    read_roles: Tuple[str, ...]
    create_roles: Tuple[str, ...]
    update_roles: Tuple[str, ...]
    delete_roles: Tuple[str, ...]
    with_details: bool = False
    choices: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    immutable: Tuple[str, ...] = ()   # fields only changed through action routes


RESOURCES = (
    ResourceEndpoints(
        family="companies",
        read_roles=("admin", "operator", "client"),
        create_roles=("admin",),
        update_roles=("admin",),
        delete_roles=("admin",),
        choices={"status": COMPANY_STATUSES},
    ),
    ResourceEndpoints(
        family="drivers",
        read_roles=("admin", "operator", "client"),
        create_roles=("admin", "operator"),
        update_roles=("admin", "operator"),
        delete_roles=("admin",),
    ),
    ResourceEndpoints(
        family="vehicles",
        read_roles=("admin", "operator", "client"),
        create_roles=("admin", "operator"),
        update_roles=("admin", "operator"),
        delete_roles=("admin", "operator"),
        with_details=True,
        choices={"status": VEHICLE_STATUSES},
    ),
    ResourceEndpoints(
        family="passengers",
        read_roles=("admin", "operator", "client", "passenger"),
        create_roles=("admin", "operator"),
        update_roles=("admin", "operator"),
        delete_roles=("admin", "operator"),
        with_details=True,
    ),
    ResourceEndpoints(
        family="routes",
        read_roles=("admin", "operator", "client", "driver"),
        create_roles=("admin", "operator"),
        update_roles=("admin", "operator"),
        delete_roles=("admin", "operator"),
        with_details=True,
        immutable=("status", "actual_start", "actual_end"),
    ),
    ResourceEndpoints(
        family="alerts",
        read_roles=ANY_ROLE,
        create_roles=ANY_ROLE,
        update_roles=("admin", "operator", "driver", "passenger"),
        delete_roles=("admin", "operator"),
        with_details=True,
        choices={"type": ALERT_TYPES, "priority": ALERT_PRIORITIES},
    ),
)


def _wants_details(endpoints: ResourceEndpoints) -> bool:
    return endpoints.with_details and request.args.get("withDetails", "").lower() == "true"


def _validate_choices(endpoints: ResourceEndpoints, data: dict) -> None:
    for name, allowed in endpoints.choices.items():
        validate_choice(data, name, allowed)


def _prepare_create(identity, family: str, body: dict) -> dict:
    """Fill ownership references the caller is not allowed to choose freely."""
    rule = rule_for(family)
    payload = dict(body)

    if identity.role in rule.owner_roles:
        payload[rule.owner_key] = identity.id
        payload["company_id"] = identity.company_id
    elif identity.role in rule.company_roles and rule.company_key == "company_id":
        if not payload.get("company_id"):
            payload["company_id"] = identity.company_id

    if family == "alerts":
        payload.setdefault("user_id", identity.id)
    return payload


def _register_family(app, services, endpoints: ResourceEndpoints) -> None:
    gate = services.gate
    family = endpoints.family
    store = services.stores()[family]
    rule = rule_for(family)
    collection = f"/api/{family}"
    item = f"/api/{family}/<record_id>"

    def list_records():
        identity = current_identity()
        criteria = derive_filter(identity, family, request.args)
        page = parse_pagination(request.args)

        if _wants_details(endpoints):
            matching = [
                r for r in store.find_all_with_details()
                if criteria.matches(r, rule.search_columns)
            ]
            total = len(matching)
            rows = matching[page.offset:page.offset + page.limit]
        else:
            rows, total = store.find_with_filters(criteria, page.offset, page.limit)

        return jsonify({"success": True, "data": rows, "pagination": page.describe(total)})

    def create_record():
        identity = current_identity()
        check_affiliation(identity, family)
        payload = _prepare_create(identity, family, store.normalize_payload(json_body()))
        validate_required_fields(payload, REQUIRED_FIELDS[family])
        _validate_choices(endpoints, payload)
        for name in endpoints.immutable:
            payload.pop(name, None)

        check_write(identity, family, payload.get(rule.company_key), payload.get(rule.owner_key))
        record = store.create(payload)
        return jsonify({"success": True, "data": record, "message": f"{family} record created"}), 201

    def get_record(record_id):
        identity = current_identity()
        check_affiliation(identity, family)
        if _wants_details(endpoints):
            record = store.find_by_id_with_details(record_id)
        else:
            record = store.find_by_id(record_id)
        check_record(identity, family, record)
        return jsonify({"success": True, "data": record})

    def update_record(record_id):
        identity = current_identity()
        check_affiliation(identity, family)
        body = store.normalize_payload(json_body())

        blocked = [name for name in endpoints.immutable if name in body]
        if blocked:
            raise ValidationFailed(f"Field(s) {', '.join(blocked)} cannot be updated directly")
        _validate_choices(endpoints, body)

        existing = store.find_by_id(record_id)
        check_write(identity, family, existing.get(rule.company_key),
                    existing.get(rule.owner_key) if rule.owner_key else None)
        if rule.company_key in body or (rule.owner_key and rule.owner_key in body):
            check_write(
                identity, family,
                body.get(rule.company_key, existing.get(rule.company_key)),
                body.get(rule.owner_key, existing.get(rule.owner_key)) if rule.owner_key else None,
            )

        record = store.update(record_id, body)
        return jsonify({"success": True, "data": record, "message": f"{family} record updated"})

    def delete_record(record_id):
        identity = current_identity()
        check_affiliation(identity, family)
        existing = store.find_by_id(record_id)
        check_write(identity, family, existing.get(rule.company_key),
                    existing.get(rule.owner_key) if rule.owner_key else None)
        store.delete(record_id)
        return jsonify({"success": True, "message": f"{family} record deleted"})

    app.add_url_rule(collection, f"{family}_list",
                     gate.require(*endpoints.read_roles)(list_records), methods=["GET"])
    app.add_url_rule(collection, f"{family}_create",
                     gate.require(*endpoints.create_roles)(create_record), methods=["POST"])
    app.add_url_rule(item, f"{family}_get",
                     gate.require(*endpoints.read_roles)(get_record), methods=["GET"])
    app.add_url_rule(item, f"{family}_update",
                     gate.require(*endpoints.update_roles)(update_record), methods=["PUT"])
    app.add_url_rule(item, f"{family}_delete",
                     gate.require(*endpoints.delete_roles)(delete_record), methods=["DELETE"])


def register_resource_routes(app, services):
    """Register CRUD routes for every family plus the state-transition actions."""
    for endpoints in RESOURCES:
        _register_family(app, services, endpoints)

    gate = services.gate

    @app.route("/api/companies/<record_id>/toggle-status", methods=["POST"])
    @gate.require("admin")
    def toggle_company_status(record_id):
        company = services.companies.toggle_status(record_id)
        return jsonify({
            "success": True,
            "data": company,
            "message": f"Company {'activated' if company['status'] == 'active' else 'deactivated'}",
        })

    @app.route("/api/alerts/<record_id>/resolve", methods=["POST"])
    @gate.require("admin", "operator")
    def resolve_alert(record_id):
        identity = current_identity()
        check_affiliation(identity, "alerts")
        alert = services.alerts.find_by_id(record_id)
        check_write(identity, "alerts", alert.get("company_id"), alert.get("user_id"))
        alert = services.alerts.mark_as_read(record_id, resolved_by=identity.id)
        return jsonify({"success": True, "data": alert, "message": "Alert marked as read"})

    @app.route("/api/routes/<record_id>/start", methods=["POST"])
    @gate.require("admin", "operator", "driver")
    def start_route(record_id):
        identity = current_identity()
        route = services.routes.find_by_id(record_id)
        check_route_operator(identity, route)
        route = services.routes.start_route(record_id)
        return jsonify({"success": True, "data": route, "message": "Route started"}), 200

    @app.route("/api/routes/<record_id>/finish", methods=["POST"])
    @gate.require("admin", "operator", "driver")
    def finish_route(record_id):
        identity = current_identity()
        body = request.get_json(silent=True) or {}
        rating = body.get("rating")
        if rating is not None:
            try:
                rating = float(rating)
            except (TypeError, ValueError):
                raise ValidationFailed("Rating must be a number") from None

        route = services.routes.find_by_id(record_id)
        check_route_operator(identity, route)
        route = services.routes.finish_route(record_id, notes=body.get("notes"), rating=rating)
        return jsonify({"success": True, "data": route, "message": "Route finished"}), 200

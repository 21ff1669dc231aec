"""
Flask route handlers for health, authentication, profile and stats.
"""

import logging

from flask import jsonify, request
from werkzeug.security import check_password_hash

from fleetguard.analysis import collect_stats
from fleetguard.api.auth import current_identity
from fleetguard.config import MIN_PASSWORD_LENGTH, SELF_REGISTER_ROLES
from fleetguard.database import check_connection
from fleetguard.errors import InvalidCredential, NotFound, ValidationFailed
from fleetguard.validation import is_valid_email, sanitize_input, validate_required_fields

logger = logging.getLogger(__name__)


def json_body() -> dict:
    """The request's JSON object, or ValidationFailed."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return data


def register_routes(app, services):
    """Register health, auth and stats routes on the Flask *app*."""
    gate = services.gate

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Fleet Management API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "auth": "/api/auth/login",
                "companies": "/api/companies",
                "drivers": "/api/drivers",
                "vehicles": "/api/vehicles",
                "passengers": "/api/passengers",
                "routes": "/api/routes",
                "alerts": "/api/alerts",
                "stats": "/api/stats",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    @app.route("/api/health", methods=["GET"])
    def health():
        checks = {"database": False}
        try:
            check_connection(services.engine)
            checks["database"] = True
        except Exception as e:
            logger.error("Health check: database unreachable: %s", e)

        all_healthy = all(checks.values())
        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }), 200 if all_healthy else 503

    # ── Auth ─────────────────────────────────────────────────────────

    @app.route("/api/auth/register", methods=["POST"])
    def register():
        data = json_body()
        validate_required_fields(data, ["name", "email", "password", "confirmPassword", "role"])

        email = str(data["email"]).strip().lower()
        if not is_valid_email(email):
            raise ValidationFailed("Invalid email")
        if data["password"] != data["confirmPassword"]:
            raise ValidationFailed("Passwords do not match")
        if len(data["password"]) < MIN_PASSWORD_LENGTH:
            raise ValidationFailed(f"Password must have at least {MIN_PASSWORD_LENGTH} characters")

        role = str(data["role"]).strip().lower()
        if role not in SELF_REGISTER_ROLES:
            raise ValidationFailed(f"Role '{role}' cannot be self-registered")
        company_id = data.get("company_id")
        if not company_id:
            raise ValidationFailed(missing_fields=["company_id"])

        profile = services.users.create_user(
            name=sanitize_input(str(data["name"])),
            email=email,
            password=data["password"],
            role=role,
            company_id=company_id,
            phone=data.get("phone"),
        )
        return jsonify({
            "success": True,
            "data": {"user": profile},
            "message": "User registered successfully",
        }), 201

    @app.route("/api/auth/register", methods=["GET"])
    def email_available():
        email = (request.args.get("email") or "").strip().lower()
        if not email:
            raise ValidationFailed(missing_fields=["email"])
        if not is_valid_email(email):
            raise ValidationFailed("Invalid email")
        available = services.users.find_by_email(email) is None
        return jsonify({"success": True, "data": {"email": email, "available": available}})

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        data = json_body()
        validate_required_fields(data, ["email", "password"])

        user = services.users.find_by_email(str(data["email"]).strip())
        if (
            not user
            or not user["is_active"]
            or not user["password_hash"]
            or not check_password_hash(user["password_hash"], data["password"])
        ):
            raise InvalidCredential("Invalid email or password")

        services.users.touch_login(user["id"])
        token = services.provider.issue_token(user["id"], user["role"])
        return jsonify({
            "success": True,
            "token": token,
            "user": services.users.find_profile(user["id"]),
            "expires_at": services.provider.expires_at().isoformat(),
        }), 200

    @app.route("/api/auth/logout", methods=["POST"])
    @gate.require()
    def logout():
        # Tokens are stateless; the client discards its copy.
        return jsonify({"success": True, "message": "Logged out successfully"}), 200

    @app.route("/api/auth/profile", methods=["GET"])
    @gate.require()
    def profile():
        identity = current_identity()
        company = None
        if identity.company_id:
            try:
                company = services.companies.find_by_id(identity.company_id)
            except LookupError:
                raise NotFound("Company linked to this user no longer exists") from None
        return jsonify({
            "success": True,
            "data": {
                "user": identity.to_dict(),
                "company": {"id": company["id"], "name": company["name"], "status": company["status"]}
                if company else None,
            },
        }), 200

    # ── Stats ────────────────────────────────────────────────────────

    @app.route("/api/stats", methods=["GET"])
    @gate.require("admin", "operator", "client")
    def stats():
        data = collect_stats(services.stores(), current_identity())
        return jsonify({"success": True, "data": data}), 200

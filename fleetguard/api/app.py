"""
Flask application factory and server entry-point.
"""

import logging
import os
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict

from flask import Flask, jsonify
from flask.json.provider import DefaultJSONProvider
from flask_cors import CORS
from sqlalchemy.exc import SQLAlchemyError

from fleetguard.api.auth import AuthorizationGate
from fleetguard.api.resources import register_resource_routes
from fleetguard.api.routes import register_routes
from fleetguard.config import TOKEN_EXPIRY_HOURS, allowed_origins
from fleetguard.database import init_engine
from fleetguard.errors import FleetError, InternalError, RecordNotFound, normalize, to_payload
from fleetguard.identity import IdentityResolver, JwtAuthProvider
from fleetguard.store import (
    AlertStore,
    CompanyStore,
    DriverStore,
    PassengerStore,
    RouteStore,
    UserStore,
    VehicleStore,
)

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Explicitly constructed collaborators handed to the route registrars."""
    engine: Any
    provider: JwtAuthProvider
    resolver: IdentityResolver
    gate: AuthorizationGate
    users: UserStore
    companies: CompanyStore
    drivers: DriverStore
    vehicles: VehicleStore
    passengers: PassengerStore
    routes: RouteStore
    alerts: AlertStore

    def stores(self) -> Dict[str, Any]:
        """Resource stores keyed by family name."""
        return {
            "companies": self.companies,
            "drivers": self.drivers,
            "vehicles": self.vehicles,
            "passengers": self.passengers,
            "routes": self.routes,
            "alerts": self.alerts,
        }


def build_services(engine, provider: JwtAuthProvider = None) -> Services:
    provider = provider or JwtAuthProvider()
    users = UserStore(engine)
    companies = CompanyStore(engine)
    resolver = IdentityResolver(users, provider)
    return Services(
        engine=engine,
        provider=provider,
        resolver=resolver,
        gate=AuthorizationGate(resolver),
        users=users,
        companies=companies,
        drivers=DriverStore(engine, companies),
        vehicles=VehicleStore(engine),
        passengers=PassengerStore(engine),
        routes=RouteStore(engine),
        alerts=AlertStore(engine),
    )


def _json_default(o):
    if isinstance(o, (datetime, date)):
        return o.isoformat()
    return DefaultJSONProvider.default(o)


class FleetJSONProvider(DefaultJSONProvider):
    default = staticmethod(_json_default)
    sort_keys = False


def register_error_handlers(app: Flask) -> None:

    @app.errorhandler(FleetError)
    def fleet_error(e):
        if e.status >= 500:
            logger.error("Request failed: %s", e.message)
        else:
            logger.info("Request rejected (%s): %s", e.code, e.message)
        return jsonify(to_payload(e)), e.status

    @app.errorhandler(RecordNotFound)
    @app.errorhandler(SQLAlchemyError)
    def store_error(e):
        err = normalize(e)
        return jsonify(to_payload(err)), err.status

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"success": False, "error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"success": False, "error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def internal_error(e):
        original = getattr(e, "original_exception", None) or e
        logger.error("Unhandled error: %r", original, exc_info=original)
        return jsonify(to_payload(InternalError())), 500


def create_app(engine=None, provider: JwtAuthProvider = None) -> Flask:
    """Build and return a fully configured Flask application."""
    app = Flask(__name__)
    app.json = FleetJSONProvider(app)
    CORS(
        app,
        origins=allowed_origins(),
        allow_headers=["Content-Type", "Authorization"],
        methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    )

    if engine is None:
        logger.info("[init] Initializing database connection...")
        engine = init_engine()

    services = build_services(engine, provider)
    app.extensions["fleetguard"] = services

    register_routes(app, services)
    register_resource_routes(app, services)
    register_error_handlers(app)
    return app


def main():
    """Run the development server."""
    logging.basicConfig(
        level=logging.DEBUG if os.getenv("FLASK_ENV") == "development" else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    print("=" * 60)
    print("Fleet Management – REST API Server")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    logger.info("[server] Starting Flask API on %s:%s", host, port)
    logger.info("[server] Debug mode: %s", debug)
    logger.info("[server] Token expiry: %s hours", TOKEN_EXPIRY_HOURS)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()

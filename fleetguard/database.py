"""
Database engine initialisation and table definitions.
"""

import logging
import sys
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    text,
)

from fleetguard.config import get_env

logger = logging.getLogger(__name__)

metadata = MetaData()


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _timestamps():
    return (
        Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
        Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow),
    )


companies = Table(
    "companies", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("name", String(200), nullable=False, unique=True),
    Column("cnpj", String(32), nullable=False, unique=True),
    Column("contact", String(200)),
    Column("status", String(16), nullable=False, default="active"),
    Column("address_text", String(300)),
    Column("contracted_passengers", Integer, nullable=False, default=0),
    *_timestamps(),
)

users = Table(
    "users", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("email", String(200), nullable=False, unique=True),
    Column("name", String(200), nullable=False),
    Column("phone", String(32)),
    Column("role", String(16), nullable=False),
    Column("company_id", String(36), ForeignKey("companies.id")),
    Column("password_hash", String(256)),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("last_login", DateTime(timezone=True)),
    *_timestamps(),
)

# Drivers point at their company by name (linked_company); the store resolves
# it to companies.id on every read.
drivers = Table(
    "drivers", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("user_id", String(36), ForeignKey("users.id")),
    Column("name", String(200), nullable=False),
    Column("cpf", String(20), nullable=False, unique=True),
    Column("email", String(200), nullable=False),
    Column("phone", String(32)),
    Column("cnh", String(32), nullable=False),
    Column("cnh_category", String(4)),
    Column("cnh_validity", String(32)),
    Column("contract_type", String(32)),
    Column("status", String(16), nullable=False, default="active"),
    Column("linked_company", String(200)),
    *_timestamps(),
)

vehicles = Table(
    "vehicles", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("plate", String(16), nullable=False, unique=True),
    Column("model", String(100), nullable=False),
    Column("driver_id", String(36), ForeignKey("users.id")),
    Column("company_id", String(36), ForeignKey("companies.id"), nullable=False),
    Column("status", String(16), nullable=False, default="garage"),
    Column("position_lat", Float),
    Column("position_lng", Float),
    Column("last_maintenance", String(32)),
    Column("next_maintenance", String(32)),
    *_timestamps(),
)

passengers = Table(
    "passengers", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("user_id", String(36), ForeignKey("users.id")),
    Column("name", String(200), nullable=False),
    Column("cpf", String(20), nullable=False, unique=True),
    Column("email", String(200), nullable=False),
    Column("address", String(300)),
    Column("pickup_time", String(16)),
    Column("company_id", String(36), ForeignKey("companies.id"), nullable=False),
    Column("status", String(16), nullable=False, default="active"),
    *_timestamps(),
)

routes = Table(
    "routes", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("name", String(200), nullable=False),
    Column("driver_id", String(36), ForeignKey("users.id")),
    Column("vehicle_id", String(36), ForeignKey("vehicles.id")),
    Column("company_id", String(36), ForeignKey("companies.id"), nullable=False),
    Column("status", String(16), nullable=False, default="scheduled"),
    Column("origin", String(300)),
    Column("destination", String(300)),
    Column("scheduled_start", String(32), nullable=False),
    Column("actual_start", DateTime(timezone=True)),
    Column("actual_end", DateTime(timezone=True)),
    Column("total_runs", Integer, nullable=False, default=0),
    Column("average_rating", Float),
    Column("notes", Text),
    *_timestamps(),
)

alerts = Table(
    "alerts", metadata,
    Column("id", String(36), primary_key=True, default=new_id),
    Column("type", String(16), nullable=False),
    Column("priority", String(16), nullable=False, default="medium"),
    Column("title", String(200), nullable=False),
    Column("message", Text, nullable=False),
    Column("user_id", String(36), ForeignKey("users.id")),
    Column("company_id", String(36), ForeignKey("companies.id")),
    Column("route_id", String(36), ForeignKey("routes.id")),
    Column("vehicle_id", String(36), ForeignKey("vehicles.id")),
    Column("is_read", Boolean, nullable=False, default=False),
    Column("resolved_at", DateTime(timezone=True)),
    Column("resolved_by", String(36), ForeignKey("users.id")),
    Column("timestamp", DateTime(timezone=True), nullable=False, default=utcnow),
    *_timestamps(),
)


def _enable_sqlite_foreign_keys(engine) -> None:
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_conn, _record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_db_engine(db_uri: str):
    """Create an engine without touching the network."""
    engine = create_engine(db_uri, echo=False, future=True)
    _enable_sqlite_foreign_keys(engine)
    return engine


def init_engine(db_uri: str = None):
    """Create a SQLAlchemy engine and verify the connection."""
    engine = create_db_engine(db_uri or get_env("DB_URI"))
    try:
        check_connection(engine)
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    logger.info("[init] Connected to DB (%s).", engine.dialect.name)
    return engine


def init_schema(engine) -> None:
    """Create every table that does not exist yet."""
    metadata.create_all(engine)


def check_connection(engine) -> None:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))

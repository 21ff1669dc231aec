"""
Resource stores – the SQLAlchemy Core adapter behind every resource handler.

Stores know nothing about callers or roles; they receive already-scoped
``Criteria`` objects and raw payloads, and raise ``RecordNotFound`` or
SQLAlchemy errors that the API layer normalizes.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import delete, func, insert, or_, select, update
from werkzeug.security import generate_password_hash

from fleetguard.config import ROUTE_FINISHED, ROUTE_IN_PROGRESS, ROUTE_SCHEDULED
from fleetguard.database import (
    alerts,
    companies,
    drivers,
    passengers,
    routes,
    users,
    utcnow,
    vehicles,
)
from fleetguard.errors import (
    Conflict,
    InvalidReference,
    InvalidTransition,
    RecordNotFound,
    ValidationFailed,
)
from fleetguard.models import Criteria

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class ResourceStore:
    """Generic CRUD over one table."""

    table = None
    search_columns: Tuple[str, ...] = ()
    protected_columns = frozenset({"id", "created_at", "updated_at"})

    def __init__(self, engine):
        self.engine = engine

    # ── Query building ───────────────────────────────────────────────

    def _select(self):
        return select(self.table)

    def _details_select(self):
        return self._select()

    def _column(self, key: str):
        return self.table.c[key]

    def _apply(self, stmt, criteria: Optional[Criteria]):
        if criteria is None:
            return stmt
        for key, value in criteria.as_conditions().items():
            stmt = stmt.where(self._column(key) == value)
        if criteria.search and self.search_columns:
            pattern = f"%{criteria.search}%"
            stmt = stmt.where(or_(*(self._column(c).ilike(pattern) for c in self.search_columns)))
        return stmt

    def normalize_payload(self, body: Mapping[str, Any]) -> Record:
        """Express a caller payload in terms of the owning references the scope rules check."""
        return dict(body)

    def clean_payload(self, body: Mapping[str, Any]) -> Record:
        """Keep only writable columns of this table."""
        return {
            k: v for k, v in body.items()
            if k in self.table.c and k not in self.protected_columns
        }

    # ── Reads ────────────────────────────────────────────────────────

    def _fetch(self, conn, record_id: str, stmt=None) -> Record:
        stmt = stmt if stmt is not None else self._select()
        row = conn.execute(stmt.where(self.table.c.id == record_id)).mappings().first()
        if row is None:
            raise RecordNotFound(f"{self.table.name}/{record_id}")
        return dict(row)

    def find_by_id(self, record_id: str) -> Record:
        with self.engine.connect() as conn:
            return self._fetch(conn, record_id)

    def find_by_id_with_details(self, record_id: str) -> Record:
        with self.engine.connect() as conn:
            return self._fetch(conn, record_id, self._details_select())

    def find_with_filters(
        self,
        criteria: Criteria,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[List[Record], int]:
        """Return one page of matching rows and the total match count."""
        stmt = self._apply(self._select(), criteria)
        count_stmt = select(func.count()).select_from(stmt.subquery())
        page_stmt = stmt.order_by(self.table.c.created_at.desc(), self.table.c.id).offset(offset)
        if limit is not None:
            page_stmt = page_stmt.limit(limit)
        with self.engine.connect() as conn:
            total = conn.execute(count_stmt).scalar_one()
            rows = [dict(r) for r in conn.execute(page_stmt).mappings()]
        return rows, total

    def find_all_with_details(self) -> List[Record]:
        """Every row, denormalized with the names of related records."""
        stmt = self._details_select().order_by(self.table.c.created_at.desc(), self.table.c.id)
        with self.engine.connect() as conn:
            return [dict(r) for r in conn.execute(stmt).mappings()]

    def count(self, criteria: Optional[Criteria] = None) -> int:
        stmt = self._apply(self._select(), criteria)
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()

    def column_values(self, column: str, criteria: Optional[Criteria] = None) -> List[Any]:
        """Values of one column across every matching row."""
        stmt = self._apply(self._select(), criteria).subquery()
        with self.engine.connect() as conn:
            return list(conn.execute(select(stmt.c[column])).scalars())

    # ── Writes ───────────────────────────────────────────────────────

    def create(self, body: Mapping[str, Any]) -> Record:
        values = self.clean_payload(body)
        with self.engine.begin() as conn:
            result = conn.execute(insert(self.table).values(**values))
            record_id = result.inserted_primary_key[0]
        logger.info("Created %s/%s", self.table.name, record_id)
        return self.find_by_id(record_id)

    def update(self, record_id: str, body: Mapping[str, Any]) -> Record:
        values = self.clean_payload(body)
        with self.engine.begin() as conn:
            if values:
                result = conn.execute(
                    update(self.table).where(self.table.c.id == record_id).values(**values)
                )
                if result.rowcount == 0:
                    raise RecordNotFound(f"{self.table.name}/{record_id}")
            else:
                self._fetch(conn, record_id)
        return self.find_by_id(record_id)

    def delete(self, record_id: str) -> None:
        with self.engine.begin() as conn:
            result = conn.execute(delete(self.table).where(self.table.c.id == record_id))
            if result.rowcount == 0:
                raise RecordNotFound(f"{self.table.name}/{record_id}")
        logger.info("Deleted %s/%s", self.table.name, record_id)


# ── Companies ────────────────────────────────────────────────────────

class CompanyStore(ResourceStore):
    table = companies
    search_columns = ("name", "cnpj", "contact")

    def name_for(self, company_id: str) -> Optional[str]:
        with self.engine.connect() as conn:
            return conn.execute(
                select(companies.c.name).where(companies.c.id == company_id)
            ).scalar_one_or_none()

    def id_for(self, name: str) -> Optional[str]:
        with self.engine.connect() as conn:
            return conn.execute(
                select(companies.c.id).where(companies.c.name == name)
            ).scalar_one_or_none()

    def toggle_status(self, company_id: str) -> Record:
        """Flip active/inactive; applying it twice restores the original status."""
        with self.engine.begin() as conn:
            current = self._fetch(conn, company_id)["status"]
            new_status = "inactive" if current == "active" else "active"
            result = conn.execute(
                update(companies)
                .where(companies.c.id == company_id, companies.c.status == current)
                .values(status=new_status)
            )
            if result.rowcount == 0:
                raise Conflict("Company status changed concurrently, try again")
        logger.info("Company %s status %s -> %s", company_id, current, new_status)
        return self.find_by_id(company_id)


# ── Users ────────────────────────────────────────────────────────────

class UserStore(ResourceStore):
    table = users
    search_columns = ("name", "email")
    protected_columns = frozenset({"id", "created_at", "updated_at", "password_hash"})

    _profile_columns = (users.c.id, users.c.email, users.c.name, users.c.role, users.c.company_id)

    def find_profile(self, user_id: str) -> Optional[Record]:
        """Profile row of an active user, or None."""
        stmt = select(*self._profile_columns).where(
            users.c.id == user_id, users.c.is_active.is_(True)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).mappings().first()
        return dict(row) if row else None

    def find_by_email(self, email: str) -> Optional[Record]:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(users).where(users.c.email == email.lower())
            ).mappings().first()
        return dict(row) if row else None

    def create_user(self, name: str, email: str, password: str, role: str,
                    company_id: Optional[str] = None, phone: Optional[str] = None) -> Record:
        with self.engine.begin() as conn:
            result = conn.execute(insert(users).values(
                name=name,
                email=email.lower(),
                phone=phone,
                role=role,
                company_id=company_id,
                password_hash=generate_password_hash(password),
            ))
            user_id = result.inserted_primary_key[0]
        logger.info("Registered user %s (role=%s)", user_id, role)
        return self.find_profile(user_id)

    def touch_login(self, user_id: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(update(users).where(users.c.id == user_id).values(last_login=utcnow()))


# ── Drivers ──────────────────────────────────────────────────────────

class DriverStore(ResourceStore):
    """
    Drivers reference their company by name. Every read joins on
    companies.name so records also carry the owning ``company_id``, and a
    ``company_id`` filter is evaluated through that join.
    """
    table = drivers
    search_columns = ("name", "cpf", "email", "cnh")

    def __init__(self, engine, company_store: CompanyStore):
        super().__init__(engine)
        self.companies = company_store

    def _join(self):
        return drivers.outerjoin(companies, drivers.c.linked_company == companies.c.name)

    def _select(self):
        return select(drivers, companies.c.id.label("company_id")).select_from(self._join())

    def _details_select(self):
        return select(
            drivers,
            companies.c.id.label("company_id"),
            companies.c.status.label("company_status"),
        ).select_from(self._join())

    def _column(self, key: str):
        if key == "company_id":
            return companies.c.id
        return drivers.c[key]

    def normalize_payload(self, body: Mapping[str, Any]) -> Record:
        """A ``linked_company`` name from the caller becomes the ``company_id`` it names."""
        values = dict(body)
        if "linked_company" not in values:
            return values
        name = values.pop("linked_company")
        company_id = self.companies.id_for(name) if name else None
        if company_id is None:
            raise InvalidReference(f"Company '{name}' does not exist")
        if values.get("company_id") not in (None, company_id):
            raise ValidationFailed("company_id and linked_company name different companies")
        values["company_id"] = company_id
        return values

    def _translate_company(self, body: Mapping[str, Any]) -> Record:
        values = dict(body)
        # linked_company is only ever written from a company_id
        values.pop("linked_company", None)
        company_id = values.pop("company_id", None)
        if company_id is not None:
            name = self.companies.name_for(company_id)
            if name is None:
                raise InvalidReference(f"Company {company_id} does not exist")
            values["linked_company"] = name
        return values

    def create(self, body: Mapping[str, Any]) -> Record:
        return super().create(self._translate_company(body))

    def update(self, record_id: str, body: Mapping[str, Any]) -> Record:
        return super().update(record_id, self._translate_company(body))


# ── Vehicles / passengers ────────────────────────────────────────────

class VehicleStore(ResourceStore):
    table = vehicles
    search_columns = ("plate", "model")

    def _details_select(self):
        return (
            select(vehicles, companies.c.name.label("company_name"), users.c.name.label("driver_name"))
            .select_from(
                vehicles
                .outerjoin(companies, vehicles.c.company_id == companies.c.id)
                .outerjoin(users, vehicles.c.driver_id == users.c.id)
            )
        )


class PassengerStore(ResourceStore):
    table = passengers
    search_columns = ("name", "cpf", "email", "address")

    def _details_select(self):
        return (
            select(passengers, companies.c.name.label("company_name"))
            .select_from(passengers.outerjoin(companies, passengers.c.company_id == companies.c.id))
        )


# ── Routes ───────────────────────────────────────────────────────────

class RouteStore(ResourceStore):
    """Routes move Scheduled -> InProgress -> Finished, never backwards."""
    table = routes
    search_columns = ("name", "origin", "destination")
    protected_columns = frozenset({
        "id", "created_at", "updated_at", "status", "actual_start", "actual_end",
        "total_runs", "average_rating",
    })

    def _details_select(self):
        return (
            select(
                routes,
                users.c.name.label("driver_name"),
                vehicles.c.plate.label("vehicle_plate"),
                companies.c.name.label("company_name"),
            )
            .select_from(
                routes
                .outerjoin(users, routes.c.driver_id == users.c.id)
                .outerjoin(vehicles, routes.c.vehicle_id == vehicles.c.id)
                .outerjoin(companies, routes.c.company_id == companies.c.id)
            )
        )

    def start_route(self, route_id: str) -> Record:
        with self.engine.begin() as conn:
            route = self._fetch(conn, route_id)
            if route["status"] != ROUTE_SCHEDULED:
                raise InvalidTransition(
                    f"Route is {route['status']}; only scheduled routes can be started"
                )
            if route["driver_id"]:
                busy = conn.execute(
                    select(routes.c.id).where(
                        routes.c.driver_id == route["driver_id"],
                        routes.c.status == ROUTE_IN_PROGRESS,
                        routes.c.id != route_id,
                    )
                ).first()
                if busy is not None:
                    raise InvalidTransition("Driver already has a route in progress")
            result = conn.execute(
                update(routes)
                .where(routes.c.id == route_id, routes.c.status == ROUTE_SCHEDULED)
                .values(status=ROUTE_IN_PROGRESS, actual_start=utcnow(), actual_end=None)
            )
            if result.rowcount == 0:
                raise InvalidTransition("Route state changed concurrently")
        logger.info("Route %s started", route_id)
        return self.find_by_id(route_id)

    def finish_route(self, route_id: str, notes: Optional[str] = None,
                     rating: Optional[float] = None) -> Record:
        if rating is not None and not 1 <= rating <= 5:
            raise ValidationFailed("Rating must be between 1 and 5")

        with self.engine.begin() as conn:
            route = self._fetch(conn, route_id)
            if route["status"] != ROUTE_IN_PROGRESS:
                raise InvalidTransition(
                    f"Route is {route['status']}; only routes in progress can be finished"
                )
            values = {
                "status": ROUTE_FINISHED,
                "actual_end": utcnow(),
                "total_runs": routes.c.total_runs + 1,
            }
            if rating is not None:
                runs = route["total_runs"] or 0
                previous = route["average_rating"] or 0
                values["average_rating"] = (previous * runs + rating) / (runs + 1)
            if notes:
                values["notes"] = notes
            result = conn.execute(
                update(routes)
                .where(routes.c.id == route_id, routes.c.status == ROUTE_IN_PROGRESS)
                .values(**values)
            )
            if result.rowcount == 0:
                raise InvalidTransition("Route state changed concurrently")
        logger.info("Route %s finished", route_id)
        return self.find_by_id(route_id)


# ── Alerts ───────────────────────────────────────────────────────────

class AlertStore(ResourceStore):
    table = alerts
    search_columns = ("title", "message")
    protected_columns = frozenset({
        "id", "created_at", "updated_at", "resolved_at", "resolved_by",
    })

    def _details_select(self):
        return (
            select(
                alerts,
                users.c.name.label("user_name"),
                routes.c.name.label("route_name"),
                vehicles.c.plate.label("vehicle_plate"),
            )
            .select_from(
                alerts
                .outerjoin(users, alerts.c.user_id == users.c.id)
                .outerjoin(routes, alerts.c.route_id == routes.c.id)
                .outerjoin(vehicles, alerts.c.vehicle_id == vehicles.c.id)
            )
        )

    def mark_as_read(self, alert_id: str, resolved_by: str) -> Record:
        with self.engine.begin() as conn:
            result = conn.execute(
                update(alerts)
                .where(alerts.c.id == alert_id)
                .values(is_read=True, resolved_at=utcnow(), resolved_by=resolved_by)
            )
            if result.rowcount == 0:
                raise RecordNotFound(f"alerts/{alert_id}")
        return self.find_by_id(alert_id)

"""
Store tests against a real SQLite database – CRUD, company status toggling,
driver/company translation and the route lifecycle.
"""

import pytest

from fleetguard.errors import Conflict, InvalidReference, InvalidTransition, RecordNotFound, ValidationFailed
from fleetguard.models import Criteria
from fleetguard.store import (
    AlertStore,
    CompanyStore,
    DriverStore,
    PassengerStore,
    RouteStore,
    VehicleStore,
)


# ── Helpers ──────────────────────────────────────────────────────────

@pytest.fixture
def companies(engine):
    return CompanyStore(engine)


@pytest.fixture
def route_store(engine):
    return RouteStore(engine)


def make_route(store, seed, driver_key="driver", name="Linha 1"):
    return store.create({
        "name": name,
        "company_id": seed["c1"],
        "driver_id": seed[driver_key],
        "scheduled_start": "07:30",
    })


# ── Tests: generic CRUD ──────────────────────────────────────────────

def test_create_then_find_returns_same_values(engine, seed):
    store = VehicleStore(engine)
    created = store.create({"plate": "ABC-1234", "model": "Sprinter", "company_id": seed["c1"]})
    found = store.find_by_id(created["id"])
    assert found == created
    assert found["plate"] == "ABC-1234"
    assert found["status"] == "garage"


def test_create_ignores_protected_and_unknown_columns(engine, seed):
    store = VehicleStore(engine)
    created = store.create({
        "id": "chosen-by-caller", "plate": "DEF-0001", "model": "Van",
        "company_id": seed["c1"], "not_a_column": 1,
    })
    assert created["id"] != "chosen-by-caller"
    assert "not_a_column" not in created


def test_update_and_delete(engine, seed):
    store = PassengerStore(engine)
    p = store.create({"name": "Ana", "cpf": "1", "email": "ana@x.test", "company_id": seed["c1"]})
    assert store.update(p["id"], {"address": "Rua 1"})["address"] == "Rua 1"
    store.delete(p["id"])
    with pytest.raises(RecordNotFound):
        store.find_by_id(p["id"])


def test_missing_ids_raise_record_not_found(engine):
    store = VehicleStore(engine)
    with pytest.raises(RecordNotFound):
        store.update("nope", {"model": "x"})
    with pytest.raises(RecordNotFound):
        store.update("nope", {})
    with pytest.raises(RecordNotFound):
        store.delete("nope")


def test_find_with_filters_pages_and_counts(engine, seed):
    store = VehicleStore(engine)
    for i in range(5):
        store.create({"plate": f"P-{i}", "model": "Bus", "company_id": seed["c1"]})
    store.create({"plate": "Q-0", "model": "Bus", "company_id": seed["c2"]})

    criteria = Criteria(family="vehicles", scope={"company_id": seed["c1"]})
    rows, total = store.find_with_filters(criteria, offset=2, limit=2)
    assert total == 5
    assert len(rows) == 2
    assert {r["company_id"] for r in rows} == {seed["c1"]}


def test_search_is_case_insensitive(engine, seed):
    store = VehicleStore(engine)
    store.create({"plate": "AAA-1", "model": "Marcopolo Volare", "company_id": seed["c1"]})
    store.create({"plate": "BBB-1", "model": "Sprinter", "company_id": seed["c1"]})
    rows, total = store.find_with_filters(Criteria(family="vehicles", search="volare"))
    assert total == 1
    assert rows[0]["plate"] == "AAA-1"


def test_column_values_respects_scope(engine, seed):
    store = VehicleStore(engine)
    store.create({"plate": "A", "model": "m", "company_id": seed["c1"], "status": "active"})
    store.create({"plate": "B", "model": "m", "company_id": seed["c2"], "status": "maintenance"})
    values = store.column_values("status", Criteria(family="vehicles", scope={"company_id": seed["c1"]}))
    assert values == ["active"]


def test_vehicle_details_carry_names(engine, seed):
    store = VehicleStore(engine)
    store.create({"plate": "D-1", "model": "m", "company_id": seed["c1"], "driver_id": seed["driver"]})
    (row,) = store.find_all_with_details()
    assert row["company_name"] == "Alpha Transportes"
    assert row["driver_name"] == "Driver"


# ── Tests: companies ─────────────────────────────────────────────────

def test_toggle_status_twice_restores(companies, seed):
    assert companies.find_by_id(seed["c1"])["status"] == "active"
    assert companies.toggle_status(seed["c1"])["status"] == "inactive"
    assert companies.toggle_status(seed["c1"])["status"] == "active"


def test_toggle_status_unknown_company(companies):
    with pytest.raises(RecordNotFound):
        companies.toggle_status("missing")


def test_duplicate_company_name_is_integrity_error(companies, seed):
    from sqlalchemy.exc import IntegrityError
    with pytest.raises(IntegrityError):
        companies.create({"name": "Alpha Transportes", "cnpj": "99"})


def test_conflict_is_a_fleet_error():
    assert Conflict().status == 409


# ── Tests: drivers ───────────────────────────────────────────────────

def test_driver_company_id_translates_to_linked_company(engine, companies, seed):
    store = DriverStore(engine, companies)
    d = store.create({
        "name": "Carlos", "cpf": "123", "email": "c@x.test", "cnh": "9",
        "company_id": seed["c1"],
    })
    assert d["linked_company"] == "Alpha Transportes"
    assert d["company_id"] == seed["c1"]


def test_driver_filter_by_company_id(engine, companies, seed):
    store = DriverStore(engine, companies)
    store.create({"name": "A", "cpf": "1", "email": "a@x.test", "cnh": "1", "company_id": seed["c1"]})
    store.create({"name": "B", "cpf": "2", "email": "b@x.test", "cnh": "2", "company_id": seed["c2"]})
    store.create({"name": "C", "cpf": "3", "email": "c@x.test", "cnh": "3"})

    rows, total = store.find_with_filters(Criteria(family="drivers", scope={"company_id": seed["c2"]}))
    assert total == 1
    assert rows[0]["name"] == "B"
    assert store.count() == 3


def test_driver_unknown_company_rejected(engine, companies):
    store = DriverStore(engine, companies)
    with pytest.raises(InvalidReference):
        store.create({"name": "X", "cpf": "9", "email": "x@x.test", "cnh": "9", "company_id": "nope"})


# ── Tests: route lifecycle ───────────────────────────────────────────

def test_route_status_cannot_be_written_directly(route_store, seed):
    route = make_route(route_store, seed)
    assert route["status"] == "scheduled"
    updated = route_store.update(route["id"], {"status": "finished", "notes": "n"})
    assert updated["status"] == "scheduled"
    assert updated["notes"] == "n"


def test_route_start_then_finish(route_store, seed):
    route = make_route(route_store, seed)
    started = route_store.start_route(route["id"])
    assert started["status"] == "in_progress"
    assert started["actual_start"] is not None

    finished = route_store.finish_route(route["id"], notes="ok", rating=4)
    assert finished["status"] == "finished"
    assert finished["actual_end"] is not None
    assert finished["total_runs"] == 1
    assert finished["average_rating"] == 4
    assert finished["notes"] == "ok"


def test_route_finish_before_start_leaves_state(route_store, seed):
    route = make_route(route_store, seed)
    with pytest.raises(InvalidTransition):
        route_store.finish_route(route["id"])
    assert route_store.find_by_id(route["id"])["status"] == "scheduled"


def test_route_cannot_restart(route_store, seed):
    route = make_route(route_store, seed)
    route_store.start_route(route["id"])
    route_store.finish_route(route["id"])
    with pytest.raises(InvalidTransition):
        route_store.start_route(route["id"])
    assert route_store.find_by_id(route["id"])["status"] == "finished"


def test_driver_with_route_in_progress_cannot_start_another(route_store, seed):
    first = make_route(route_store, seed, name="Manhã")
    second = make_route(route_store, seed, name="Tarde")
    route_store.start_route(first["id"])
    with pytest.raises(InvalidTransition):
        route_store.start_route(second["id"])
    assert route_store.find_by_id(second["id"])["status"] == "scheduled"

    other = make_route(route_store, seed, driver_key="driver2", name="Noite")
    assert route_store.start_route(other["id"])["status"] == "in_progress"


@pytest.mark.parametrize("rating", [0, 5.5, -1])
def test_finish_rejects_rating_out_of_range(route_store, seed, rating):
    route = make_route(route_store, seed)
    route_store.start_route(route["id"])
    with pytest.raises(ValidationFailed):
        route_store.finish_route(route["id"], rating=rating)
    assert route_store.find_by_id(route["id"])["status"] == "in_progress"


# ── Tests: alerts ────────────────────────────────────────────────────

def test_mark_as_read(engine, seed):
    store = AlertStore(engine)
    alert = store.create({
        "type": "warning", "title": "Pneu", "message": "Pressão baixa",
        "user_id": seed["driver"], "company_id": seed["c1"],
    })
    assert alert["is_read"] is False
    resolved = store.mark_as_read(alert["id"], seed["operator"])
    assert resolved["is_read"] is True
    assert resolved["resolved_by"] == seed["operator"]
    assert resolved["resolved_at"] is not None


def test_mark_as_read_missing(engine, seed):
    with pytest.raises(RecordNotFound):
        AlertStore(engine).mark_as_read("missing", seed["admin"])


def test_driver_linked_company_from_caller_becomes_company_id(engine, companies, seed):
    store = DriverStore(engine, companies)
    assert store.normalize_payload({"linked_company": "Beta Mobilidade"}) == {"company_id": seed["c2"]}
    with pytest.raises(InvalidReference):
        store.normalize_payload({"linked_company": "Nobody Ltda"})
    with pytest.raises(ValidationFailed):
        store.normalize_payload({"linked_company": "Beta Mobilidade", "company_id": seed["c1"]})


def test_driver_linked_company_never_written_directly(engine, companies, seed):
    store = DriverStore(engine, companies)
    d = store.create({"name": "A", "cpf": "1", "email": "a@x.test", "cnh": "1", "company_id": seed["c1"]})
    updated = store.update(d["id"], {"linked_company": "Beta Mobilidade"})
    assert updated["company_id"] == seed["c1"]
    assert updated["linked_company"] == "Alpha Transportes"

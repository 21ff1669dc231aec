"""
Shared fixtures: a throw-away SQLite database seeded with two companies and
one user per role, plus a Flask test client wired to it.
"""

import pytest

from fleetguard.api.app import create_app
from fleetguard.database import create_db_engine, init_schema
from fleetguard.identity import JwtAuthProvider
from fleetguard.store import CompanyStore, UserStore

TEST_SECRET = "test-secret"
PASSWORD = "secret123"


@pytest.fixture
def engine(tmp_path):
    eng = create_db_engine(f"sqlite:///{tmp_path / 'fleet.db'}")
    init_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def provider():
    return JwtAuthProvider(secret=TEST_SECRET, expiry_hours=1)


@pytest.fixture
def seed(engine):
    """Ids of the seeded companies and users, keyed by a short name."""
    companies = CompanyStore(engine)
    users = UserStore(engine)

    c1 = companies.create({"name": "Alpha Transportes", "cnpj": "11.111.111/0001-11"})
    c2 = companies.create({"name": "Beta Mobilidade", "cnpj": "22.222.222/0001-22"})

    def user(key, role, company):
        return users.create_user(
            name=key.replace("_", " ").title(),
            email=f"{key}@fleet.test",
            password=PASSWORD,
            role=role,
            company_id=company["id"] if company else None,
        )["id"]

    return {
        "c1": c1["id"],
        "c2": c2["id"],
        "admin": user("admin", "admin", None),
        "operator": user("operator", "operator", c1),
        "operator2": user("operator_two", "operator", c2),
        "client": user("client", "client", c1),
        "lonely_operator": user("lonely_operator", "operator", None),
        "lonely_client": user("lonely_client", "client", None),
        "driver": user("driver", "driver", c1),
        "driver2": user("driver_two", "driver", c1),
        "passenger": user("passenger", "passenger", c1),
        "passenger2": user("passenger_two", "passenger", c2),
    }


@pytest.fixture
def app(engine, provider, seed):
    application = create_app(engine=engine, provider=provider)
    application.config["TESTING"] = True
    return application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions["fleetguard"]


@pytest.fixture
def auth(provider, seed, services):
    """auth("operator") -> headers carrying a valid bearer token for that user."""
    def _headers(key):
        user_id = seed[key]
        role = services.users.find_profile(user_id)["role"]
        return {"Authorization": f"Bearer {provider.issue_token(user_id, role)}"}
    return _headers

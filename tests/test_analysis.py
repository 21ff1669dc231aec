"""
Unit tests for the stats fan-out and status summaries.
"""

import threading

import pytest

from fleetguard.analysis import collect_stats, summarize_statuses
from fleetguard.models import Identity


# ── Helpers / Fakes ──────────────────────────────────────────────────

class FakeStore:
    """Mimic ResourceStore.column_values and record the criteria it received."""
    def __init__(self, values):
        self._values = values
        self.criteria = []
        self.threads = set()

    def column_values(self, column, criteria=None):
        self.criteria.append(criteria)
        self.threads.add(threading.get_ident())
        return list(self._values)


class FailingStore(FakeStore):
    def column_values(self, column, criteria=None):
        raise RuntimeError("replica down")


def fake_stores(**overrides):
    stores = {
        "companies": FakeStore(["active", "inactive", "active"]),
        "drivers": FakeStore(["active"]),
        "vehicles": FakeStore(["garage", "moving"]),
        "passengers": FakeStore([]),
        "routes": FakeStore(["scheduled", "finished", "finished"]),
        "alerts": FakeStore(["critical", "info"]),
    }
    stores.update(overrides)
    return stores


def ident(role, company_id="c1"):
    return Identity(id="u1", email="u1@fleet.test", name="U", role=role, company_id=company_id)


# ── Tests: summarize_statuses ────────────────────────────────────────

def test_summarize_counts():
    out = summarize_statuses(["a", "b", "a"])
    assert out == {"total": 3, "by_status": {"a": 2, "b": 1}}


def test_summarize_empty():
    assert summarize_statuses([]) == {"total": 0, "by_status": {}}


def test_summarize_ignores_missing_values_in_breakdown():
    out = summarize_statuses(["a", None])
    assert out["total"] == 2
    assert out["by_status"] == {"a": 1}


# ── Tests: collect_stats ─────────────────────────────────────────────

def test_admin_gets_every_family():
    data = collect_stats(fake_stores(), ident("admin", company_id=None), max_workers=3)
    assert set(data) == {"companies", "drivers", "vehicles", "passengers", "routes", "alerts"}
    assert data["routes"] == {"total": 3, "by_status": {"finished": 2, "scheduled": 1}}
    assert data["passengers"]["total"] == 0


def test_operator_skips_companies_and_is_scoped():
    stores = fake_stores()
    data = collect_stats(stores, ident("operator"))
    assert "companies" not in data
    assert stores["companies"].criteria == []
    (criteria,) = stores["vehicles"].criteria
    assert criteria.as_conditions() == {"company_id": "c1"}


def test_branch_failure_fails_whole_call():
    stores = fake_stores(routes=FailingStore([]))
    with pytest.raises(RuntimeError, match="replica down"):
        collect_stats(stores, ident("admin", company_id=None))


def test_reads_run_on_worker_threads():
    stores = fake_stores()
    collect_stats(stores, ident("admin", company_id=None), max_workers=2)
    used = set().union(*(s.threads for s in stores.values()))
    assert threading.get_ident() not in used

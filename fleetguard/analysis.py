"""
Dashboard statistics – scoped counts and status breakdowns per resource family.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, Mapping

import pandas as pd

from fleetguard.config import STATS_MAX_WORKERS
from fleetguard.errors import InsufficientRole
from fleetguard.models import Criteria, Identity
from fleetguard.scope import derive_filter

logger = logging.getLogger(__name__)

# Column whose value distribution is reported for each family.
BREAKDOWN_COLUMNS = {
    "companies": "status",
    "drivers": "status",
    "vehicles": "status",
    "passengers": "status",
    "routes": "status",
    "alerts": "type",
}


def summarize_statuses(values: Iterable[Any]) -> Dict[str, Any]:
    """Total plus value_counts of a status-like column."""
    s = pd.Series(list(values), dtype="object")
    if s.empty:
        return {"total": 0, "by_status": {}}
    counts = s.dropna().astype(str).value_counts().sort_index()
    return {
        "total": int(len(s)),
        "by_status": {str(k): int(v) for k, v in counts.items()},
    }


def _family_stats(store, criteria: Criteria, column: str) -> Dict[str, Any]:
    return summarize_statuses(store.column_values(column, criteria))


def collect_stats(stores: Mapping[str, Any], identity: Identity,
                  max_workers: int = STATS_MAX_WORKERS) -> Dict[str, Any]:
    """
    Fan out one scoped read per family the caller may list and join the results.

    Families the role cannot list are left out. A failure in any branch fails
    the whole call; there is no partial result.
    """
    plan = {}
    for family, column in BREAKDOWN_COLUMNS.items():
        try:
            criteria = derive_filter(identity, family)
        except InsufficientRole:
            continue
        plan[family] = (criteria, column)

    logger.debug("Stats for %s over %s", identity.id, sorted(plan))

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        futures = {
            family: pool.submit(_family_stats, stores[family], criteria, column)
            for family, (criteria, column) in plan.items()
        }
        return {family: future.result() for family, future in futures.items()}

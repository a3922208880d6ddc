"""
Platform metrics for the admin dashboard.

Reads every item of a kind through the entityType index (GSI3) into a pandas
DataFrame and aggregates it. Revenue is estimated from ACTIVE subscriptions
found through the subscription status index.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Sequence

import pandas as pd  # type: ignore[import]

from collabhub.database.Applications import APPLICATION_STATUSES
from collabhub.database.Startups import STARTUP_STATUSES
from collabhub.database.Subscriptions import TIERS
from collabhub.database.Users import ROLES
from collabhub.database.identifiers import now_iso
from collabhub.database.keys import CREATED_AT, GSI2, GSI3, make_gsi2pk_subscription_status
from collabhub.database.repository import DynamoRepository
from collabhub.database.types import EntityKind

logger = logging.getLogger(__name__)

# Monthly price per paid tier, USD
MONTHLY_PRICES: Dict[str, int] = {"PRO": 29, "ENTERPRISE": 99}


def _to_frame(items: Iterable[Dict[str, Any]], columns: Sequence[str]) -> pd.DataFrame:
    rows = [{c: item.get(c) for c in columns} for item in items]
    return pd.DataFrame(rows, columns=list(columns))


def _counts(series: pd.Series, categories: Sequence[str]) -> Dict[str, int]:
    counts = series.value_counts()
    return {c: int(counts.get(c, 0)) for c in categories}


def month_start(timestamp_iso: str) -> str:
    """First instant of the timestamp's UTC month, in the same ISO format."""
    return f"{timestamp_iso[:7]}-01T00:00:00.000Z"


class PlatformMetrics:
    def __init__(self, repo: DynamoRepository, clock: Callable[[], str] = now_iso) -> None:
        self._repo = repo
        self._clock = clock

    def _entities(self, kind: EntityKind, columns: List[str]) -> pd.DataFrame:
        items = self._repo.iter_index(GSI3.name, kind.value)
        df = _to_frame(items, columns)
        logger.debug("Loaded %d %s items", len(df), kind.value)
        return df

    def collect(self) -> Dict[str, Any]:
        since = month_start(self._clock())
        users = self._entities(EntityKind.USER, ["role", "status", CREATED_AT])
        startups = self._entities(EntityKind.STARTUP, ["status", "visibility"])
        applications = self._entities(EntityKind.APPLICATION, ["status", CREATED_AT])
        subscriptions = _to_frame(
            self._repo.iter_index(GSI2.name, make_gsi2pk_subscription_status("ACTIVE")), ["tier", "userId"]
        )

        tiers = _counts(subscriptions["tier"], TIERS)
        paid = {tier: tiers[tier] for tier in MONTHLY_PRICES}
        mrr = sum(count * MONTHLY_PRICES[tier] for tier, count in paid.items())

        metrics = {
            "users": {
                "total": int(len(users)),
                "active": int((users["status"] == "ACTIVE").sum()),
                "byRole": _counts(users["role"], ROLES),
                "newThisMonth": int((users[CREATED_AT] >= since).sum()),
            },
            "startups": {
                "total": int(len(startups)),
                "active": int((startups["status"] == "ACTIVE").sum()),
                "pendingReview": int((startups["status"] == "PENDING_REVIEW").sum()),
                "byStatus": _counts(startups["status"], STARTUP_STATUSES),
            },
            "applications": {
                "total": int(len(applications)),
                "thisMonth": int((applications[CREATED_AT] >= since).sum()),
                "byStatus": _counts(applications["status"], APPLICATION_STATUSES),
            },
            "revenue": {
                "mrr": int(mrr),
                "subscriptions": paid,
            },
        }
        logger.info(
            "Metrics: %d users, %d startups, %d applications, mrr=%d",
            metrics["users"]["total"],
            metrics["startups"]["total"],
            metrics["applications"]["total"],
            mrr,
        )
        return metrics

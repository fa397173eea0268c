"""
Shared front half of the alert pipeline: fetch, resolve, group.

collect_snapshot() issues the anomaly queries and the profile fetch
concurrently, tolerates partial failures, builds the company -> consultants
index, and groups the anomalies by consultant. The debug endpoint renders
the snapshot as JSON; the daily job continues with scoring and dispatch.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import partial
from typing import Any, Dict, List, Optional, Sequence

from tphub_alerts.core.config import Settings
from tphub_alerts.models import AlertCategory, ConsultantBundle, ConsultantProfile
from tphub_alerts.services.anomaly_source import (
    ANOMALY_FETCHERS,
    PROFILES_SOURCE,
    fetch_sources,
    fetch_staff_profiles,
)
from tphub_alerts.services.assignment import build_company_index, parse_profiles
from tphub_alerts.services.grouping import count_consultants, group_anomalies


logger = logging.getLogger(__name__)

# Summary key per category, e.g. 'order_anomalies'
SUMMARY_KEYS = {
    AlertCategory.ORDERS: 'order_anomalies',
    AlertCategory.REVIEWS: 'review_anomalies',
    AlertCategory.ADS: 'ads_anomalies',
    AlertCategory.PROMOS: 'promo_anomalies',
}


@dataclass
class AnomalySnapshot:
    """
    Everything known after the fetch and grouping stages of one run.

    Attributes:
        timestamp: UTC time the run started.
        threshold: Order anomaly threshold used.
        categories: Categories queried, in processing order.
        anomalies: Category value -> raw rows (empty when the fetch failed).
        profiles: Alert-receiving staff profiles.
        errors: [{'source', 'message'}] for every failed fetch.
        bundles: Consultant id (or '__unassigned__') -> ConsultantBundle.
    """
    timestamp: datetime
    threshold: float
    categories: List[AlertCategory]
    anomalies: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    profiles: List[ConsultantProfile] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)
    bundles: Dict[str, ConsultantBundle] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(len(rows) for rows in self.anomalies.values())

    @property
    def profiles_error(self) -> Optional[str]:
        for error in self.errors:
            if error['source'] == PROFILES_SOURCE:
                return error['message']
        return None

    def anomaly_errors(self) -> List[Dict[str, str]]:
        return [error for error in self.errors if error['source'] != PROFILES_SOURCE]

    def summary(self) -> Dict[str, int]:
        """Counts per category, total, and real consultants (unassigned excluded)."""
        summary = {
            SUMMARY_KEYS[category]: len(self.anomalies.get(category.value, []))
            for category in self.categories
        }
        summary['total'] = self.total
        summary['consultants'] = count_consultants(self.bundles)
        return summary

    def grouped(self) -> Dict[str, Dict[str, Any]]:
        return {key: bundle.to_dict() for key, bundle in self.bundles.items()}


async def collect_snapshot(
    settings: Settings,
    categories: Sequence[AlertCategory] = (
        AlertCategory.ORDERS,
        AlertCategory.REVIEWS,
        AlertCategory.ADS,
    ),
) -> AnomalySnapshot:
    """
    Fetch anomalies and profiles concurrently, then group by consultant.

    A failed fetch is treated as an empty result set and recorded in
    `errors`; the run always reaches the grouping stage.

    Args:
        settings: Application settings (RPC parameters).
        categories: Anomaly categories to query.

    Returns:
        AnomalySnapshot for the run.
    """
    categories = [AlertCategory(category) for category in categories]
    timestamp = datetime.now(timezone.utc)

    fetchers = {category.value: partial(ANOMALY_FETCHERS[category], settings) for category in categories}
    fetchers[PROFILES_SOURCE] = fetch_staff_profiles

    logger.info(
        f"Collecting anomalies for {[c.value for c in categories]} "
        f"with threshold={settings.alert_threshold}"
    )
    results = await fetch_sources(fetchers)

    errors = [
        {'source': name, 'message': result.error}
        for name, result in results.items()
        if result.error is not None
    ]

    anomalies = {category.value: results[category.value].data for category in categories}
    profiles = parse_profiles(results[PROFILES_SOURCE].data)

    index = build_company_index(profiles)
    bundles = group_anomalies(index, {category: anomalies[category.value] for category in categories})

    snapshot = AnomalySnapshot(
        timestamp=timestamp,
        threshold=settings.alert_threshold,
        categories=categories,
        anomalies=anomalies,
        profiles=profiles,
        errors=errors,
        bundles=bundles,
    )
    logger.info(
        f"Found {snapshot.total} anomalies "
        f"({', '.join(f'{k}={len(v)}' for k, v in anomalies.items())}); "
        f"grouped into {len(bundles)} bundles"
    )
    return snapshot

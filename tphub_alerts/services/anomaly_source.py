"""
Anomaly data source: Supabase RPCs and staff tables read through asyncpg.

The anomaly-detection logic lives in Postgres set-returning functions; this
module only calls them with the configured tuning parameters and normalizes
their rows. Each fetch acquires its own pooled connection, so fetch_sources()
can run them concurrently and let every one settle, successfully or not,
before the caller continues.

RPCs:
- get_daily_order_anomalies(p_threshold)
- get_daily_review_anomalies(p_min_reviews, p_rating_threshold, p_negative_spike_pct)
- get_daily_ads_anomalies(p_roas_threshold, p_spend_threshold, p_spend_deviation_pct)
- get_daily_promo_anomalies(p_promo_rate_threshold, p_promo_spike_pct, p_min_orders)

Tables:
- profiles: staff users and their assigned companies
- alert_preferences: per consultant x company alert configuration
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from tphub_alerts.core.config import Settings
from tphub_alerts.core.database import execute_query, record_to_dict
from tphub_alerts.models import AlertCategory, AlertPreference, StaffRole


logger = logging.getLogger(__name__)


# =============================================================================
# Queries
# =============================================================================

ORDER_ANOMALIES_QUERY = """
    SELECT * FROM get_daily_order_anomalies(p_threshold => $1)
"""

REVIEW_ANOMALIES_QUERY = """
    SELECT * FROM get_daily_review_anomalies(
        p_min_reviews => $1,
        p_rating_threshold => $2,
        p_negative_spike_pct => $3
    )
"""

ADS_ANOMALIES_QUERY = """
    SELECT * FROM get_daily_ads_anomalies(
        p_roas_threshold => $1,
        p_spend_threshold => $2,
        p_spend_deviation_pct => $3
    )
"""

PROMO_ANOMALIES_QUERY = """
    SELECT * FROM get_daily_promo_anomalies(
        p_promo_rate_threshold => $1,
        p_promo_spike_pct => $2,
        p_min_orders => $3
    )
"""

PROFILES_QUERY = """
    SELECT id, email, full_name, assigned_company_ids, role, slack_user_id
    FROM profiles
    WHERE role = ANY($1::text[])
"""

PREFERENCES_QUERY = """
    SELECT *
    FROM alert_preferences
    WHERE consultant_id::text = ANY($1::text[])
    ORDER BY created_at
"""

# Source name used for the profile fetch in error reports
PROFILES_SOURCE = 'profiles'
PREFERENCES_SOURCE = 'preferences'


# =============================================================================
# Result container
# =============================================================================

@dataclass
class SourceResult:
    """
    Settled outcome of one independent fetch.

    A failed fetch keeps `data` empty and carries the error message, so the
    caller can treat it as an empty result set and still report the failure.
    """
    source: str
    data: List[Any] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


# =============================================================================
# Individual fetches
# =============================================================================

async def fetch_order_anomalies(settings: Settings) -> List[Dict[str, Any]]:
    rows = await execute_query(ORDER_ANOMALIES_QUERY, settings.alert_threshold)
    return [record_to_dict(row) for row in rows]


async def fetch_review_anomalies(settings: Settings) -> List[Dict[str, Any]]:
    rows = await execute_query(
        REVIEW_ANOMALIES_QUERY,
        settings.review_min_reviews,
        settings.review_rating_threshold,
        settings.review_negative_spike_pct,
    )
    return [record_to_dict(row) for row in rows]


async def fetch_ads_anomalies(settings: Settings) -> List[Dict[str, Any]]:
    rows = await execute_query(
        ADS_ANOMALIES_QUERY,
        settings.ads_roas_threshold,
        settings.ads_spend_threshold,
        settings.ads_spend_deviation_pct,
    )
    return [record_to_dict(row) for row in rows]


async def fetch_promo_anomalies(settings: Settings) -> List[Dict[str, Any]]:
    rows = await execute_query(
        PROMO_ANOMALIES_QUERY,
        settings.promo_rate_threshold,
        settings.promo_spike_pct,
        settings.promo_min_orders,
    )
    return [record_to_dict(row) for row in rows]


ANOMALY_FETCHERS: Dict[AlertCategory, Callable[[Settings], Awaitable[List[Dict[str, Any]]]]] = {
    AlertCategory.ORDERS: fetch_order_anomalies,
    AlertCategory.REVIEWS: fetch_review_anomalies,
    AlertCategory.ADS: fetch_ads_anomalies,
    AlertCategory.PROMOS: fetch_promo_anomalies,
}


async def fetch_staff_profiles() -> List[Dict[str, Any]]:
    """Fetch every profile whose role can receive alerts."""
    roles = [role.value for role in StaffRole]
    rows = await execute_query(PROFILES_QUERY, roles)
    return [record_to_dict(row) for row in rows]


async def fetch_alert_preferences(
    consultant_ids: Iterable[str],
) -> Dict[Tuple[str, str], AlertPreference]:
    """
    Load stored alert preferences for the given consultants.

    Args:
        consultant_ids: Profile ids of the consultants involved in a run.

    Returns:
        Dict keyed by (consultant_id, company_id). Pairs without a row are
        absent; callers fall back to the default preference.
    """
    ids = [str(consultant_id) for consultant_id in consultant_ids]
    if not ids:
        return {}

    rows = await execute_query(PREFERENCES_QUERY, ids)

    preferences: Dict[Tuple[str, str], AlertPreference] = {}
    for row in rows:
        preference = AlertPreference.model_validate(record_to_dict(row))
        preferences[(str(preference.consultant_id), str(preference.company_id))] = preference
    return preferences


# =============================================================================
# Concurrent fan-out
# =============================================================================

def _error_message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


async def fetch_sources(
    fetchers: Mapping[str, Callable[[], Awaitable[List[Any]]]],
) -> Dict[str, SourceResult]:
    """
    Run independent fetches concurrently and wait for all of them to settle.

    A failure in one fetch neither cancels nor hides the others: it is
    converted into a SourceResult with empty data and the error message.

    Args:
        fetchers: Source name -> zero-argument coroutine factory.

    Returns:
        Source name -> SourceResult, in the order of `fetchers`.

    Raises:
        asyncio.CancelledError: If the surrounding task is cancelled.
    """
    names = list(fetchers)
    outcomes = await asyncio.gather(
        *(fetchers[name]() for name in names),
        return_exceptions=True,
    )

    results: Dict[str, SourceResult] = {}
    for name, outcome in zip(names, outcomes):
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            message = _error_message(outcome)
            logger.warning(f"Fetch '{name}' failed: {message}")
            results[name] = SourceResult(source=name, error=message)
        else:
            results[name] = SourceResult(source=name, data=list(outcome or []))
    return results

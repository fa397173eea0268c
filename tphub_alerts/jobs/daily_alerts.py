"""
Daily anomaly alert job for TPHub.

Runs the full pipeline for the previous day and notifies each consultant
about the companies they follow:

1. Fetch order, review, ads and promo anomalies plus staff profiles
   concurrently (a failed source counts as empty and is reported)
2. Abort with AllSourcesFailedError when every anomaly source failed
3. Post a warning to Slack listing partial failures
4. Post an "all clear" message when there is nothing to report
5. Group anomalies by consultant, load their alert preferences
6. Score each consultant's companies with real anomaly magnitudes
7. Deliver one message per consultant on every enabled channel

Delivery is sequential and isolated: a failed delivery for one consultant
is recorded and the loop moves on to the next. Nothing is retried.

Messages are rendered from templates only; the LLM-written summaries the
dashboard once generated for this run are not produced here.

Environment Requirements:
- DATABASE_URL: Supabase Postgres (anomaly RPCs, profiles, preferences)
- SLACK_WEBHOOK_URL: optional, Slack incoming webhook
- RESEND_API_KEY: optional, enables email delivery

Usage:
    result = await run_daily_alerts(get_settings())
    print(result['summary'])
"""

import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Tuple

from tphub_alerts.core.config import Settings
from tphub_alerts.models import (
    AlertCategory,
    AlertChannel,
    AlertPreference,
    CompanyAlert,
    ConsultantBundle,
    DispatchResult,
    Thresholds,
)
from tphub_alerts.services.anomaly_source import PREFERENCES_SOURCE, fetch_alert_preferences
from tphub_alerts.services.dispatch import send_email, send_slack
from tphub_alerts.services.formatting import (
    email_subject,
    get_date_label,
    render_alert_email_html,
    render_all_clear_message,
    render_slack_alert_message,
    render_source_errors_message,
)
from tphub_alerts.services.grouping import UNASSIGNED_KEY
from tphub_alerts.services.pipeline import collect_snapshot
from tphub_alerts.services.scoring import build_bundle_alerts


logger = logging.getLogger(__name__)

DAILY_CATEGORIES = (
    AlertCategory.ORDERS,
    AlertCategory.REVIEWS,
    AlertCategory.ADS,
    AlertCategory.PROMOS,
)


class AllSourcesFailedError(Exception):
    """Every anomaly query failed; there is nothing trustworthy to report."""

    def __init__(self, errors: List[Dict[str, str]]) -> None:
        super().__init__('All anomaly queries failed')
        self.errors = errors


# =============================================================================
# Helpers
# =============================================================================

def thresholds_from_settings(settings: Settings) -> Thresholds:
    return Thresholds(
        orders=settings.alert_threshold,
        reviews=settings.review_rating_threshold,
        ads_roas=settings.ads_roas_threshold,
        promos=settings.promo_rate_threshold,
        review_negative_spike=settings.review_negative_spike_pct,
        ads_spend_deviation=settings.ads_spend_deviation_pct,
        promo_spike=settings.promo_spike_pct,
    )


def _post_notice(settings: Settings, text: str) -> None:
    """Best-effort run-level Slack notice; failures are only logged."""
    if not settings.slack_webhook_url:
        logger.info("SLACK_WEBHOOK_URL not configured, skipping notice")
        return
    try:
        result = send_slack(settings.slack_webhook_url, text)
    except Exception as e:
        logger.error(f"Failed to post Slack notice: {e}")
        return
    if not result.ok:
        logger.error(f"Slack notice rejected with status {result.status}")


def _channels_for(
    key: str,
    bundle: ConsultantBundle,
    companies: List[CompanyAlert],
    preferences: Mapping[str, AlertPreference],
    settings: Settings,
) -> List[AlertChannel]:
    """
    Channels a consultant receives today's message on.

    A channel is used when at least one of the alerted companies enables it
    (the default preference enables Slack only). The unassigned bucket is
    posted to Slack. Unconfigured providers are never selected.
    """
    if key == UNASSIGNED_KEY:
        return [AlertChannel.SLACK] if settings.slack_webhook_url else []

    prefs = [
        preferences.get(company.company_id) or AlertPreference(company_id=company.company_id)
        for company in companies
    ]
    channels = []
    if any(pref.channel_enabled(AlertChannel.SLACK) for pref in prefs) and settings.slack_webhook_url:
        channels.append(AlertChannel.SLACK)
    if any(pref.channel_enabled(AlertChannel.EMAIL) for pref in prefs) and bundle.email and settings.resend_api_key:
        channels.append(AlertChannel.EMAIL)
    return channels


async def _deliver(
    key: str,
    channel: AlertChannel,
    bundle: ConsultantBundle,
    companies: List[CompanyAlert],
    date_label: str,
    settings: Settings,
) -> DispatchResult:
    if channel == AlertChannel.SLACK:
        text = render_slack_alert_message(
            bundle.consultant,
            date_label,
            companies,
            slack_user_id=bundle.slack_user_id,
            app_url=settings.app_url,
            unassigned=key == UNASSIGNED_KEY,
        )
        return send_slack(settings.slack_webhook_url, text)

    html = render_alert_email_html(bundle.consultant, date_label, companies, settings.app_url)
    return await send_email(
        settings.resend_api_key,
        settings.alert_email_from,
        bundle.email,
        email_subject(companies),
        html,
    )


async def _load_preferences(
    consultant_ids: List[str],
    errors: List[Dict[str, str]],
) -> Dict[Tuple[str, str], AlertPreference]:
    try:
        return await fetch_alert_preferences(consultant_ids)
    except Exception as e:
        message = str(e) or e.__class__.__name__
        logger.warning(f"Alert preferences unavailable, using defaults: {message}")
        errors.append({'source': PREFERENCES_SOURCE, 'message': message})
        return {}


# =============================================================================
# Main Entry Point
# =============================================================================

async def run_daily_alerts(settings: Settings, run_date: Optional[date] = None) -> Dict[str, Any]:
    """
    Run the daily alert pipeline and deliver per-consultant messages.

    Args:
        settings: Application settings; DATABASE_URL must be configured.
            Slack and email deliveries are skipped when unconfigured.
        run_date: Date of the run (default: today). Messages describe the
            previous day.

    Returns:
        Dict with:
        - message: 'Alerts sent' or 'No anomalies'
        - date_label: Label of the day reported on
        - summary: per-category counts, total, consultants
        - deliveries: one entry per consultant x channel attempt
        - errors: failed sources (only when non-empty)

    Raises:
        AllSourcesFailedError: When every anomaly query failed.
    """
    date_label = get_date_label(run_date, include_year=True)
    logger.info(f"Daily alerts run for {date_label}")

    snapshot = await collect_snapshot(settings, DAILY_CATEGORIES)
    errors = list(snapshot.errors)

    anomaly_errors = snapshot.anomaly_errors()
    if len(anomaly_errors) == len(DAILY_CATEGORIES):
        logger.error(f"All anomaly queries failed: {anomaly_errors}")
        _post_notice(settings, render_source_errors_message(anomaly_errors))
        raise AllSourcesFailedError(errors)

    if errors:
        _post_notice(settings, render_source_errors_message(errors))

    summary = snapshot.summary()
    result: Dict[str, Any] = {
        'date_label': date_label,
        'summary': summary,
        'deliveries': [],
    }

    if snapshot.total == 0:
        logger.info("No anomalies found, sending all-clear message")
        _post_notice(settings, render_all_clear_message(date_label))
        result.update({'message': 'No anomalies', 'count': 0})
        if errors:
            result['errors'] = errors
        return result

    consultant_ids = [key for key in snapshot.bundles if key != UNASSIGNED_KEY]
    stored = await _load_preferences(consultant_ids, errors)

    thresholds = thresholds_from_settings(settings)
    deliveries: List[Dict[str, Any]] = []

    for key, bundle in snapshot.bundles.items():
        preferences = {
            company_id: pref
            for (consultant_id, company_id), pref in stored.items()
            if consultant_id == key
        }
        companies = build_bundle_alerts(bundle, thresholds, preferences)
        if not companies:
            logger.info(f"No breached thresholds for {key}, skipping")
            continue

        for channel in _channels_for(key, bundle, companies, preferences, settings):
            try:
                outcome = await _deliver(key, channel, bundle, companies, date_label, settings)
            except Exception as e:
                logger.error(f"Delivery to {key} via {channel.value} failed: {e}")
                outcome = DispatchResult(ok=False, channel=channel, message=str(e))

            deliveries.append({
                'consultant_id': key,
                'consultant': bundle.consultant,
                'channel': channel.value,
                'ok': outcome.ok,
                'status': outcome.status,
                'companies': len(companies),
            })

    failed = sum(1 for delivery in deliveries if not delivery['ok'])
    logger.info(f"Daily alerts done: {len(deliveries)} deliveries, {failed} failed")

    result.update({'message': 'Alerts sent', 'deliveries': deliveries})
    if errors:
        result['errors'] = errors
    return result

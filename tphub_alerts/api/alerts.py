"""
FastAPI router for the alert endpoints.

Implements:
- GET|POST /api/alerts/test: debug view of today's anomalies grouped by
  consultant. Nothing is dispatched.
- POST /api/alerts/send-test: sends a sample alert to the Slack channel so
  staff can check the integration from the dashboard.
- POST /api/alerts/daily: production run; scores and delivers one message
  per consultant.

Authentication:
- /test and /daily: 'Authorization: Bearer <CRON_SECRET>' (scheduler)
- /send-test: Supabase session token of an organization staff user

Request flow is method -> auth -> configuration -> body -> work; each
stage answers with its own status before the next one runs.

Response Contract (/test):
    {
        timestamp, threshold, errors?, profiles_error?,
        summary: {order_anomalies, review_anomalies, ads_anomalies, total, consultants},
        raw: {orders, reviews, ads},
        grouped: {<consultantId>: {consultant, email, slackUserId, orders, reviews, ads}}
    }
"""

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from tphub_alerts.core.config import Settings
from tphub_alerts.core.dependencies import CronAuthDep, SettingsDep, StaffUserDep
from tphub_alerts.jobs.daily_alerts import AllSourcesFailedError, run_daily_alerts
from tphub_alerts.models import AlertChannel, SendTestRequest, Thresholds
from tphub_alerts.services.dispatch import send_test_alert
from tphub_alerts.services.formatting import get_date_label, render_slack_alert_message
from tphub_alerts.services.pipeline import collect_snapshot
from tphub_alerts.services.scoring import build_preview_alerts


# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


# Companies shown in the send-test sample message (simulation mode)
SAMPLE_COMPANIES = (
    'Il Capriccio Napoletano | Gran Via (Glovo)',
    'Compa | Malasana (UberEats)',
    'La Tagliatella | Chamberi (Just Eat)',
)


def _require_database(settings: Settings) -> None:
    if not settings.database_url:
        logger.error("DATABASE_URL is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='Missing Supabase configuration',
        )


async def _parse_send_test_body(request: Request) -> SendTestRequest:
    """
    Parse the send-test body after auth and config checks have passed.

    An empty body means all defaults. Anything that is not a JSON object
    with known fields is rejected.
    """
    raw = await request.body()
    try:
        payload = json.loads(raw) if raw.strip() else {}
        if not isinstance(payload, dict):
            raise ValueError('Body must be a JSON object')
        return SendTestRequest.model_validate(payload)
    except (ValueError, ValidationError) as e:
        logger.info(f"Rejected send-test body: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid request body')


# =============================================================================
# Endpoints
# =============================================================================

@router.api_route("/test", methods=["GET", "POST"])
async def alerts_debug(settings: SettingsDep, _: CronAuthDep) -> Dict[str, Any]:
    """
    Fetch today's order, review and ads anomalies and group them by consultant.

    Source failures do not fail the request: the failed source counts as
    empty and is listed under `errors` (profile failures also appear as
    `profiles_error`).

    Raises:
        HTTPException 401: Cron secret mismatch.
        HTTPException 500: Database not configured.
    """
    _require_database(settings)

    snapshot = await collect_snapshot(settings)

    response: Dict[str, Any] = {
        'timestamp': snapshot.timestamp.isoformat(),
        'threshold': snapshot.threshold,
    }
    if snapshot.errors:
        response['errors'] = snapshot.errors
    if snapshot.profiles_error:
        response['profiles_error'] = snapshot.profiles_error

    response['summary'] = snapshot.summary()
    response['raw'] = {category.value: snapshot.anomalies[category.value] for category in snapshot.categories}
    response['grouped'] = snapshot.grouped()
    return response


@router.post("/send-test")
async def send_test(request: Request, settings: SettingsDep, user: StaffUserDep) -> Dict[str, Any]:
    """
    Send a sample alert so a staff user can check the Slack integration.

    Body: {"channel": "slack" | "email", "consultantName": str}, both optional.

    Raises:
        HTTPException 400: Malformed body.
        HTTPException 401/403: See require_staff_user.
        HTTPException 500: SLACK_WEBHOOK_URL not configured.
        HTTPException 502: Slack rejected the webhook call.
    """
    body = await _parse_send_test_body(request)

    if body.channel == AlertChannel.SLACK and not settings.slack_webhook_url:
        logger.error("SLACK_WEBHOOK_URL is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='SLACK_WEBHOOK_URL not configured',
        )

    thresholds = Thresholds(orders=settings.alert_threshold)
    companies = build_preview_alerts(SAMPLE_COMPANIES, thresholds)
    text = render_slack_alert_message(
        body.consultant_name,
        get_date_label(),
        companies,
        app_url=settings.app_url,
        test=True,
    )

    logger.info(f"Sending {body.channel.value} test alert requested by user {user.id}")
    result = send_test_alert(body.channel, settings.slack_webhook_url, text)
    if not result.ok:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail='Slack webhook failed')

    response: Dict[str, Any] = {'ok': True, 'channel': result.channel.value}
    if result.message:
        response['message'] = result.message
    return response


@router.post("/daily")
async def daily_alerts(settings: SettingsDep, _: CronAuthDep):
    """
    Run the production daily alert pipeline.

    Returns the job summary (see run_daily_alerts). When every anomaly
    query failed, answers 500 with the per-source errors.
    """
    _require_database(settings)

    try:
        return await run_daily_alerts(settings)
    except AllSourcesFailedError as e:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={'error': str(e), 'errors': e.errors},
        )

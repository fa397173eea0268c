"""
Dispatch layer: delivers rendered alerts to Slack and email.

- Slack: incoming webhook through slack_sdk's WebhookClient, payload {"text": ...}.
- Email: Resend REST API through httpx.

Both helpers return a DispatchResult instead of raising on a rejected
delivery. Any non-2xx answer is a failure; its body is kept for
diagnostics. Nothing is retried.
"""

import logging
from typing import Optional

import httpx
from slack_sdk.webhook import WebhookClient

from tphub_alerts.models import AlertChannel, DispatchResult


logger = logging.getLogger(__name__)

RESEND_API_URL = 'https://api.resend.com/emails'

EMAIL_NOT_IMPLEMENTED = 'Email test not implemented yet'


def _is_success(status: int) -> bool:
    return 200 <= status < 300


def send_slack(webhook_url: str, text: str) -> DispatchResult:
    """
    Post a text message to a Slack incoming webhook.

    Args:
        webhook_url: Incoming webhook URL.
        text: Slack mrkdwn message body.

    Returns:
        DispatchResult with the webhook status; body is set on failure.
        Status is 0 when the webhook could not be reached.
    """
    client = WebhookClient(webhook_url)
    try:
        response = client.send(text=text)
    except OSError as e:
        logger.error(f"Slack webhook unreachable: {e}")
        return DispatchResult(ok=False, channel=AlertChannel.SLACK, message=str(e))

    status = int(response.status_code)
    if _is_success(status):
        return DispatchResult(ok=True, channel=AlertChannel.SLACK, status=status)

    body = response.body if isinstance(response.body, str) else str(response.body)
    logger.error(f"Slack webhook failed: {status} {body}")
    return DispatchResult(ok=False, channel=AlertChannel.SLACK, status=status, body=body)


async def send_email(
    api_key: str,
    sender: str,
    to: str,
    subject: str,
    html: str,
    timeout: float = 10.0,
) -> DispatchResult:
    """
    Send an HTML email through the Resend API.

    Transport errors are logged and reported as a failed result with
    status 0.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(
                RESEND_API_URL,
                headers={'Authorization': f'Bearer {api_key}'},
                json={'from': sender, 'to': to, 'subject': subject, 'html': html},
            )
    except httpx.HTTPError as e:
        logger.error(f"Resend request failed: {e}")
        return DispatchResult(ok=False, channel=AlertChannel.EMAIL, message=str(e))

    if _is_success(response.status_code):
        return DispatchResult(ok=True, channel=AlertChannel.EMAIL, status=response.status_code)

    logger.error(f"Resend API error: {response.status_code} {response.text}")
    return DispatchResult(
        ok=False,
        channel=AlertChannel.EMAIL,
        status=response.status_code,
        body=response.text,
    )


def send_test_alert(channel: AlertChannel, webhook_url: Optional[str], text: str) -> DispatchResult:
    """
    Deliver a test alert on the requested channel.

    Email test sends are not wired yet: the result is success-shaped and
    carries an explicit "not implemented" message instead of pretending to
    send.
    """
    if channel == AlertChannel.EMAIL:
        return DispatchResult(ok=True, channel=AlertChannel.EMAIL, message=EMAIL_NOT_IMPLEMENTED)

    if not webhook_url:
        raise ValueError('A Slack webhook URL is required for Slack dispatch')
    return send_slack(webhook_url, text)

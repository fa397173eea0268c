"""
Scheduled jobs for TPHub Alerts.

- daily_alerts: previous-day anomaly alerts, one message per consultant

Triggered by the scheduler through POST /api/alerts/daily with the cron
secret as bearer token.
"""

from tphub_alerts.jobs.daily_alerts import AllSourcesFailedError, run_daily_alerts

__all__ = [
    'AllSourcesFailedError',
    'run_daily_alerts',
]

"""
Alert pipeline services.

- anomaly_source: Supabase RPC and table reads, concurrent partial-failure fetch
- assignment: company -> consultants index
- grouping: per-consultant anomaly bundles
- scoring: urgency score, severity, simulation and real-data observations
- formatting: Slack and email message bodies, date labels
- dispatch: Slack webhook and Resend email delivery
- pipeline: fetch + resolve + group, shared by the endpoints and the daily job
"""

from tphub_alerts.services.assignment import build_company_index, parse_profiles
from tphub_alerts.services.dispatch import send_email, send_slack, send_test_alert
from tphub_alerts.services.formatting import (
    get_date_label,
    get_first_name,
    render_alert_email_html,
    render_slack_alert_message,
)
from tphub_alerts.services.grouping import (
    UNASSIGNED_KEY,
    AnomalyGrouper,
    count_consultants,
    group_anomalies,
)
from tphub_alerts.services.pipeline import AnomalySnapshot, collect_snapshot
from tphub_alerts.services.scoring import (
    build_bundle_alerts,
    build_preview_alerts,
    compute_urgency_score,
    get_severity,
)

__all__ = [
    'build_company_index',
    'parse_profiles',
    'AnomalyGrouper',
    'group_anomalies',
    'count_consultants',
    'UNASSIGNED_KEY',
    'compute_urgency_score',
    'get_severity',
    'build_preview_alerts',
    'build_bundle_alerts',
    'get_date_label',
    'get_first_name',
    'render_slack_alert_message',
    'render_alert_email_html',
    'send_slack',
    'send_email',
    'send_test_alert',
    'AnomalySnapshot',
    'collect_snapshot',
]

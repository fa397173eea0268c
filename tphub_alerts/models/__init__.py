"""
Package initialization file for TPHub Alerts models.

Re-exports enumerations and schemas so other modules can import them from
tphub_alerts.models directly.

Usage:
    from tphub_alerts.models import AlertCategory, CompanyAlert, ConsultantProfile
"""

from tphub_alerts.models.enums import (
    AlertCategory,
    AlertChannel,
    ObservationMode,
    Severity,
    StaffRole,
)
from tphub_alerts.models.schemas import (
    ALERT_DEFAULTS,
    ANOMALY_MODELS,
    AdsAnomaly,
    AlertPreference,
    AnomalyBase,
    CompanyAlert,
    ConsultantBundle,
    ConsultantProfile,
    Deviation,
    DispatchResult,
    OrderAnomaly,
    PromoAnomaly,
    ReviewAnomaly,
    SendTestRequest,
    SessionUser,
    Thresholds,
)

__all__ = [
    # Enums
    'AlertCategory',
    'AlertChannel',
    'ObservationMode',
    'Severity',
    'StaffRole',
    # Anomaly rows
    'ANOMALY_MODELS',
    'AnomalyBase',
    'OrderAnomaly',
    'ReviewAnomaly',
    'AdsAnomaly',
    'PromoAnomaly',
    # Profiles and preferences
    'ALERT_DEFAULTS',
    'ConsultantProfile',
    'AlertPreference',
    # Scoring and grouping
    'Thresholds',
    'Deviation',
    'CompanyAlert',
    'ConsultantBundle',
    # Requests and results
    'SendTestRequest',
    'SessionUser',
    'DispatchResult',
]

"""
Pydantic schemas and plain data containers for the TPHub Alerts backend.

Sections:
- Anomaly rows returned by the Supabase RPCs (orders, reviews, ads, promos)
- Staff profiles and per-company alert preferences
- Scoring output (Thresholds, Deviation, CompanyAlert)
- Grouping output (ConsultantBundle)
- Request bodies and dispatch results

Anomaly rows carry many provider-specific columns; the models declare the
ones the pipeline reads and keep the rest (extra='allow') so raw payloads
survive validation untouched.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tphub_alerts.models.enums import AlertCategory, AlertChannel


# =============================================================================
# Anomaly rows
# =============================================================================

class AnomalyBase(BaseModel):
    """Columns shared by every anomaly RPC row."""

    model_config = ConfigDict(extra='allow', frozen=True)

    company_id: str
    company_name: Optional[str] = None
    key_account_manager: Optional[str] = None
    store_name: Optional[str] = None
    address_name: Optional[str] = None
    channel: Optional[str] = None
    weeks_with_data: Optional[int] = None

    @field_validator('company_id', mode='before')
    @classmethod
    def _company_id_as_text(cls, value: Any) -> Any:
        if value is None:
            return value
        return str(value)

    @property
    def display_name(self) -> str:
        """Company name used in messages, falling back to the id."""
        return self.company_name or self.company_id


class OrderAnomaly(AnomalyBase):
    """Row of get_daily_order_anomalies: yesterday's orders vs. weekday baseline."""

    yesterday_orders: Optional[float] = None
    yesterday_revenue: Optional[float] = None
    avg_orders_baseline: Optional[float] = None
    avg_revenue_baseline: Optional[float] = None
    orders_deviation_pct: Optional[float] = None
    revenue_deviation_pct: Optional[float] = None


class ReviewAnomaly(AnomalyBase):
    """Row of get_daily_review_anomalies: rating drop or negative-review spike."""

    anomaly_type: Optional[str] = None
    yesterday_reviews: Optional[int] = None
    yesterday_avg_rating: Optional[float] = None
    yesterday_negative_count: Optional[int] = None
    baseline_avg_rating: Optional[float] = None
    baseline_avg_negative_count: Optional[float] = None
    rating_deviation_pct: Optional[float] = None
    negative_spike_pct: Optional[float] = None


class AdsAnomaly(AnomalyBase):
    """Row of get_daily_ads_anomalies: ROAS below floor or spend deviation."""

    anomaly_type: Optional[str] = None
    yesterday_ad_spent: Optional[float] = None
    yesterday_ad_revenue: Optional[float] = None
    yesterday_roas: Optional[float] = None
    yesterday_impressions: Optional[int] = None
    yesterday_clicks: Optional[int] = None
    yesterday_ad_orders: Optional[int] = None
    baseline_avg_ad_spent: Optional[float] = None
    baseline_avg_roas: Optional[float] = None
    baseline_avg_impressions: Optional[float] = None
    roas_deviation_pct: Optional[float] = None
    spend_deviation_pct: Optional[float] = None
    impressions_deviation_pct: Optional[float] = None


class PromoAnomaly(AnomalyBase):
    """Row of get_daily_promo_anomalies: promo spend share above threshold or spiking."""

    anomaly_type: Optional[str] = None
    yesterday_orders: Optional[float] = None
    yesterday_revenue: Optional[float] = None
    yesterday_promos: Optional[float] = None
    yesterday_promo_rate: Optional[float] = None
    baseline_avg_promos: Optional[float] = None
    baseline_avg_promo_rate: Optional[float] = None
    promo_rate_deviation_pct: Optional[float] = None
    promo_spend_deviation_pct: Optional[float] = None


ANOMALY_MODELS = {
    AlertCategory.ORDERS: OrderAnomaly,
    AlertCategory.REVIEWS: ReviewAnomaly,
    AlertCategory.ADS: AdsAnomaly,
    AlertCategory.PROMOS: PromoAnomaly,
}


# =============================================================================
# Staff profiles and preferences
# =============================================================================

class ConsultantProfile(BaseModel):
    """
    Snapshot of a `profiles` row with an alert-receiving role.

    `assigned_company_ids` of None or [] means the profile is assigned to no
    company (not to every company).
    """

    model_config = ConfigDict(extra='ignore')

    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: str
    assigned_company_ids: Optional[List[str]] = None
    slack_user_id: Optional[str] = None


# Applied when a consultant has no stored row for a company
ALERT_DEFAULTS: Dict[str, Any] = {
    'orders_enabled': True,
    'reviews_enabled': True,
    'ads_enabled': True,
    'promos_enabled': True,
    'slack_enabled': True,
    'email_enabled': False,
    'orders_threshold': -20,
    'reviews_threshold': 3.5,
    'ads_roas_threshold': 3.0,
    'promos_threshold': 15,
}


class AlertPreference(BaseModel):
    """
    Per consultant x company alert configuration (`alert_preferences` row).

    Threshold overrides are None when the consultant uses the global value.
    """

    model_config = ConfigDict(extra='ignore')

    consultant_id: Optional[str] = None
    company_id: Optional[str] = None
    orders_enabled: bool = True
    reviews_enabled: bool = True
    ads_enabled: bool = True
    promos_enabled: bool = True
    slack_enabled: bool = True
    email_enabled: bool = False
    orders_threshold: Optional[float] = None
    reviews_threshold: Optional[float] = None
    ads_roas_threshold: Optional[float] = None
    promos_threshold: Optional[float] = None

    def is_enabled(self, category: AlertCategory) -> bool:
        return getattr(self, f'{category.value}_enabled')

    def threshold_override(self, category: AlertCategory) -> Optional[float]:
        if category == AlertCategory.ADS:
            return self.ads_roas_threshold
        return getattr(self, f'{category.value}_threshold')

    def channel_enabled(self, channel: AlertChannel) -> bool:
        return getattr(self, f'{channel.value}_enabled')

    @property
    def is_tracking(self) -> bool:
        return any(self.is_enabled(category) for category in AlertCategory)


# =============================================================================
# Scoring output
# =============================================================================

class Thresholds(BaseModel):
    """Global thresholds, overridable per company through AlertPreference."""

    orders: float = ALERT_DEFAULTS['orders_threshold']
    reviews: float = ALERT_DEFAULTS['reviews_threshold']
    ads_roas: float = ALERT_DEFAULTS['ads_roas_threshold']
    promos: float = ALERT_DEFAULTS['promos_threshold']

    # Spike percentages vs. baseline; not overridable per company
    review_negative_spike: float = 50
    ads_spend_deviation: float = 50
    promo_spike: float = 50

    def for_category(self, category: AlertCategory) -> float:
        if category == AlertCategory.ADS:
            return self.ads_roas
        return getattr(self, category.value)

    def spike_for_category(self, category: AlertCategory) -> Optional[float]:
        return {
            AlertCategory.REVIEWS: self.review_negative_spike,
            AlertCategory.ADS: self.ads_spend_deviation,
            AlertCategory.PROMOS: self.promo_spike,
        }.get(category)


class Deviation(BaseModel):
    """One breached category, already formatted for display."""

    label: str
    value: str
    threshold: str
    deviation: str


class CompanyAlert(BaseModel):
    """Scored company ready to be rendered in an alert message."""

    name: str
    score: int = Field(ge=0)
    deviations: List[Deviation] = Field(default_factory=list)
    company_id: Optional[str] = None


# =============================================================================
# Grouping output
# =============================================================================

@dataclass
class ConsultantBundle:
    """
    Anomalies addressed to one recipient, split by category.

    Attributes:
        consultant: Display name of the recipient.
        email: Recipient email ('' for the unassigned bucket).
        slack_user_id: Slack member id used for mentions, if linked.
        anomalies: Category value -> anomaly rows, in arrival order.
    """
    consultant: str
    email: str
    slack_user_id: Optional[str]
    anomalies: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)

    def total(self) -> int:
        return sum(len(rows) for rows in self.anomalies.values())

    def to_dict(self) -> Dict[str, Any]:
        """JSON shape: {consultant, email, slackUserId, <category>: [...], ...}."""
        payload: Dict[str, Any] = {
            'consultant': self.consultant,
            'email': self.email,
            'slackUserId': self.slack_user_id,
        }
        for category, rows in self.anomalies.items():
            payload[category] = list(rows)
        return payload


# =============================================================================
# Requests and results
# =============================================================================

class SendTestRequest(BaseModel):
    """Body of POST /api/alerts/send-test. Unknown fields are rejected."""

    model_config = ConfigDict(extra='forbid', populate_by_name=True)

    channel: AlertChannel = AlertChannel.SLACK
    consultant_name: str = Field(default='Consultor', alias='consultantName', min_length=1)


class SessionUser(BaseModel):
    """User resolved from a validated session token."""

    id: str
    email: Optional[str] = None


@dataclass
class DispatchResult:
    """
    Outcome of one delivery attempt.

    status is the HTTP status returned by the provider, or 0 when the
    request never completed.
    """
    ok: bool
    channel: AlertChannel
    status: int = 0
    body: Optional[str] = None
    message: Optional[str] = None

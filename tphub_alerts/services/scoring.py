"""
Urgency scoring for company alerts.

compute_urgency_score() turns one company's per-category observations into
a 0-100 urgency score plus the formatted deviations of the breached
categories. It is shared by two observation modes:

- Simulation mode (SimulatedObservations): deterministic pseudo-values
  seeded by a hash of the company name and category. Used by the preview
  and test-send paths, where real magnitudes are not wired in.
- Real-data mode (AnomalyObservations): the magnitudes reported by the
  anomaly RPCs. Used by the daily run.

Both modes go through the same category rules, so they only differ in how
the observed value is obtained.

Category rules (contribution = min(|observed - threshold| * weight, cap)):

| Category | Breach when           | Weight | Cap |
|----------|-----------------------|--------|-----|
| orders   | observed < threshold  | 1.5    | 30  |
| reviews  | observed < threshold  | 8      | 25  |
| ads      | observed < threshold  | 10     | 25  |
| promos   | observed > threshold  | 2      | 20  |

Real-data mode also reads the spike columns the RPCs flag rows on, each
breached when the spike reaches its threshold (weight 0.1, same cap):

| Category | Spike column              | Threshold                   |
|----------|---------------------------|-----------------------------|
| reviews  | negative_spike_pct        | review_negative_spike (50%) |
| ads      | spend_deviation_pct       | ads_spend_deviation (50%)   |
| promos   | promo_spend_deviation_pct | promo_spike (50%)           |

A category adds its largest contribution once and one deviation line per
breached metric. Real-data comparisons include the threshold itself, as
the RPCs do; simulation keeps strict comparisons.

Severity ladder: score >= 60 CRITICO, 30 <= score < 60 URGENTE, else ATENCION.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from pydantic import ValidationError

from tphub_alerts.models import (
    ANOMALY_MODELS,
    AlertCategory,
    AlertPreference,
    AnomalyBase,
    CompanyAlert,
    ConsultantBundle,
    Deviation,
    ObservationMode,
    Severity,
    Thresholds,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Deterministic hash (simulation mode)
# =============================================================================

def hash_string(value: str) -> int:
    """
    djb2 hash with 32-bit signed wrap-around, returned as an absolute value.

    Characters are consumed as UTF-16 code units so the result is stable
    with the values shown in the dashboard preview.
    """
    h = 5381
    encoded = value.encode('utf-16-le')
    for i in range(0, len(encoded), 2):
        code_unit = encoded[i] | (encoded[i + 1] << 8)
        h = ((h << 5) + h + code_unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def seeded_random(seed: int) -> float:
    """Pseudo-random float in [0, 1) derived from an integer seed."""
    x = math.sin(seed * 9301 + 49297) * 10000
    return x - math.floor(x)


# Seed suffix per category
HASH_TAGS: Dict[AlertCategory, str] = {
    AlertCategory.ORDERS: 'orders',
    AlertCategory.REVIEWS: 'reviews',
    AlertCategory.ADS: 'adsRoas',
    AlertCategory.PROMOS: 'promos',
}


# =============================================================================
# Observation sources
# =============================================================================

class ObservationSource(Protocol):
    mode: ObservationMode

    def observe(self, category: AlertCategory, threshold: float) -> Optional[float]:
        """Observed value for the category, or None when there is nothing to score."""
        ...

    def observe_spike(self, category: AlertCategory) -> Optional[float]:
        """Observed spike percentage for the category, or None."""
        ...


class SimulatedObservations:
    """
    Deterministic pseudo-observations for one company.

    Every enabled category is simulated in breach of its threshold, with a
    magnitude derived from hash_string(company + tag).
    """

    mode = ObservationMode.SIMULATION

    def __init__(self, company_identifier: str) -> None:
        self.company_identifier = company_identifier

    def _random(self, category: AlertCategory) -> float:
        return seeded_random(hash_string(self.company_identifier + HASH_TAGS[category]))

    def observe(self, category: AlertCategory, threshold: float) -> Optional[float]:
        r = self._random(category)
        if category == AlertCategory.ORDERS:
            return -(abs(threshold) + math.floor(r * 20))
        if category == AlertCategory.REVIEWS:
            return threshold - (0.3 + r * 0.8)
        if category == AlertCategory.ADS:
            return threshold - (0.5 + r * 1.5)
        return threshold + (2 + math.floor(r * 10))

    def observe_spike(self, category: AlertCategory) -> Optional[float]:
        return None


def _numbers(rows: Iterable[AnomalyBase], column: str) -> List[float]:
    values = []
    for row in rows:
        value = getattr(row, column, None)
        if value is None:
            continue
        try:
            values.append(float(value))
        except (TypeError, ValueError):
            continue
    return values


class AnomalyObservations:
    """
    Observations taken from one company's anomaly rows.

    A company can have several rows per category (one per store, address
    and channel); the worst value is kept:

    - orders: lowest orders_deviation_pct
    - reviews: lowest yesterday_avg_rating
    - ads: lowest yesterday_roas
    - promos: highest yesterday_promo_rate
    - spikes: highest value of the category's spike column
    """

    mode = ObservationMode.REAL

    COLUMNS: Dict[AlertCategory, str] = {
        AlertCategory.ORDERS: 'orders_deviation_pct',
        AlertCategory.REVIEWS: 'yesterday_avg_rating',
        AlertCategory.ADS: 'yesterday_roas',
        AlertCategory.PROMOS: 'yesterday_promo_rate',
    }

    SPIKE_COLUMNS: Dict[AlertCategory, str] = {
        AlertCategory.REVIEWS: 'negative_spike_pct',
        AlertCategory.ADS: 'spend_deviation_pct',
        AlertCategory.PROMOS: 'promo_spend_deviation_pct',
    }

    def __init__(self, rows_by_category: Mapping[str, Sequence[AnomalyBase]]) -> None:
        self.rows_by_category = rows_by_category

    def _values(self, category: AlertCategory, column: str) -> List[float]:
        return _numbers(self.rows_by_category.get(category.value, []), column)

    def observe(self, category: AlertCategory, threshold: float) -> Optional[float]:
        values = self._values(category, self.COLUMNS[category])
        if not values:
            return None
        if category == AlertCategory.PROMOS:
            return max(values)
        return min(values)

    def observe_spike(self, category: AlertCategory) -> Optional[float]:
        column = self.SPIKE_COLUMNS.get(category)
        if column is None:
            return None
        values = self._values(category, column)
        return max(values) if values else None


# =============================================================================
# Category rules
# =============================================================================

def _num(value: float) -> str:
    """Render a number like the dashboard does: integers without decimals."""
    value = round(value, 1)
    if value == int(value):
        return str(int(value))
    return str(value)


def _fixed(value: float) -> str:
    return f"{value:.1f}"


@dataclass(frozen=True)
class CategoryRule:
    weight: float
    cap: float
    breach_above: bool
    format_deviation: Callable[[float, float], Deviation]

    def breached(self, observed: float, threshold: float, inclusive: bool = False) -> bool:
        if self.breach_above:
            return observed >= threshold if inclusive else observed > threshold
        return observed <= threshold if inclusive else observed < threshold

    def contribution(self, observed: float, threshold: float) -> float:
        return min(abs(observed - threshold) * self.weight, self.cap)


CATEGORY_RULES: Dict[AlertCategory, CategoryRule] = {
    AlertCategory.ORDERS: CategoryRule(
        weight=1.5,
        cap=30,
        breach_above=False,
        format_deviation=lambda actual, th: Deviation(
            label='Pedidos',
            value=f"{_num(actual)}%",
            threshold=f"{_num(th)}%",
            deviation=f"{_num(actual - th)}%",
        ),
    ),
    AlertCategory.REVIEWS: CategoryRule(
        weight=8,
        cap=25,
        breach_above=False,
        format_deviation=lambda actual, th: Deviation(
            label='Resenas',
            value=_fixed(actual),
            threshold=_fixed(th),
            deviation=f"-{_fixed(th - actual)}",
        ),
    ),
    AlertCategory.ADS: CategoryRule(
        weight=10,
        cap=25,
        breach_above=False,
        format_deviation=lambda actual, th: Deviation(
            label='Ads ROAS',
            value=f"{_fixed(actual)}x",
            threshold=f"{_fixed(th)}x",
            deviation=f"-{_fixed(th - actual)}x",
        ),
    ),
    AlertCategory.PROMOS: CategoryRule(
        weight=2,
        cap=20,
        breach_above=True,
        format_deviation=lambda actual, th: Deviation(
            label='Promos',
            value=f"{_num(actual)}%",
            threshold=f"{_num(th)}%",
            deviation=f"+{_num(actual - th)}%",
        ),
    ),
}


def _spike_rule(label: str, cap: float) -> CategoryRule:
    return CategoryRule(
        weight=0.1,
        cap=cap,
        breach_above=True,
        format_deviation=lambda actual, th: Deviation(
            label=label,
            value=f"+{_num(actual)}%",
            threshold=f"+{_num(th)}%",
            deviation=f"+{_num(actual - th)}%",
        ),
    )


SPIKE_RULES: Dict[AlertCategory, CategoryRule] = {
    AlertCategory.REVIEWS: _spike_rule('Resenas negativas', 25),
    AlertCategory.ADS: _spike_rule('Ads gasto', 25),
    AlertCategory.PROMOS: _spike_rule('Promos gasto', 20),
}


# =============================================================================
# Scoring
# =============================================================================

@dataclass
class UrgencyScore:
    score: int
    deviations: List[Deviation] = field(default_factory=list)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_urgency_score(
    thresholds: Thresholds,
    pref: AlertPreference,
    company_identifier: str,
    observations: Optional[ObservationSource] = None,
) -> UrgencyScore:
    """
    Score one company across orders, reviews, ads and promos.

    For each category: skip it when disabled in `pref`; resolve the
    effective threshold (the preference override wins over `thresholds`);
    obtain the observed value and spike; and, for each that crosses its
    threshold in the adverse direction, add a deviation entry. The
    category adds its largest capped contribution.

    Args:
        thresholds: Global thresholds.
        pref: The consultant's preference for this company.
        company_identifier: Company name; seeds the simulation.
        observations: Observation source. Defaults to simulation mode.

    Returns:
        UrgencyScore with the rounded total and deviations in category order.
    """
    source = observations if observations is not None else SimulatedObservations(company_identifier)
    inclusive = source.mode == ObservationMode.REAL

    total = 0.0
    deviations: List[Deviation] = []

    for category in AlertCategory:
        if not pref.is_enabled(category):
            continue

        override = pref.threshold_override(category)
        threshold = override if override is not None else thresholds.for_category(category)

        checks = [(CATEGORY_RULES[category], source.observe(category, threshold), threshold)]
        if category in SPIKE_RULES:
            checks.append((
                SPIKE_RULES[category],
                source.observe_spike(category),
                thresholds.spike_for_category(category),
            ))

        contributions = []
        for rule, observed, limit in checks:
            if observed is None or not rule.breached(observed, limit, inclusive):
                continue
            contributions.append(rule.contribution(observed, limit))
            deviations.append(rule.format_deviation(observed, limit))

        if contributions:
            total += max(contributions)

    return UrgencyScore(score=_round_half_up(total), deviations=deviations)


def get_severity(score: int) -> Severity:
    """Map an urgency score onto the three-tier ladder."""
    if score >= 60:
        return Severity.CRITICO
    if score >= 30:
        return Severity.URGENTE
    return Severity.ATENCION


def sort_by_score(alerts: Iterable[CompanyAlert]) -> List[CompanyAlert]:
    """Highest score first; ties keep their input order."""
    return sorted(alerts, key=lambda alert: alert.score, reverse=True)


# =============================================================================
# Company alert builders
# =============================================================================

def build_preview_alerts(
    company_names: Iterable[str],
    thresholds: Thresholds,
    pref: Optional[AlertPreference] = None,
) -> List[CompanyAlert]:
    """
    Simulation-mode alerts for a list of companies, sorted by score.

    Companies whose preference tracks nothing, or that end up without any
    deviation, are left out.
    """
    pref = pref or AlertPreference()
    alerts = []
    for name in company_names:
        if not pref.is_tracking:
            continue
        result = compute_urgency_score(thresholds, pref, name)
        if result.deviations:
            alerts.append(CompanyAlert(name=name, score=result.score, deviations=result.deviations))
    return sort_by_score(alerts)


def build_bundle_alerts(
    bundle: ConsultantBundle,
    thresholds: Thresholds,
    preferences: Optional[Mapping[str, AlertPreference]] = None,
) -> List[CompanyAlert]:
    """
    Real-data alerts for one consultant bundle, sorted by score.

    The bundle's rows are validated into their category's row model,
    regrouped by company (first-seen order), and each company is scored
    with AnomalyObservations under the consultant's preference for it, or
    the default preference when none is stored. Rows that fail validation
    (no company id, malformed columns) are logged with the error and skipped.

    Args:
        bundle: Output of the grouping engine for one recipient.
        thresholds: Global thresholds.
        preferences: Company id -> AlertPreference for this consultant.

    Returns:
        Companies with at least one deviation, highest score first.
    """
    preferences = preferences or {}

    companies: Dict[str, Dict[str, List[AnomalyBase]]] = {}
    names: Dict[str, str] = {}
    for category, rows in bundle.anomalies.items():
        row_model = ANOMALY_MODELS[AlertCategory(category)]
        for row in rows:
            try:
                anomaly = row_model.model_validate(row)
            except ValidationError as e:
                logger.warning(f"Skipping invalid {category} anomaly {row!r}: {e}")
                continue
            company_id = anomaly.company_id
            companies.setdefault(company_id, {}).setdefault(category, []).append(anomaly)
            if company_id not in names or names[company_id] == company_id:
                names[company_id] = anomaly.display_name

    alerts = []
    for company_id, rows_by_category in companies.items():
        pref = preferences.get(company_id) or AlertPreference(company_id=company_id)
        if not pref.is_tracking:
            continue
        result = compute_urgency_score(
            thresholds,
            pref,
            names[company_id],
            observations=AnomalyObservations(rows_by_category),
        )
        if result.deviations:
            alerts.append(
                CompanyAlert(
                    name=names[company_id],
                    score=result.score,
                    deviations=result.deviations,
                    company_id=company_id,
                )
            )
    return sort_by_score(alerts)

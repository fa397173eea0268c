"""
Anomaly grouping engine.

Fans every anomaly out to each consultant assigned to its company. An
anomaly whose company has no consultant lands once in the reserved
'__unassigned__' bundle. Nothing is dropped and nothing is deduplicated:
for each category the number of appended rows equals the sum over
anomalies of max(1, consultants matched).
"""

from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

from tphub_alerts.models import AlertCategory, ConsultantBundle, ConsultantProfile
from tphub_alerts.services.assignment import CompanyIndex


UNASSIGNED_KEY = '__unassigned__'
UNASSIGNED_NAME = 'Sin asignar'

DEFAULT_CATEGORIES = (AlertCategory.ORDERS, AlertCategory.REVIEWS, AlertCategory.ADS)


class AnomalyGrouper:
    """
    Accumulates anomalies into per-consultant bundles.

    Bundles are created lazily on first touch with an empty list for every
    category of the run.

    Example:
        grouper = AnomalyGrouper(index, DEFAULT_CATEGORIES)
        for row in order_rows:
            grouper.assign(row, AlertCategory.ORDERS)
        bundles = grouper.bundles
    """

    def __init__(
        self,
        company_index: CompanyIndex,
        categories: Sequence[AlertCategory] = DEFAULT_CATEGORIES,
    ) -> None:
        self.company_index = company_index
        self.categories = [AlertCategory(category) for category in categories]
        self.bundles: Dict[str, ConsultantBundle] = {}

    def _empty_lists(self) -> Dict[str, list]:
        return {category.value: [] for category in self.categories}

    def _bundle_for(self, profile: ConsultantProfile) -> ConsultantBundle:
        bundle = self.bundles.get(profile.id)
        if bundle is None:
            bundle = ConsultantBundle(
                consultant=profile.full_name or '',
                email=profile.email or '',
                slack_user_id=profile.slack_user_id,
                anomalies=self._empty_lists(),
            )
            self.bundles[profile.id] = bundle
        return bundle

    def _unassigned_bundle(self) -> ConsultantBundle:
        bundle = self.bundles.get(UNASSIGNED_KEY)
        if bundle is None:
            bundle = ConsultantBundle(
                consultant=UNASSIGNED_NAME,
                email='',
                slack_user_id=None,
                anomalies=self._empty_lists(),
            )
            self.bundles[UNASSIGNED_KEY] = bundle
        return bundle

    def assign(self, anomaly: Mapping[str, Any], category: AlertCategory) -> None:
        """Append one anomaly to every bundle it belongs to."""
        category = AlertCategory(category)
        if category not in self.categories:
            raise ValueError(f"Category '{category.value}' is not part of this run")

        company_id: Optional[Any] = anomaly.get('company_id')
        consultants = self.company_index.get(str(company_id)) if company_id is not None else None

        if consultants:
            for profile in consultants:
                self._bundle_for(profile).anomalies[category.value].append(anomaly)
        else:
            self._unassigned_bundle().anomalies[category.value].append(anomaly)


def group_anomalies(
    company_index: CompanyIndex,
    anomalies: Mapping[AlertCategory, Iterable[Mapping[str, Any]]],
) -> Dict[str, ConsultantBundle]:
    """
    Group anomaly rows by consultant.

    Categories are processed in AlertCategory declaration order (orders,
    reviews, ads, promos), which only affects bundle creation order.

    Args:
        company_index: Output of build_company_index().
        anomalies: Category -> anomaly rows. Only the categories present are
            grouped, and only they appear in the bundles.

    Returns:
        Consultant id (or '__unassigned__') -> ConsultantBundle.
    """
    categories = [category for category in AlertCategory if category in anomalies]
    grouper = AnomalyGrouper(company_index, categories)
    for category in categories:
        for anomaly in anomalies[category]:
            grouper.assign(anomaly, category)
    return grouper.bundles


def count_consultants(bundles: Mapping[str, ConsultantBundle]) -> int:
    """Number of real recipients, excluding the unassigned bucket."""
    return sum(1 for key in bundles if key != UNASSIGNED_KEY)

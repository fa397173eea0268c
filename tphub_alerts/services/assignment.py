"""
Consultant assignment resolver.

Turns the staff profile snapshot into a company -> consultants index. The
index is rebuilt on every run and never cached.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Union

from pydantic import ValidationError

from tphub_alerts.models import ConsultantProfile, StaffRole


logger = logging.getLogger(__name__)

ALERT_ROLES = frozenset(role.value for role in StaffRole)

CompanyIndex = Dict[str, List[ConsultantProfile]]


def parse_profiles(
    rows: Iterable[Union[ConsultantProfile, Mapping[str, Any]]],
) -> List[ConsultantProfile]:
    """
    Validate profile rows, silently skipping malformed ones.

    Rows whose role cannot receive alerts are dropped as well.
    """
    profiles: List[ConsultantProfile] = []
    for row in rows:
        if isinstance(row, ConsultantProfile):
            profile = row
        else:
            try:
                profile = ConsultantProfile.model_validate(dict(row))
            except ValidationError:
                logger.debug(f"Skipping malformed profile row: {row.get('id')!r}")
                continue
        if profile.role in ALERT_ROLES:
            profiles.append(profile)
    return profiles


def build_company_index(
    profiles: Iterable[Union[ConsultantProfile, Mapping[str, Any]]],
) -> CompanyIndex:
    """
    Build the company -> consultants index.

    Each profile is inserted once per company id it lists, so a profile can
    appear under several companies. Profiles with a null or empty
    assignment list contribute nothing. Insertion order follows the
    profile scan order.

    Args:
        profiles: Profile rows or parsed ConsultantProfile objects.

    Returns:
        Dict mapping company id to the ordered list of assigned profiles.
    """
    index: CompanyIndex = {}
    for profile in parse_profiles(profiles):
        if not profile.assigned_company_ids:
            continue
        for company_id in profile.assigned_company_ids:
            index.setdefault(str(company_id), []).append(profile)
    return index

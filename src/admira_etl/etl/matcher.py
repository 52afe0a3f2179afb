"""UTM matching of ad records to CRM opportunities.

Match tiers (first non-empty tier wins):
- EXACT: (campaign, source, medium)
- CAMPAIGN: (campaign, "", "")
- SOURCE: ("", source, "")
- NONE: no opportunities

A lower tier can return opportunities whose real source/medium differ from
the ad's. That is accepted in exchange for recall; there is no scoring.
"""
import logging
from collections import defaultdict
from typing import Iterable

from ..schemas.records import AdRecord, Opportunity, UTMKey, normalize_utm


logger = logging.getLogger(__name__)


MatchIndex = dict[UTMKey, list[Opportunity]]

MATCH_EXACT = "EXACT"
MATCH_CAMPAIGN = "CAMPAIGN"
MATCH_SOURCE = "SOURCE"
MATCH_NONE = "NONE"


def build_index(opportunities: Iterable[Opportunity]) -> MatchIndex:
    """Group opportunities by normalized UTM triple.

    Args:
        opportunities: CRM opportunities

    Returns:
        dict of UTMKey -> opportunities sharing that key (input order kept)
    """
    index: defaultdict[UTMKey, list[Opportunity]] = defaultdict(list)
    for opportunity in opportunities:
        index[opportunity.utm_key].append(opportunity)
    return dict(index)


def lookup_keys(ad: AdRecord) -> list[tuple[str, UTMKey]]:
    """Keys tried for an ad, in tier order."""
    campaign = normalize_utm(ad.utm_campaign)
    source = normalize_utm(ad.utm_source)
    medium = normalize_utm(ad.utm_medium)
    return [
        (MATCH_EXACT, UTMKey(campaign, source, medium)),
        (MATCH_CAMPAIGN, UTMKey(campaign, "", "")),
        (MATCH_SOURCE, UTMKey("", source, "")),
    ]


def resolve_with_tier(ad: AdRecord, index: MatchIndex) -> tuple[list[Opportunity], str]:
    """Resolve an ad to opportunities and report the tier that matched."""
    for tier, key in lookup_keys(ad):
        matches = index.get(key)
        if matches:
            return list(matches), tier
    return [], MATCH_NONE


def resolve(ad: AdRecord, index: MatchIndex) -> list[Opportunity]:
    """Resolve an ad to zero or more opportunities. Never raises."""
    matches, _ = resolve_with_tier(ad, index)
    return matches

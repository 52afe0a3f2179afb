"""Funnel and efficiency metrics for one ad record.

Leads are not observed data: they are estimated as a fixed share of clicks
(``lead_conversion_rate``, default 10%). Every ratio resolves a zero
denominator to 0.0.
"""
import math
from dataclasses import dataclass
from typing import Iterable

from ..config import DEFAULT_LEAD_CONVERSION_RATE
from ..schemas.records import AdRecord, Opportunity


@dataclass(frozen=True)
class Ratios:
    """Derived ratios, always recomputed from base counters."""

    cpc: float
    cpa: float
    cvr_lead_to_opp: float
    cvr_opp_to_won: float
    roas: float


@dataclass(frozen=True)
class Metrics:
    """Counters and ratios computed for one ad record."""

    leads: int
    opportunities: int
    closed_won: int
    revenue: float
    cpc: float
    cpa: float
    cvr_lead_to_opp: float
    cvr_opp_to_won: float
    roas: float


def safe_div(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    return numerator / denominator


def derive_ratios(
    clicks: int,
    cost: float,
    leads: int,
    opportunities: int,
    closed_won: int,
    revenue: float,
) -> Ratios:
    """Compute cpc/cpa/cvr/roas from base counters."""
    return Ratios(
        cpc=safe_div(cost, clicks),
        cpa=safe_div(cost, leads),
        cvr_lead_to_opp=safe_div(opportunities, leads),
        cvr_opp_to_won=safe_div(closed_won, opportunities),
        roas=safe_div(revenue, cost),
    )


def estimate_leads(clicks: int, lead_conversion_rate: float) -> int:
    return math.floor(clicks * lead_conversion_rate)


def compute(
    ad: AdRecord,
    opportunities: Iterable[Opportunity],
    lead_conversion_rate: float = DEFAULT_LEAD_CONVERSION_RATE,
) -> Metrics:
    """Compute metrics for an ad and its matched opportunities.

    Args:
        ad: Ad performance record
        opportunities: Opportunities matched to the ad
        lead_conversion_rate: Share of clicks assumed to become leads

    Returns:
        Metrics with guarded ratios
    """
    opportunity_count = 0
    closed_won = 0
    revenue = 0.0

    for opportunity in opportunities:
        opportunity_count += 1
        if opportunity.is_closed_won:
            closed_won += 1
            revenue += opportunity.amount

    leads = estimate_leads(ad.clicks, lead_conversion_rate)
    ratios = derive_ratios(
        clicks=ad.clicks,
        cost=ad.cost,
        leads=leads,
        opportunities=opportunity_count,
        closed_won=closed_won,
        revenue=revenue,
    )

    return Metrics(
        leads=leads,
        opportunities=opportunity_count,
        closed_won=closed_won,
        revenue=revenue,
        cpc=ratios.cpc,
        cpa=ratios.cpa,
        cvr_lead_to_opp=ratios.cvr_lead_to_opp,
        cvr_opp_to_won=ratios.cvr_opp_to_won,
        roas=ratios.roas,
    )

"""Re-aggregate stored records per (channel, campaign_id) for export.

Base counters are summed; ratios are recomputed from the sums rather than
averaged across records.
"""
from typing import Iterable

from ..schemas.records import TransformedRecord
from .metrics import derive_ratios


GroupKey = tuple[str, str]


def _with_ratios(record: TransformedRecord) -> TransformedRecord:
    ratios = derive_ratios(
        clicks=record.clicks,
        cost=record.cost,
        leads=record.leads,
        opportunities=record.opportunities,
        closed_won=record.closed_won,
        revenue=record.revenue,
    )
    return record.model_copy(
        update={
            "cpc": ratios.cpc,
            "cpa": ratios.cpa,
            "cvr_lead_to_opp": ratios.cvr_lead_to_opp,
            "cvr_opp_to_won": ratios.cvr_opp_to_won,
            "roas": ratios.roas,
        }
    )


def merge(bucket: TransformedRecord, record: TransformedRecord) -> TransformedRecord:
    """Fold one record into an existing bucket, returning a new record.

    The bucket keeps its own date, channel and campaign_id.
    """
    summed = bucket.model_copy(
        update={
            "clicks": bucket.clicks + record.clicks,
            "impressions": bucket.impressions + record.impressions,
            "cost": bucket.cost + record.cost,
            "leads": bucket.leads + record.leads,
            "opportunities": bucket.opportunities + record.opportunities,
            "closed_won": bucket.closed_won + record.closed_won,
            "revenue": bucket.revenue + record.revenue,
        }
    )
    return _with_ratios(summed)


def consolidate(records: Iterable[TransformedRecord]) -> list[TransformedRecord]:
    """Group records by (channel, campaign_id).

    Args:
        records: Per-record data, normally all from one export date

    Returns:
        One record per group, sorted by (channel, campaign_id)
    """
    buckets: dict[GroupKey, TransformedRecord] = {}

    for record in records:
        key = (record.channel, record.campaign_id)
        existing = buckets.get(key)
        if existing is None:
            buckets[key] = _with_ratios(record)
        else:
            buckets[key] = merge(existing, record)

    return [buckets[key] for key in sorted(buckets)]

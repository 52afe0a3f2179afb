"""Join ad records to CRM opportunities and derive per-record metrics."""
import logging
from datetime import date
from typing import Any, Iterable, Optional

from pydantic import ValidationError

from ..config import DEFAULT_LEAD_CONVERSION_RATE
from ..schemas.records import (
    AdRecord,
    ExternalPayload,
    Opportunity,
    TransformedRecord,
    parse_record_date,
)
from .exceptions import PayloadError
from .matcher import build_index, resolve_with_tier
from .metrics import compute


logger = logging.getLogger(__name__)


def transform(
    ads: Iterable[AdRecord],
    opportunities: Iterable[Opportunity],
    since: Optional[date] = None,
    lead_conversion_rate: float = DEFAULT_LEAD_CONVERSION_RATE,
) -> list[TransformedRecord]:
    """Transform one batch of ad records.

    Records dated strictly before ``since`` are dropped. Records with an
    unparseable date are logged and skipped; the batch continues.

    Args:
        ads: Ad performance records
        opportunities: CRM opportunities to match against
        since: Optional inclusive date floor
        lead_conversion_rate: Share of clicks assumed to become leads

    Returns:
        One TransformedRecord per kept ad, in input order
    """
    index = build_index(opportunities)
    results: list[TransformedRecord] = []
    skipped_dates = 0

    for ad in ads:
        try:
            ad_date = parse_record_date(ad.date)
        except ValueError:
            skipped_dates += 1
            logger.warning(
                "Invalid date format in ads data, skipping: date=%r campaign_id=%s",
                ad.date,
                ad.campaign_id,
            )
            continue

        if since is not None and ad_date < since:
            continue

        matches, tier = resolve_with_tier(ad, index)
        logger.debug(
            "Matched campaign_id=%s date=%s tier=%s opportunities=%s",
            ad.campaign_id,
            ad.date,
            tier,
            len(matches),
        )

        metrics = compute(ad, matches, lead_conversion_rate)
        results.append(
            TransformedRecord(
                date=ad.date,
                channel=ad.channel,
                campaign_id=ad.campaign_id,
                clicks=ad.clicks,
                impressions=ad.impressions,
                cost=ad.cost,
                leads=metrics.leads,
                opportunities=metrics.opportunities,
                closed_won=metrics.closed_won,
                revenue=metrics.revenue,
                cpc=metrics.cpc,
                cpa=metrics.cpa,
                cvr_lead_to_opp=metrics.cvr_lead_to_opp,
                cvr_opp_to_won=metrics.cvr_opp_to_won,
                roas=metrics.roas,
            )
        )

    if skipped_dates:
        logger.warning("Skipped %s ad record(s) with invalid dates", skipped_dates)

    return results


def parse_payload(source: str, raw: Any) -> ExternalPayload:
    """Validate a raw upstream JSON document as an ``external`` envelope.

    Raises:
        PayloadError: If the document is not a valid envelope
    """
    if not isinstance(raw, dict):
        raise PayloadError(source, f"expected JSON object, got {type(raw).__name__}")
    try:
        return ExternalPayload.model_validate(raw)
    except ValidationError as exc:
        raise PayloadError(source, str(exc)) from exc


def parse_ads(raw: Any) -> list[AdRecord]:
    """Extract ad records from an ads payload, skipping invalid rows."""
    payload = parse_payload("ads", raw)
    ads: list[AdRecord] = []
    for position, row in enumerate(payload.ad_rows):
        try:
            ads.append(AdRecord.model_validate(row))
        except ValidationError as exc:
            logger.warning(
                "Skipping invalid ads row %s: %s", position, exc.errors()[0]["msg"]
            )
    return ads


def parse_opportunities(raw: Any) -> list[Opportunity]:
    """Extract opportunities from a CRM payload, skipping invalid rows."""
    payload = parse_payload("crm", raw)
    opportunities: list[Opportunity] = []
    for position, row in enumerate(payload.opportunity_rows):
        try:
            opportunities.append(Opportunity.model_validate(row))
        except ValidationError as exc:
            logger.warning(
                "Skipping invalid crm row %s: %s", position, exc.errors()[0]["msg"]
            )
    return opportunities


def transform_payloads(
    ads_raw: Any,
    crm_raw: Any,
    since: Optional[date] = None,
    lead_conversion_rate: float = DEFAULT_LEAD_CONVERSION_RATE,
) -> list[TransformedRecord]:
    """Transform raw ads and CRM JSON documents.

    Raises:
        PayloadError: If either document is unprocessable as a whole
    """
    return transform(
        parse_ads(ads_raw),
        parse_opportunities(crm_raw),
        since=since,
        lead_conversion_rate=lead_conversion_rate,
    )

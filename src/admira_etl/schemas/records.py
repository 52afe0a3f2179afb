"""Pydantic models for ads, CRM and transformed metric records."""
import re
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


DATE_FORMAT = "%Y-%m-%d"
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_record_date(value: str) -> date:
    """Parse a strict YYYY-MM-DD literal.

    Raises:
        ValueError: If the value is not a valid calendar day in that format
    """
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ValueError(f"invalid date literal: {value!r}")
    return datetime.strptime(value, DATE_FORMAT).date()


def normalize_utm(value: Optional[str]) -> str:
    """Lowercase and trim a UTM value; None becomes empty."""
    if value is None:
        return ""
    return value.strip().lower()


class Stage(str, Enum):
    """CRM opportunity stages. Only CLOSED_WON counts toward revenue."""

    LEAD = "lead"
    QUALIFIED = "qualified"
    PROPOSAL = "proposal"
    CLOSED_WON = "closed_won"


@dataclass(frozen=True)
class UTMKey:
    """Normalized (campaign, source, medium) lookup key."""

    campaign: str
    source: str
    medium: str

    @classmethod
    def of(
        cls,
        campaign: Optional[str],
        source: Optional[str] = "",
        medium: Optional[str] = "",
    ) -> "UTMKey":
        return cls(
            campaign=normalize_utm(campaign),
            source=normalize_utm(source),
            medium=normalize_utm(medium),
        )


class _UTMFields(BaseModel):
    model_config = ConfigDict(frozen=True)

    utm_campaign: str = ""
    utm_source: str = ""
    utm_medium: str = ""

    @field_validator("utm_campaign", "utm_source", "utm_medium", mode="before")
    @classmethod
    def _none_to_empty(cls, value):
        return "" if value is None else value

    @property
    def utm_key(self) -> UTMKey:
        return UTMKey.of(self.utm_campaign, self.utm_source, self.utm_medium)


class AdRecord(_UTMFields):
    """One day of performance for one campaign on one channel."""

    date: str = Field(..., description="Calendar day, YYYY-MM-DD (validated lazily)")
    campaign_id: str
    channel: str
    clicks: int = Field(0, ge=0)
    impressions: int = Field(0, ge=0)
    cost: float = Field(0.0, ge=0)


class Opportunity(_UTMFields):
    """CRM opportunity tagged with the UTM parameters of its first touch."""

    opportunity_id: str
    contact_email: str = ""
    stage: str = Field(..., description="lead|qualified|proposal|closed_won|...")
    amount: float = 0.0
    created_at: Optional[datetime] = None

    @property
    def is_closed_won(self) -> bool:
        return self.stage == Stage.CLOSED_WON.value


class TransformedRecord(BaseModel):
    """Ad counters joined with CRM outcomes and derived ratios.

    Keyed by (date, channel, campaign_id). Also used as the shape of
    consolidated export records.
    """

    model_config = ConfigDict(frozen=True)

    date: str
    channel: str
    campaign_id: str
    clicks: int = 0
    impressions: int = 0
    cost: float = 0.0
    leads: int = 0
    opportunities: int = 0
    closed_won: int = 0
    revenue: float = 0.0
    cpc: float = 0.0
    cpa: float = 0.0
    cvr_lead_to_opp: float = 0.0
    cvr_opp_to_won: float = 0.0
    roas: float = 0.0


# Rows stay raw dicts at the envelope level so one bad row is skipped
# instead of rejecting the whole batch.
class AdsSection(BaseModel):
    performance: list[dict[str, Any]] = Field(default_factory=list)


class CRMSection(BaseModel):
    opportunities: list[dict[str, Any]] = Field(default_factory=list)


class ExternalData(BaseModel):
    ads: Optional[AdsSection] = None
    crm: Optional[CRMSection] = None


class ExternalPayload(BaseModel):
    """Envelope shared by the ads and CRM sources: {"external": {...}}."""

    external: ExternalData = Field(default_factory=ExternalData)

    @property
    def ad_rows(self) -> list[dict[str, Any]]:
        if self.external.ads is None:
            return []
        return self.external.ads.performance

    @property
    def opportunity_rows(self) -> list[dict[str, Any]]:
        if self.external.crm is None:
            return []
        return self.external.crm.opportunities

"""Signed delivery of consolidated records to the export sink.

Signature: HMAC-SHA256 keyed with the sink secret over the UTF-8 canonical
encoding below, sent as ``X-Signature: sha256=<hex>``. The field order,
separator and number formats are part of the wire contract.

    date|channel|campaign_id|clicks|impressions|cost|leads|opportunities|
    closed_won|revenue|cpc|cpa|cvr_lead_to_opp|cvr_opp_to_won|roas

cost and revenue use 2 decimals, ratios use 3, counters are integers.
"""
import hashlib
import hmac
import logging
from typing import Iterable

from ..clients.fetch_client import FetchClient
from ..clients.exceptions import FetchClientError
from ..schemas.records import TransformedRecord
from .exceptions import ExportError


logger = logging.getLogger(__name__)


SIGNATURE_HEADER = "X-Signature"
SIGNATURE_PREFIX = "sha256="


def canonical_encoding(record: TransformedRecord) -> str:
    """Deterministic field-ordered serialization used for signing."""
    return "|".join(
        [
            record.date,
            record.channel,
            record.campaign_id,
            str(record.clicks),
            str(record.impressions),
            f"{record.cost:.2f}",
            str(record.leads),
            str(record.opportunities),
            str(record.closed_won),
            f"{record.revenue:.2f}",
            f"{record.cpc:.3f}",
            f"{record.cpa:.3f}",
            f"{record.cvr_lead_to_opp:.3f}",
            f"{record.cvr_opp_to_won:.3f}",
            f"{record.roas:.3f}",
        ]
    )


class RecordSigner:
    """HMAC-SHA256 signer keyed by the shared sink secret."""

    def __init__(self, secret: str):
        self._secret = secret.encode("utf-8")

    def sign(self, record: TransformedRecord) -> str:
        digest = hmac.new(
            self._secret,
            canonical_encoding(record).encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()
        return f"{SIGNATURE_PREFIX}{digest}"

    def verify(self, record: TransformedRecord, signature: str) -> bool:
        return hmac.compare_digest(self.sign(record), signature)


class Exporter:
    """Sign and POST records to the sink, one request per record."""

    def __init__(self, client: FetchClient, sink_url: str, signer: RecordSigner):
        self.client = client
        self.sink_url = sink_url
        self.signer = signer

    async def export_one(self, record: TransformedRecord) -> None:
        """Deliver one record.

        Raises:
            FetchClientError: If the sink rejects the record or is unreachable
        """
        signature = self.signer.sign(record)
        logger.debug(
            "Exporting channel=%s campaign_id=%s signature=%s",
            record.channel,
            record.campaign_id,
            signature,
        )
        await self.client.post_json(
            self.sink_url,
            record.model_dump(mode="json"),
            headers={SIGNATURE_HEADER: signature},
        )

    async def export_all(self, records: Iterable[TransformedRecord]) -> int:
        """Deliver records in order, stopping at the first failure.

        Returns:
            Number of records delivered

        Raises:
            ExportError: On the first delivery failure. Earlier records
                already reached the sink.
        """
        delivered = 0
        for record in records:
            try:
                await self.export_one(record)
            except FetchClientError as exc:
                logger.error(
                    "Failed to export record channel=%s campaign_id=%s: %s",
                    record.channel,
                    record.campaign_id,
                    exc,
                )
                raise ExportError(
                    record.channel, record.campaign_id, delivered, exc
                ) from exc
            delivered += 1
        return delivered

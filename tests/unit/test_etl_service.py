"""Unit tests for ETLService orchestration (mocked aiohttp session)."""
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.admira_etl.clients.exceptions import HTTPStatusError
from src.admira_etl.config import Settings
from src.admira_etl.etl.exceptions import ConfigurationError, ExportError, PayloadError
from src.admira_etl.etl.exporter import SIGNATURE_HEADER, RecordSigner
from src.admira_etl.etl.service import ETLService
from src.admira_etl.schemas.records import TransformedRecord
from src.admira_etl.storage.memory_store import InMemoryStore


ADS_PAYLOAD = {
    "external": {
        "ads": {
            "performance": [
                {
                    "date": "2025-01-01",
                    "campaign_id": "C-1001",
                    "channel": "google_ads",
                    "clicks": 1000,
                    "impressions": 50000,
                    "cost": 250.0,
                    "utm_campaign": "back_to_school",
                    "utm_source": "google",
                    "utm_medium": "cpc",
                },
                {
                    "date": "2025-01-02",
                    "campaign_id": "C-1002",
                    "channel": "facebook_ads",
                    "clicks": 500,
                    "impressions": 20000,
                    "cost": 100.0,
                    "utm_campaign": "summer",
                    "utm_source": "facebook",
                    "utm_medium": "social",
                },
            ]
        }
    }
}

CRM_PAYLOAD = {
    "external": {
        "crm": {
            "opportunities": [
                {
                    "opportunity_id": "O-9001",
                    "contact_email": "a@example.com",
                    "stage": "closed_won",
                    "amount": 5000.0,
                    "created_at": "2025-01-01T12:00:00Z",
                    "utm_campaign": "back_to_school",
                    "utm_source": "google",
                    "utm_medium": "cpc",
                }
            ]
        }
    }
}


def _response(status=200, json_data=None, text=""):
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.json.return_value = json_data
    mock_response.text.return_value = text
    mock_response.__aenter__.return_value = mock_response
    return mock_response


def _settings(**overrides) -> Settings:
    fields = {
        "ads_api_url": "https://ads.example.com/performance",
        "crm_api_url": "https://crm.example.com/opportunities",
        "sink_url": "https://sink.example.com/ingest",
        "sink_secret": "s3cret",
        "max_retries": 1,
        "retry_delay": 0,
    }
    fields.update(overrides)
    return Settings(**fields)


@pytest.fixture
def mock_session():
    return MagicMock()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def service(mock_session, store):
    return ETLService(_settings(), store, session=mock_session)


@pytest.mark.asyncio
async def test_run_ingestion_stores_transformed_records(service, mock_session, store):
    mock_session.get.side_effect = [
        _response(json_data=ADS_PAYLOAD),
        _response(json_data=CRM_PAYLOAD),
    ]

    stored = await service.run_ingestion()

    assert stored == 2
    urls = [c.args[0] for c in mock_session.get.call_args_list]
    assert urls == [
        "https://ads.example.com/performance",
        "https://crm.example.com/opportunities",
    ]
    assert store.was_ingested("2025-01-01")
    assert store.was_ingested("2025-01-02")
    assert store.last_ingestion_time() is not None

    records, total = store.query(date(2025, 1, 1), date(2025, 1, 1))
    assert total == 1
    assert records[0].revenue == 5000.0
    assert records[0].roas == pytest.approx(20.0)


@pytest.mark.asyncio
async def test_run_ingestion_applies_since(service, mock_session, store):
    mock_session.get.side_effect = [
        _response(json_data=ADS_PAYLOAD),
        _response(json_data=CRM_PAYLOAD),
    ]

    stored = await service.run_ingestion("2025-01-02")

    assert stored == 1
    assert not store.was_ingested("2025-01-01")
    assert store.was_ingested("2025-01-02")


@pytest.mark.asyncio
async def test_reingestion_appends_duplicates(service, mock_session, store):
    mock_session.get.side_effect = [
        _response(json_data=ADS_PAYLOAD),
        _response(json_data=CRM_PAYLOAD),
        _response(json_data=ADS_PAYLOAD),
        _response(json_data=CRM_PAYLOAD),
    ]

    await service.run_ingestion()
    await service.run_ingestion()

    _, total = store.query(date(2025, 1, 1), date(2025, 1, 31))
    assert total == 4


@pytest.mark.asyncio
async def test_empty_ingestion_still_stamps_last_time(service, mock_session, store):
    mock_session.get.side_effect = [
        _response(json_data={"external": {}}),
        _response(json_data={"external": {}}),
    ]

    assert await service.run_ingestion() == 0
    assert store.last_ingestion_time() is not None


@pytest.mark.asyncio
async def test_run_ingestion_invalid_since(service, mock_session):
    with pytest.raises(ValueError):
        await service.run_ingestion("01/01/2025")

    mock_session.get.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("missing", ["ads_api_url", "crm_api_url"])
async def test_run_ingestion_requires_source_urls(mock_session, store, missing):
    service = ETLService(_settings(**{missing: ""}), store, session=mock_session)

    with pytest.raises(ConfigurationError):
        await service.run_ingestion()

    mock_session.get.assert_not_called()


@pytest.mark.asyncio
async def test_fetch_failure_leaves_store_untouched(service, mock_session, store):
    mock_session.get.side_effect = [
        _response(json_data=ADS_PAYLOAD),
        _response(401, text="unauthorized"),
    ]

    with pytest.raises(HTTPStatusError):
        await service.run_ingestion()

    assert len(store) == 0
    assert store.last_ingestion_time() is None


@pytest.mark.asyncio
async def test_unprocessable_payload(service, mock_session, store):
    mock_session.get.side_effect = [
        _response(json_data=["not", "an", "object"]),
        _response(json_data=CRM_PAYLOAD),
    ]

    with pytest.raises(PayloadError):
        await service.run_ingestion()

    assert len(store) == 0


def _stored(campaign_id, channel="google_ads", day="2025-01-01", clicks=100, cost=10.0):
    return TransformedRecord(
        date=day,
        channel=channel,
        campaign_id=campaign_id,
        clicks=clicks,
        cost=cost,
        leads=clicks // 10,
    )


def test_query_channel_filters_by_channel(service, store):
    store.append(
        [
            _stored("C-1", "google_ads"),
            _stored("C-2", "facebook_ads"),
            _stored("C-3", "google_ads", day="2025-01-05"),
        ]
    )

    records, total = service.query_channel(
        date(2025, 1, 1), date(2025, 1, 31), "google_ads", limit=1, offset=1
    )

    assert total == 2
    assert [r.campaign_id for r in records] == ["C-3"]


def test_query_funnel_ignores_utm_campaign(service, store):
    store.append([_stored("C-1", "google_ads"), _stored("C-2", "facebook_ads")])

    records, total = service.query_funnel(
        date(2025, 1, 1), date(2025, 1, 31), "utm_that_matches_nothing"
    )

    assert total == 2
    assert [r.campaign_id for r in records] == ["C-1", "C-2"]


@pytest.mark.asyncio
async def test_run_export_consolidates_and_signs(service, mock_session, store):
    store.append(
        [
            _stored("C-2", "google_ads", clicks=100, cost=10.0),
            _stored("C-1", "google_ads", clicks=200, cost=30.0),
            _stored("C-2", "google_ads", clicks=300, cost=30.0),
            _stored("C-9", "google_ads", day="2025-01-02"),
        ]
    )
    mock_session.post.return_value = _response(200)

    exported = await service.run_export("2025-01-01")

    assert exported == 2
    posts = mock_session.post.call_args_list
    bodies = [c.kwargs["json"] for c in posts]
    assert [b["campaign_id"] for b in bodies] == ["C-1", "C-2"]
    assert bodies[1]["clicks"] == 400
    assert bodies[1]["cpc"] == pytest.approx(0.1)

    signer = RecordSigner("s3cret")
    for c in posts:
        record = TransformedRecord(**c.kwargs["json"])
        assert signer.verify(record, c.kwargs["headers"][SIGNATURE_HEADER])


@pytest.mark.asyncio
async def test_run_export_aborts_on_sink_failure(service, mock_session, store):
    store.append([_stored("C-1"), _stored("C-2"), _stored("C-3")])
    mock_session.post.side_effect = [_response(200), _response(403, text="forbidden")]

    with pytest.raises(ExportError) as exc_info:
        await service.run_export("2025-01-01")

    assert exc_info.value.delivered == 1
    assert mock_session.post.call_count == 2


@pytest.mark.asyncio
async def test_run_export_without_records_sends_nothing(service, mock_session):
    assert await service.run_export("2025-01-01") == 0
    mock_session.post.assert_not_called()


@pytest.mark.asyncio
@pytest.mark.parametrize("missing", ["sink_url", "sink_secret"])
async def test_run_export_requires_sink_settings(mock_session, store, missing):
    service = ETLService(_settings(**{missing: ""}), store, session=mock_session)

    with pytest.raises(ConfigurationError):
        await service.run_export("2025-01-01")


@pytest.mark.asyncio
async def test_run_export_invalid_date(service):
    with pytest.raises(ValueError):
        await service.run_export("2025-1-1")


def test_ingestion_status(service, store):
    assert service.ingestion_status("2025-01-01") == {
        "last_ingestion_time": None,
        "date": "2025-01-01",
        "ingested": False,
    }

    store.append([_stored("C-1")])

    assert service.ingestion_status("2025-01-01")["ingested"] is True
    assert service.ingestion_status()["ingested"] is None

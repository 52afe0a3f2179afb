"""Unit tests for environment configuration."""
from src.admira_etl.config import (
    DEFAULT_LEAD_CONVERSION_RATE,
    DEFAULT_MAX_RETRIES,
    Settings,
)


def test_from_env_reads_values(monkeypatch):
    monkeypatch.setenv("ADS_API_URL", "https://ads.example.com")
    monkeypatch.setenv("CRM_API_URL", "https://crm.example.com")
    monkeypatch.setenv("SINK_URL", "https://sink.example.com")
    monkeypatch.setenv("SINK_SECRET", "s3cret")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("HTTP_MAX_RETRIES", "5")
    monkeypatch.setenv("HTTP_RETRY_DELAY_SECONDS", "0.5")
    monkeypatch.setenv("LEAD_CONVERSION_RATE", "0.2")

    settings = Settings.from_env()

    assert settings.ads_api_url == "https://ads.example.com"
    assert settings.crm_api_url == "https://crm.example.com"
    assert settings.sink_url == "https://sink.example.com"
    assert settings.sink_secret == "s3cret"
    assert settings.log_level == "DEBUG"
    assert settings.max_retries == 5
    assert settings.retry_delay == 0.5
    assert settings.lead_conversion_rate == 0.2


def test_from_env_defaults(monkeypatch):
    for name in (
        "ADS_API_URL",
        "CRM_API_URL",
        "SINK_URL",
        "SINK_SECRET",
        "HTTP_MAX_RETRIES",
        "LEAD_CONVERSION_RATE",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = Settings.from_env()

    assert settings.ads_api_url == ""
    assert settings.sink_secret == ""
    assert settings.max_retries == DEFAULT_MAX_RETRIES
    assert settings.lead_conversion_rate == DEFAULT_LEAD_CONVERSION_RATE


def test_invalid_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("HTTP_MAX_RETRIES", "many")
    monkeypatch.setenv("LEAD_CONVERSION_RATE", "ten percent")

    settings = Settings.from_env()

    assert settings.max_retries == DEFAULT_MAX_RETRIES
    assert settings.lead_conversion_rate == DEFAULT_LEAD_CONVERSION_RATE

"""Environment-driven configuration for the ETL service."""
import logging
import os
from dataclasses import dataclass


logger = logging.getLogger(__name__)


DEFAULT_HTTP_TIMEOUT = 30.0  # seconds
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0  # seconds
DEFAULT_LEAD_CONVERSION_RATE = 0.10  # 10% of clicks become leads


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Invalid %s '%s', using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s '%s', using %s", name, raw, default)
        return default


@dataclass(frozen=True)
class Settings:
    """Runtime settings.

    Source URLs and the sink secret default to empty; operations that need
    them raise ConfigurationError when invoked without them.
    """

    ads_api_url: str = ""
    crm_api_url: str = ""
    sink_url: str = ""
    sink_secret: str = ""
    log_level: str = "INFO"
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    lead_conversion_rate: float = DEFAULT_LEAD_CONVERSION_RATE

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        return cls(
            ads_api_url=os.getenv("ADS_API_URL", ""),
            crm_api_url=os.getenv("CRM_API_URL", ""),
            sink_url=os.getenv("SINK_URL", ""),
            sink_secret=os.getenv("SINK_SECRET", ""),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            http_timeout=_env_float("HTTP_TIMEOUT_SECONDS", DEFAULT_HTTP_TIMEOUT),
            max_retries=_env_int("HTTP_MAX_RETRIES", DEFAULT_MAX_RETRIES),
            retry_delay=_env_float("HTTP_RETRY_DELAY_SECONDS", DEFAULT_RETRY_DELAY),
            lead_conversion_rate=_env_float(
                "LEAD_CONVERSION_RATE", DEFAULT_LEAD_CONVERSION_RATE
            ),
        )

"""Custom exceptions for the ETL engine."""


class ETLError(Exception):
    """Base exception for all ETL errors."""


class ConfigurationError(ETLError):
    """Raised when a required source URL or sink setting is missing."""

    def __init__(self, setting: str):
        self.setting = setting
        super().__init__(f"{setting} not configured")


class PayloadError(ETLError):
    """Raised when an upstream payload cannot be processed as a batch."""

    def __init__(self, source: str, detail: str):
        self.source = source
        self.detail = detail
        super().__init__(f"Unprocessable {source} payload: {detail}")


class ExportError(ETLError):
    """Raised when delivering a record to the sink fails.

    Records before the failing one were already delivered (at-least-once).
    """

    def __init__(self, channel: str, campaign_id: str, delivered: int, cause: Exception):
        self.channel = channel
        self.campaign_id = campaign_id
        self.delivered = delivered
        self.cause = cause
        super().__init__(
            f"Export failed for channel={channel}, campaign_id={campaign_id} "
            f"after {delivered} delivered record(s): {cause}"
        )

"""Custom exceptions for the upstream/sink fetch client."""


class FetchClientError(Exception):
    """Base exception for all fetch client errors."""


class HTTPStatusError(FetchClientError):
    """Raised for HTTP responses with status >= 400."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}: {body[:200]}")

    @property
    def is_client_error(self) -> bool:
        """4xx responses are never retried."""
        return 400 <= self.status < 500


class FetchError(FetchClientError):
    """Raised when a request fails terminally after exhausting retries."""

    def __init__(self, method: str, url: str, attempts: int, last_error: Exception):
        self.method = method
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{method} {url} failed after {attempts} attempts: {last_error}"
        )

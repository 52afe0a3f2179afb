"""HTTP client for upstream sources and the export sink."""
from .exceptions import FetchClientError, FetchError, HTTPStatusError
from .fetch_client import FetchClient, RetryState

__all__ = [
    "FetchClient",
    "RetryState",
    "FetchClientError",
    "FetchError",
    "HTTPStatusError",
]

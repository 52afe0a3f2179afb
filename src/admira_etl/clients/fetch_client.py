"""Async JSON HTTP client with bounded retries and linear backoff."""
import asyncio
import logging
from enum import Enum
from typing import Any, Optional

import aiohttp

from .exceptions import FetchError, HTTPStatusError


class RetryState(str, Enum):
    """Lifecycle of a single logical request."""

    ATTEMPTING = "attempting"
    BACKING_OFF = "backing_off"
    SUCCEEDED = "succeeded"
    FAILED_TERMINAL = "failed_terminal"


class FetchClient:
    """GET/POST JSON against upstream sources and the export sink.

    Retries 5xx, network errors, timeouts and undecodable bodies up to
    ``max_retries`` extra attempts, sleeping ``retry_delay * attempt`` before
    each retry. 4xx responses fail immediately. Cancellation of the calling
    task propagates through every await.
    """

    DEFAULT_TIMEOUT = 30.0  # seconds
    DEFAULT_MAX_RETRIES = 3
    DEFAULT_RETRY_DELAY = 1.0  # seconds

    def __init__(
        self,
        session: aiohttp.ClientSession,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        logger: Optional[logging.Logger] = None,
    ):
        """Initialize fetch client.

        Args:
            session: Injected aiohttp ClientSession
            timeout: Total per-attempt timeout in seconds
            max_retries: Retries after the first attempt
            retry_delay: Base delay in seconds, multiplied by attempt number
            logger: Optional logger instance
        """
        self.session = session
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.retry_delay = max(0.0, retry_delay)
        self.logger = logger or logging.getLogger(__name__)

    async def get_json(self, url: str) -> Any:
        """GET a URL and decode its JSON body.

        Raises:
            HTTPStatusError: On a 4xx response (not retried)
            FetchError: When retries are exhausted
        """
        return await self._request("GET", url)

    async def post_json(
        self,
        url: str,
        body: Any,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        """POST a JSON body; the response body is ignored."""
        await self._request("POST", url, body=body, headers=headers)

    async def _request(
        self,
        method: str,
        url: str,
        body: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        state = RetryState.ATTEMPTING
        attempt = 0
        last_error: Optional[Exception] = None

        while True:
            if state is RetryState.BACKING_OFF:
                delay = self.retry_delay * attempt
                self.logger.warning(
                    "%s %s failed (attempt=%s): %s; retrying in %.2fs",
                    method,
                    url,
                    attempt,
                    last_error,
                    delay,
                )
                await asyncio.sleep(delay)
                state = RetryState.ATTEMPTING

            attempt += 1
            try:
                result = await self._send(method, url, body, headers)
            except HTTPStatusError as exc:
                last_error = exc
                if exc.is_client_error:
                    state = RetryState.FAILED_TERMINAL
                    self.logger.error(
                        "%s %s returned HTTP %s (non-retryable)",
                        method,
                        url,
                        exc.status,
                    )
                    raise
            except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
                last_error = exc
            else:
                state = RetryState.SUCCEEDED
                self.logger.debug(
                    "%s %s %s after %s attempt(s)", method, url, state.value, attempt
                )
                return result

            if attempt > self.max_retries:
                state = RetryState.FAILED_TERMINAL
                self.logger.error(
                    "%s %s %s after %s attempts: %s",
                    method,
                    url,
                    state.value,
                    attempt,
                    last_error,
                )
                raise FetchError(method, url, attempt, last_error) from last_error

            state = RetryState.BACKING_OFF

    async def _send(
        self,
        method: str,
        url: str,
        body: Any,
        headers: Optional[dict[str, str]],
    ) -> Any:
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        if method == "GET":
            request = self.session.get(url, headers=headers, timeout=timeout)
        else:
            request = self.session.post(url, json=body, headers=headers, timeout=timeout)

        async with request as resp:
            if resp.status >= 400:
                response_text = await resp.text()
                raise HTTPStatusError(resp.status, response_text)

            if method != "GET":
                return None

            return await resp.json(content_type=None)

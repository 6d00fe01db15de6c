"""
HTTP infrastructure layer with rate limiting and retry logic.

Provides:
- RetryConfig: Bounded exponential backoff with jitter
- parse_rate_limit_reset: Reads the server's reset instant from a 429
- HTTPClient: Async HTTP client honoring a RollingWindowLimiter
- The client error taxonomy (ConfigError, RateLimitError, ...)

This layer separates HTTP concerns (retries, backoff, throttling) from
domain logic (post and price parsing) in the clients.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from tabloid.ingestion.rate_limit import RollingWindowLimiter

logger = logging.getLogger(__name__)


class ClientError(Exception):
    """Base exception for upstream client errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class ConfigError(ClientError):
    """Client is misconfigured (e.g. missing credential). Never retried."""

    pass


class RateLimitError(ClientError):
    """Raised when 429 responses persist after all attempts."""

    pass


class TransientNetworkError(ClientError):
    """Raised when no usable response arrived after all attempts."""

    pass


class UpstreamError(ClientError):
    """Raised on a non-retryable error status from upstream."""

    pass


@dataclass
class RetryConfig:
    """
    Exponential backoff configuration for HTTP retries.

    Formula: min(max_backoff, base_delay * 2^attempt) + random(0, jitter_seconds)

    `attempt` is the number of failed attempts so far (1 after the first
    failure), so the default schedule waits ~2s then ~4s.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    jitter_seconds: float = 1.0
    max_backoff_seconds: float = 60.0

    def calculate_backoff(self, attempt: int) -> float:
        """
        Calculate backoff duration after `attempt` failures.

        Args:
            attempt: Failed attempts so far (1-indexed)

        Returns:
            Backoff duration in seconds with jitter applied
        """
        delay = min(self.base_delay * (2**attempt), self.max_backoff_seconds)
        return delay + random.random() * self.jitter_seconds

    def is_retryable_status(self, status_code: int) -> bool:
        """
        Check if an HTTP status code should trigger a backoff retry.

        429 is handled separately since it may carry a reset instant.
        """
        return status_code in {500, 502, 503, 504}

    def is_retryable_exception(self, exc: Exception) -> bool:
        """
        Check if an exception means no response was received.

        Retryable exceptions:
        - httpx.TimeoutException: Request timed out
        - httpx.NetworkError: Connect/read/write failures
        - httpx.RemoteProtocolError: Connection dropped mid-response
        """
        return isinstance(
            exc,
            (
                httpx.TimeoutException,
                httpx.NetworkError,
                httpx.RemoteProtocolError,
            ),
        )


def parse_rate_limit_reset(
    headers: httpx.Headers | dict[str, str],
    now: float | None = None,
) -> float | None:
    """
    Extract the instant (epoch seconds) at which a 429 stops applying.

    Prefers `x-rate-limit-reset` (epoch seconds), then `retry-after`
    (delta seconds or an HTTP date).

    Returns:
        Epoch seconds, or None when neither header is usable
    """
    now = time.time() if now is None else now
    headers = httpx.Headers(headers)

    reset_header = headers.get("x-rate-limit-reset")
    if reset_header:
        try:
            return float(reset_header)
        except ValueError:
            logger.debug(f"Ignoring malformed x-rate-limit-reset: {reset_header!r}")

    retry_after = headers.get("retry-after")
    if retry_after:
        try:
            return now + float(retry_after)
        except ValueError:
            pass
        try:
            return parsedate_to_datetime(retry_after).timestamp()
        except (TypeError, ValueError):
            logger.debug(f"Ignoring malformed retry-after: {retry_after!r}")

    return None


class HTTPClient:
    """
    Async HTTP client with rate limiting and retry logic.

    Features:
    - Optional RollingWindowLimiter consulted before every request
    - 429 with a reset instant: pause until that instant, retry without
      consuming an attempt
    - 429 without a reset instant, 5xx, timeouts and connection errors:
      bounded exponential backoff with jitter
    - Other 4xx: fail immediately
    - Context manager for proper resource cleanup

    Example:
        limiter = RollingWindowLimiter(max_requests=1450, window_seconds=900)
        async with HTTPClient(RetryConfig(max_attempts=3)) as client:
            response = await client.get(url, params={...}, limiter=limiter)
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ):
        """
        Initialize HTTP client.

        Args:
            retry_config: Configuration for retry behavior. Uses defaults if None.
            timeout: Request timeout in seconds.
            headers: Headers sent with every request.
        """
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self._headers = dict(headers) if headers else {}
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HTTPClient":
        """Enter async context manager, create client."""
        await self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager, close client."""
        await self.close()

    async def open(self) -> None:
        """Create the underlying connection pool if needed."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, headers=self._headers)

    async def close(self) -> None:
        """Close the underlying connection pool."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        limiter: RollingWindowLimiter | None = None,
    ) -> httpx.Response:
        """
        Perform GET request with rate limiting and retry logic.

        Args:
            url: Request URL
            params: Query parameters
            headers: Extra request headers
            limiter: Rate limiter owning this endpoint's budget

        Returns:
            httpx.Response on success

        Raises:
            RateLimitError: When 429s persist after all attempts
            TransientNetworkError: When no usable response arrives after all attempts
            UpstreamError: On a non-retryable error status or transport failure
            ConfigError: When the URL is invalid or its scheme unsupported
        """
        if not self._client:
            raise RuntimeError("HTTPClient must be opened before use")

        max_attempts = self.retry_config.max_attempts
        attempts = 0

        while True:
            if limiter is not None:
                await limiter.acquire()

            try:
                response = await self._client.get(url, params=params, headers=headers)
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                if isinstance(e, (httpx.InvalidURL, httpx.UnsupportedProtocol)):
                    raise ConfigError(f"Error setting up request to {url}: {e}") from e
                if not self.retry_config.is_retryable_exception(e):
                    raise UpstreamError(f"Request to {url} failed: {type(e).__name__}: {e}") from e

                attempts += 1
                if attempts >= max_attempts:
                    raise TransientNetworkError(
                        f"No response from {url} after {attempts} attempts: {e}"
                    ) from e

                backoff = self.retry_config.calculate_backoff(attempts)
                logger.warning(
                    f"Retryable error {type(e).__name__} for {url}, "
                    f"attempt {attempts}/{max_attempts}, backing off {backoff:.2f}s"
                )
                await asyncio.sleep(backoff)
                continue

            if response.status_code == 429:
                now = time.time()
                reset_at = parse_rate_limit_reset(response.headers, now=now)

                if reset_at is not None and reset_at > now:
                    # Honor the server's instant verbatim; this does not use up an attempt
                    logger.warning(
                        f"429 from {url}, server reset in {reset_at - now:.1f}s"
                    )
                    if limiter is not None:
                        limiter.pause_until(reset_at)
                    else:
                        await asyncio.sleep(reset_at - now)
                    continue

                attempts += 1
                if attempts >= max_attempts:
                    raise RateLimitError(
                        f"Rate limit exceeded for {url} after {attempts} attempts",
                        status_code=429,
                        response_body=response.text,
                    )

                backoff = self.retry_config.calculate_backoff(attempts)
                logger.warning(
                    f"429 from {url} without reset header, "
                    f"attempt {attempts}/{max_attempts}, backing off {backoff:.2f}s"
                )
                await asyncio.sleep(backoff)
                continue

            if self.retry_config.is_retryable_status(response.status_code):
                attempts += 1
                if attempts >= max_attempts:
                    raise TransientNetworkError(
                        f"Request failed with status {response.status_code} "
                        f"after {attempts} attempts",
                        status_code=response.status_code,
                        response_body=response.text,
                    )

                backoff = self.retry_config.calculate_backoff(attempts)
                logger.warning(
                    f"Retryable status {response.status_code} from {url}, "
                    f"attempt {attempts}/{max_attempts}, backing off {backoff:.2f}s"
                )
                await asyncio.sleep(backoff)
                continue

            if response.status_code >= 400:
                raise UpstreamError(
                    f"Request failed with status {response.status_code}",
                    status_code=response.status_code,
                    response_body=response.text,
                )

            if limiter is not None:
                limiter.record_request()
            return response

"""Shared HTTP plumbing for provider clients: rate limiting, retries, errors."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

import aiohttp

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0
DEFAULT_TIMEOUT_SECONDS = 15.0
MAX_RETRY_AFTER_SECONDS = 60.0


class ProviderError(Exception):
    """Base exception for market data provider errors."""


class ProviderNotFoundError(ProviderError):
    """Raised when the provider has no data for the token (e.g., 404, no pool)."""


class ProviderTransientError(ProviderError):
    """Raised for retryable errors (5xx, timeouts, connection failures)."""


class ProviderRateLimitedError(ProviderTransientError):
    """Raised on HTTP 429."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class RetryError(ProviderError):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, last_exception: Exception | None = None) -> None:
        super().__init__(message)
        self.last_exception = last_exception


class RateLimiter:
    """Minimum-interval rate limiter shared by all requests of a client."""

    def __init__(self, max_requests_per_second: float) -> None:
        self._min_interval = 1.0 / max_requests_per_second
        self._last_request_time: float = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a request slot is available."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_request_time
            if elapsed < self._min_interval:
                await asyncio.sleep(self._min_interval - elapsed)
            self._last_request_time = time.monotonic()


def with_retry(
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    retry_on: tuple[type[Exception], ...] = (ProviderTransientError,),
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator adding exponential-backoff retries to a coroutine function.

    A ``ProviderRateLimitedError`` carrying ``retry_after`` waits at least that
    long (capped at ``MAX_RETRY_AFTER_SECONDS``) before the next attempt.

    Args:
        max_retries: Maximum number of retry attempts.
        base_delay: Base delay in seconds (doubles with each retry).
        retry_on: Tuple of exception types to retry on.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            last_exception: Exception | None = None

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    last_exception = e
                    if attempt == max_retries:
                        break

                    delay = base_delay * (2**attempt)
                    if isinstance(e, ProviderRateLimitedError) and e.retry_after:
                        delay = max(delay, min(e.retry_after, MAX_RETRY_AFTER_SECONDS))
                    logger.warning(
                        "Attempt %d/%d of %s failed: %s. Retrying in %.1f seconds...",
                        attempt + 1,
                        max_retries + 1,
                        func.__name__,
                        str(e),
                        delay,
                    )
                    await asyncio.sleep(delay)

            raise RetryError(
                f"All {max_retries + 1} attempts failed for {func.__name__}",
                last_exception=last_exception,
            )

        return wrapper

    return decorator


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class JsonHttpClient:
    """Base class for JSON-over-HTTP provider clients.

    Owns a lazily created ``aiohttp.ClientSession`` and maps HTTP failures
    onto the provider error hierarchy.
    """

    name = "http"

    def __init__(
        self,
        base_url: str,
        *,
        requests_per_second: float,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._rate_limiter = RateLimiter(requests_per_second)
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None
        self._request_json = with_retry(max_retries=max_retries, base_delay=retry_base_delay)(
            self._get_json
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={"accept": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close HTTP session (only if this client created it)."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET ``{base_url}{path}`` and decode the JSON body."""
        await self._rate_limiter.acquire()
        session = await self._get_session()
        url = f"{self._base_url}{path}"
        try:
            async with session.get(url, params=params) as resp:
                if resp.status == 404:
                    raise ProviderNotFoundError(f"{self.name}: not found: {path}")
                if resp.status == 429:
                    raise ProviderRateLimitedError(
                        f"{self.name}: rate limited: {path}",
                        retry_after=_parse_retry_after(resp.headers.get("Retry-After")),
                    )
                if resp.status >= 500:
                    raise ProviderTransientError(f"{self.name}: HTTP {resp.status}: {path}")
                if resp.status >= 400:
                    raise ProviderError(f"{self.name}: HTTP {resp.status}: {path}")
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ProviderTransientError(f"{self.name}: request failed for {path}: {e}") from e

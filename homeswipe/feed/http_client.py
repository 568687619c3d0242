"""Async HTTP client for the listings feed.

Wraps :class:`httpx.AsyncClient` with:

* **Bearer authentication** — the feed access token is sent in the
  ``Authorization`` header of every request.
* **Automatic retries** — exponential back-off with random jitter via
  :mod:`tenacity`; configurable number of attempts.
* **Rate-limit awareness** — HTTP 429 responses pause retries for the
  duration in the ``Retry-After`` header, then raise
  :class:`~homeswipe.core.exceptions.FeedRateLimitError` when retries are
  exhausted.
* **Error mapping** — transient failures (5xx, network errors, timeouts) are
  retried and surface as :class:`~homeswipe.core.exceptions.FeedFetchError`;
  401/403 raise :class:`~homeswipe.core.exceptions.FeedAuthError` and other
  4xx raise :class:`~homeswipe.core.exceptions.FeedFetchError` immediately
  without consuming retry budget.

Typical usage::

    async with FeedHttpClient(base_url=settings.feed_base_url, token=token) as http:
        body = await http.get_json("/Property?$top=1")
"""

from __future__ import annotations

import logging
import random
from types import TracebackType
from typing import Any, Final

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
)

from homeswipe.core.exceptions import (
    FeedAuthError,
    FeedFetchError,
    FeedParseError,
    FeedRateLimitError,
)

__all__ = ["FeedHttpClient"]

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: HTTP status codes that signal a transient server-side fault.
_RETRYABLE_STATUS: Final[frozenset[int]] = frozenset({500, 502, 503, 504})

_AUTH_STATUS: Final[frozenset[int]] = frozenset({401, 403})

_DEFAULT_CONNECT_TIMEOUT: Final[float] = 10.0
_DEFAULT_READ_TIMEOUT: Final[float] = 30.0
_DEFAULT_MAX_ATTEMPTS: Final[int] = 3

#: Cap on the exponential back-off base before jitter (seconds).
_MAX_BACKOFF_BASE: Final[float] = 30.0

#: Upper bound on jitter added on top of the exponential base (seconds).
_MAX_BACKOFF_JITTER: Final[float] = 5.0


class _RetryableServerError(FeedFetchError):
    """Internal: signals a 5xx status for tenacity to retry."""


def _feed_wait(retry_state: RetryCallState) -> float:
    """Seconds to sleep before the next attempt.

    Honours a positive ``retry_after`` on :class:`FeedRateLimitError`;
    otherwise exponential back-off (1 s, 2 s, 4 s, …) plus jitter.
    """
    if retry_state.outcome is not None:
        exc = retry_state.outcome.exception()
        if isinstance(exc, FeedRateLimitError) and exc.retry_after and exc.retry_after > 0:
            return exc.retry_after

    attempt = max(retry_state.attempt_number, 1)
    base = min(2.0 ** (attempt - 1), _MAX_BACKOFF_BASE)
    return base + random.uniform(0.0, min(base, _MAX_BACKOFF_JITTER))


def _resource_label(url: str) -> str:
    """``"/Property?$filter=..."`` → ``"Property"`` (for errors and logs)."""
    return url.lstrip("/").split("?", 1)[0] or url


class FeedHttpClient:
    """Authenticated, retrying HTTP client for the OData feed.

    Use as an ``async with`` context manager to guarantee the connection
    pool is closed on exit.

    Args:
        base_url: Feed base URL; request paths are resolved against it.
        token: Bearer token.
        connect_timeout: TCP connect timeout in seconds.
        read_timeout: Timeout waiting for response data in seconds.
        max_attempts: Total attempts including the initial try (≥ 1).

    Raises:
        ValueError: If ``max_attempts`` is less than 1.
    """

    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        connect_timeout: float = _DEFAULT_CONNECT_TIMEOUT,
        read_timeout: float = _DEFAULT_READ_TIMEOUT,
        max_attempts: int = _DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be ≥ 1, got {max_attempts!r}.")

        self._base_url = base_url.rstrip("/")
        self._token = token
        self._max_attempts = max_attempts
        self._timeout = httpx.Timeout(
            connect=connect_timeout,
            read=read_timeout,
            write=10.0,
            pool=5.0,
        )
        self._http: httpx.AsyncClient | None = None

    async def __aenter__(self) -> FeedHttpClient:
        await self._ensure_client()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(self, url: str) -> httpx.Response:
        """GET *url* (relative to the base URL) with retries.

        Returns:
            The response on HTTP 2xx.

        Raises:
            FeedAuthError: On HTTP 401 / 403.
            FeedRateLimitError: On HTTP 429 after exhausting retries.
            FeedFetchError: On any other HTTP or transport failure.
        """
        resource = _resource_label(url)

        def _before_sleep(rs: RetryCallState) -> None:
            exc = rs.outcome.exception() if rs.outcome else None
            logger.warning(
                "GET %s attempt %d/%d failed (%s); retrying",
                resource,
                rs.attempt_number,
                self._max_attempts,
                type(exc).__name__ if exc else "?",
            )

        response: httpx.Response | None = None
        try:
            async for attempt in AsyncRetrying(
                wait=_feed_wait,
                stop=stop_after_attempt(self._max_attempts),
                retry=retry_if_exception_type(
                    (_RetryableServerError, FeedRateLimitError, httpx.TransportError)
                ),
                reraise=True,
                before_sleep=_before_sleep,
            ):
                with attempt:
                    response = await self._single_request(url, resource)
        except httpx.TransportError as exc:
            raise FeedFetchError(resource, f"Transport error: {exc!r}") from exc

        assert response is not None, "tenacity exited without a response or exception"
        return response

    async def get_json(self, url: str) -> dict[str, Any]:
        """GET *url* and decode the body as a JSON object.

        Raises:
            FeedParseError: If the body is not a JSON object.
            FeedFetchError: See :meth:`get`.
        """
        response = await self.get(url)
        resource = _resource_label(url)
        try:
            body = response.json()
        except ValueError as exc:
            raise FeedParseError(resource, f"Response is not JSON: {exc}") from exc
        if not isinstance(body, dict):
            raise FeedParseError(resource, f"Expected a JSON object, got {type(body).__name__}")
        return body

    async def close(self) -> None:
        """Close the connection pool.  Safe to call more than once."""
        if self._http is not None and not self._http.is_closed:
            await self._http.aclose()
            logger.debug("Feed HTTP session closed.")
        self._http = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._http is None or self._http.is_closed:
            self._http = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                follow_redirects=True,
                headers={
                    "Accept": "application/json",
                    "Authorization": f"Bearer {self._token}",
                },
            )
            logger.debug("Feed HTTP session opened (base_url=%s).", self._base_url)
        return self._http

    async def _single_request(self, url: str, resource: str) -> httpx.Response:
        client = await self._ensure_client()
        response = await client.get(url)

        logger.debug(
            "GET %s → %d (%d bytes)",
            resource,
            response.status_code,
            len(response.content),
        )

        if response.is_success:
            return response

        if response.status_code == 429:
            retry_after = _parse_retry_after(response)
            logger.warning("Feed rate limit on %s; retry_after=%.1f s", resource, retry_after)
            raise FeedRateLimitError(resource, retry_after=retry_after)

        if response.status_code in _RETRYABLE_STATUS:
            raise _RetryableServerError(resource, f"Transient HTTP {response.status_code}")

        if response.status_code in _AUTH_STATUS:
            raise FeedAuthError(resource, f"HTTP {response.status_code}: token rejected")

        raise FeedFetchError(
            resource,
            f"HTTP {response.status_code}: {response.text[:200]}",
        )


def _parse_retry_after(response: httpx.Response) -> float:
    """Back-off from a 429 ``Retry-After`` header; defaults to 1 s."""
    header = response.headers.get("retry-after", "")
    if header:
        try:
            return max(float(header), 1.0)
        except ValueError:
            logger.debug("Unparseable Retry-After header %r.", header)
    return 1.0

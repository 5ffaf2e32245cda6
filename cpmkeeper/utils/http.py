"""
Async access to the NuGet v3 API.

Wraps :class:`httpx.AsyncClient` with the retry policy cpmkeeper needs
for ``api.nuget.org``:

- timeouts, connection errors and ``5xx`` answers are retried with
  exponential backoff;
- ``429`` answers wait for the server's ``Retry-After`` (seconds or an
  HTTP date) without consuming a retry;
- a ``404`` becomes a :class:`NuGetError` naming the package the URL
  refers to, when it refers to one.
"""

from __future__ import annotations

import random
import asyncio
import httpx
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, List, Optional

from cpmkeeper.utils.logger import get_logger
from cpmkeeper.__version__ import __version__
from cpmkeeper.exceptions import NetworkError, NuGetError
from cpmkeeper.constants import (
    DEFAULT_TIMEOUT,
    DEFAULT_MAX_RETRIES,
    USER_AGENT_TEMPLATE,
)

logger = get_logger("http")

#: Throttled answers tolerated before giving up.
MAX_THROTTLED_RETRIES = 5

#: Longest ``Retry-After`` honoured, in seconds.
MAX_RETRY_AFTER = 60.0


def package_id_from_url(url: str) -> Optional[str]:
    """Return the package id a NuGet resource URL points at.

    Package-scoped resources put the id right after the resource segment:
    ``/v3-flatcontainer/{id}/...`` and ``/registration*/{id}/...``.

    Example::

        >>> package_id_from_url(
        ...     "https://api.nuget.org/v3-flatcontainer/newtonsoft.json/index.json"
        ... )
        'newtonsoft.json'
        >>> package_id_from_url("https://api.nuget.org/v3/vulnerabilities/index.json")
    """
    try:
        path = httpx.URL(url).path
    except httpx.InvalidURL:
        return None

    segments: List[str] = [s for s in path.split("/") if s]
    for resource, package_id in zip(segments, segments[1:]):
        if resource == "v3-flatcontainer" or resource.startswith("registration"):
            return package_id
    return None


def parse_retry_after(
    value: Optional[str],
    *,
    default: float = 1.0,
    now: Optional[datetime] = None,
) -> float:
    """Convert a ``Retry-After`` header into seconds to wait.

    Args:
        value: Header value, either delta-seconds or an HTTP date.
        default: Delay used when the header is absent or unparseable.
        now: Reference time for HTTP dates (defaults to the current UTC time).

    Returns:
        Delay clamped to ``[0, MAX_RETRY_AFTER]``.
    """
    if not value:
        return default

    value = value.strip()
    if value.isdigit():
        delay = float(value)
    else:
        try:
            when = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return default
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        delay = (when - (now or datetime.now(timezone.utc))).total_seconds()

    return min(max(delay, 0.0), MAX_RETRY_AFTER)


class HTTPClient:
    """Shared async client for NuGet endpoints.

    Args:
        timeout: Per-request timeout in seconds.
        max_retries: Retries after the first attempt for transient failures.
        max_concurrency: Upper bound on requests in flight.
        user_agent: ``User-Agent`` header, ``cpmkeeper/<version>`` by default.
        verify_ssl: Verify TLS certificates.

    Example:
        >>> async with HTTPClient() as client:
        ...     pages = await client.get_json(NUGET_VULNERABILITY_INDEX, expected=list)
    """

    def __init__(
        self,
        *,
        timeout: int = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_concurrency: int = 8,
        user_agent: Optional[str] = None,
        verify_ssl: bool = True,
    ) -> None:
        self.timeout = timeout
        self.max_retries = max_retries
        self.max_concurrency = max_concurrency
        self.user_agent = user_agent or USER_AGENT_TEMPLATE.format(version=__version__)
        self.verify_ssl = verify_ssl

        self._client: Optional[httpx.AsyncClient] = None
        self._semaphore: Optional[asyncio.Semaphore] = None

    async def __aenter__(self) -> "HTTPClient":
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                http2=True,
                verify=self.verify_ssl,
                follow_redirects=True,
                headers={
                    "User-Agent": self.user_agent,
                    "Accept": "application/json",
                },
            )
        return self._client

    def _slots(self) -> asyncio.Semaphore:
        # Created lazily so it binds to the running loop.
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.max_concurrency)
        return self._semaphore

    async def close(self) -> None:
        """Close the underlying client. Safe to call more than once."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """GET *url*, retrying transient failures.

        Raises:
            NuGetError: The resource does not exist (404).
            NetworkError: Any other client error, or retries exhausted.
        """
        client = await self._ensure_client()
        target = url.strip().strip("\"'")
        attempts = self.max_retries + 1
        attempt = 0
        throttled = 0
        last_error: Optional[BaseException] = None

        while attempt < attempts:
            try:
                async with self._slots():
                    response = await client.request("GET", target, **kwargs)
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                last_error = exc
                logger.warning(
                    "%s for %s (attempt %d/%d)",
                    type(exc).__name__,
                    target,
                    attempt + 1,
                    attempts,
                )
            else:
                status = response.status_code
                if status == 429:
                    throttled += 1
                    if throttled > MAX_THROTTLED_RETRIES:
                        raise NetworkError(
                            f"Rate limit exceeded after {MAX_THROTTLED_RETRIES} retries",
                            url=target,
                            status_code=429,
                        )
                    delay = parse_retry_after(response.headers.get("Retry-After"))
                    logger.warning(
                        "NuGet throttled the request, waiting %.1fs (%d/%d)",
                        delay,
                        throttled,
                        MAX_THROTTLED_RETRIES,
                    )
                    await asyncio.sleep(delay)
                    continue

                if status < 400:
                    return response
                if status < 500:
                    raise _client_error(target, response)

                last_error = NetworkError(
                    f"HTTP {status} from {target}", url=target, status_code=status
                )
                logger.warning(
                    "HTTP %d for %s (attempt %d/%d)",
                    status,
                    target,
                    attempt + 1,
                    attempts,
                )

            attempt += 1
            if attempt < attempts:
                delay = 2 ** (attempt - 1) + random.uniform(0.0, 0.3)
                logger.debug("Retrying in %.2fs", delay)
                await asyncio.sleep(delay)

        raise NetworkError(
            f"Request failed after {attempts} attempts: {target}",
            url=target,
        ) from last_error

    async def get_json(
        self,
        url: str,
        *,
        expected: type = dict,
        **kwargs: Any,
    ) -> Any:
        """Fetch *url* and decode its JSON body.

        Args:
            url: Endpoint to fetch.
            expected: Top-level JSON type the caller requires (``dict``
                for package resources, ``list`` for the vulnerability index).

        Raises:
            NetworkError: The body is not JSON or not of the expected type.
        """
        response = await self.get(url, **kwargs)

        try:
            data = response.json()
        except ValueError as exc:
            raise NetworkError(
                f"Invalid JSON response from {url}",
                url=url,
                response_body=response.text,
            ) from exc

        if not isinstance(data, expected):
            raise NetworkError(
                f"Expected JSON {expected.__name__} from {url}",
                url=url,
                response_body=response.text,
            )
        return data


def _client_error(url: str, response: httpx.Response) -> NetworkError:
    if response.status_code == 404:
        package_id = package_id_from_url(url)
        subject = f"Package '{package_id}'" if package_id else "Resource"
        return NuGetError(
            f"{subject} not found on NuGet: {url}",
            package_id=package_id,
            url=url,
            status_code=404,
        )
    return NetworkError(
        f"HTTP {response.status_code} error for {url}",
        url=url,
        status_code=response.status_code,
        response_body=response.text,
    )

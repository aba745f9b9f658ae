"""Request helper shared by the marketplace, sourcing and Notion clients.

Every upstream API is called under an ``ApiPolicy``. Transport failures, 5xx
and 429 are retried with exponential backoff plus jitter; rejected
credentials and missing resources fail immediately.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from product_scout.config import settings

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)

JSON_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "Mozilla/5.0 (compatible; product-scout/0.1)",
}


def _default_timeout() -> httpx.Timeout:
    return httpx.Timeout(settings.http_read_timeout, connect=settings.http_connect_timeout)


@dataclass(frozen=True)
class ApiPolicy:
    """How one upstream API is called."""

    name: str
    max_attempts: int = 3
    timeout: httpx.Timeout = field(default_factory=_default_timeout)
    treat_404_as_permanent: bool = True


class ApiError(RuntimeError):
    """Upstream API call failed."""


class BlockedError(ApiError):
    """Credentials rejected (401/403)."""


class PermanentURLError(ApiError):
    """Resource does not exist (404)."""


class TransientFetchError(ApiError):
    """Retryable failure: 5xx, transport error or an unexpected payload."""


class RateLimitedError(ApiError):
    """429 from upstream; ``retry_after`` is the server's hint in seconds."""

    def __init__(self, retry_after: Optional[float] = None):
        hint = "" if retry_after is None else f", retry after {retry_after:g}s"
        super().__init__(f"rate limited{hint}")
        self.retry_after = retry_after


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        # HTTP-date form is not worth parsing here
        return None


def check_response(resp: httpx.Response, policy: ApiPolicy) -> httpx.Response:
    """Map an error status to the matching ApiError; pass successes through."""
    status = resp.status_code
    where = f"{policy.name}: HTTP {status} from {resp.request.url}"

    if status in (401, 403):
        raise BlockedError(where)
    if status == 404 and policy.treat_404_as_permanent:
        raise PermanentURLError(where)
    if status == 429:
        raise RateLimitedError(_parse_retry_after(resp.headers.get("Retry-After")))
    if status >= 500:
        raise TransientFetchError(where)
    if status >= 400:
        raise ApiError(where)
    return resp


def _backoff(attempt: int) -> float:
    return (2 ** attempt) + random.random()


def _retry_delay(error: Exception, attempt: int) -> float:
    if isinstance(error, RateLimitedError) and error.retry_after is not None:
        return error.retry_after
    return _backoff(attempt)


async def request_with_policy(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    policy: ApiPolicy,
    headers: Optional[dict[str, str]] = None,
    params: Optional[dict[str, Any]] = None,
    json: Any = None,
) -> httpx.Response:
    """
    Send one logical request, retrying what is worth retrying.

    Raises:
        BlockedError: 401 or 403
        PermanentURLError: 404 (when the policy treats it as permanent)
        RateLimitedError: still rate limited on the last attempt
        TransientFetchError: 5xx or transport failure on the last attempt
        ApiError: any other 4xx
    """
    merged_headers = {**JSON_HEADERS, **(headers or {})}
    attempt = 0

    while True:
        attempt += 1
        try:
            resp = await client.request(
                method,
                url,
                headers=merged_headers,
                params=params,
                json=json,
                timeout=policy.timeout,
                follow_redirects=True,
            )
            return check_response(resp, policy)
        except TRANSPORT_ERRORS as e:
            if attempt >= policy.max_attempts:
                raise TransientFetchError(
                    f"{policy.name}: {type(e).__name__} on every attempt ({attempt}) for {url}"
                ) from e
            error: Exception = e
        except (RateLimitedError, TransientFetchError) as e:
            if attempt >= policy.max_attempts:
                raise
            error = e

        delay = _retry_delay(error, attempt)
        logger.warning(
            f"{policy.name}: {type(error).__name__} ({error}); "
            f"try {attempt + 1}/{policy.max_attempts} in {delay:.1f}s"
        )
        await asyncio.sleep(delay)


async def fetch_with_policy(
    client: httpx.AsyncClient,
    url: str,
    policy: ApiPolicy,
    headers: Optional[dict[str, str]] = None,
    params: Optional[dict[str, Any]] = None,
) -> httpx.Response:
    """GET shorthand for request_with_policy."""
    return await request_with_policy(client, "GET", url, policy, headers=headers, params=params)


def get_policy(name: str) -> ApiPolicy:
    """Policy for a named upstream API, built from the current settings."""
    return ApiPolicy(name=name, max_attempts=settings.http_max_attempts)

"""
Shared async HTTP helpers for source APIs.

Requests are retried with exponential back-off on transport errors and on
throttling/gateway statuses. A 404 is reported as "no document" (None).
"""

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from ddi_miner.config import settings

TRANSIENT_STATUSES = frozenset({429, 502, 503, 504})


def make_client() -> httpx.AsyncClient:
    """Async client with the configured timeout and User-Agent."""
    return httpx.AsyncClient(
        timeout=settings.http_timeout,
        headers={"User-Agent": settings.user_agent},
        follow_redirects=True,
    )


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in TRANSIENT_STATUSES
    return False


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=30),
    retry=retry_if_exception(is_transient),
    reraise=True,
)
async def fetch(
    client: httpx.AsyncClient,
    url: str,
    params: dict | None = None,
) -> httpx.Response | None:
    """
    GET a URL with retries.

    Returns:
        The response, or None for 404

    Raises:
        httpx.HTTPError: on non-2xx statuses or once retries are exhausted
    """
    response = await client.get(url, params=params)
    if response.status_code == 404:
        return None
    response.raise_for_status()
    return response

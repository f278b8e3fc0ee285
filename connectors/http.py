"""
Outbound HTTP helper for provider calls.

Every token exchange, profile lookup and credential check goes through
``send_with_retry`` so they share the same timeout and the same rule:
retry on transport failures only, never on an HTTP status.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx

from config.settings import Settings

logger = logging.getLogger(__name__)

_RETRY_BACKOFF_SECONDS = 0.5


def build_client(settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=settings.oauth_http_timeout_seconds,
        transport=transport,
        headers={"User-Agent": settings.oauth_user_agent},
    )


@asynccontextmanager
async def client_scope(
    settings: Settings,
    client: Optional[httpx.AsyncClient] = None,
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield ``client`` if one was injected, else a short-lived one closed on exit."""
    if client is not None:
        yield client
        return
    async with build_client(settings) as owned:
        yield owned


async def send_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    retries: int = 1,
    **kwargs: Any,
) -> httpx.Response:
    """
    Issue a request, retrying up to ``retries`` times on
    ``httpx.TransportError``. Any response, 4xx and 5xx included, is
    returned to the caller untouched.
    """
    for attempt in range(retries + 1):
        try:
            return await client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            if attempt >= retries:
                raise
            logger.warning(
                "%s %s attempt %d/%d failed: %s",
                method,
                httpx.URL(url).host,
                attempt + 1,
                retries + 1,
                exc.__class__.__name__,
            )
            await asyncio.sleep(_RETRY_BACKOFF_SECONDS * (2**attempt))
    raise RuntimeError("unreachable")

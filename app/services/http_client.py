"""
Shared HTTP client helpers for the Shopify upstreams.
One long-lived AsyncClient per upstream; every call is a single attempt (no retries)
with the configured timeout. Transport failures become ShopifyUpstreamError.
"""
import logging
from typing import Any, Optional

import httpx

from app.errors import ShopifyUpstreamError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def create_async_client(
    base_url: str,
    headers: dict,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """Build the AsyncClient for one upstream. `transport` lets tests plug in httpx.MockTransport."""
    headers = {"Content-Type": "application/json", **headers}
    return httpx.AsyncClient(base_url=base_url, headers=headers, timeout=timeout, transport=transport)


def _log_response(method: str, url: str, status: int, body_preview: str = "") -> None:
    """Log every upstream call. No tokens or request bodies."""
    if status >= 400:
        logger.warning("Shopify API %s %s -> %s %s", method, url, status, body_preview[:200] if body_preview else "")
    else:
        logger.info("Shopify API %s %s -> %s", method, url, status)


async def send(client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> httpx.Response:
    """
    Perform one request. HTTP error statuses are returned to the caller (each client maps
    them differently); only connection/timeout problems are raised here.
    """
    try:
        resp = await client.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        logger.error("Shopify API %s %s failed: %s", method, url, e)
        raise ShopifyUpstreamError(f"Shopify request failed: {e}") from e
    _log_response(method, url, resp.status_code, resp.text if resp.status_code >= 400 else "")
    return resp

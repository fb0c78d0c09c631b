"""Periodic self-ping that keeps the service awake on idle-evicting hosts.

Free hosting tiers stop a container after a period without traffic.  When an
externally reachable URL is configured, the application runs
:func:`keep_alive_loop` as a background task that requests ``<url>/ping``
every ``interval_seconds``.  A failed ping is logged and otherwise ignored;
the loop only ends when its task is cancelled.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

logger = logging.getLogger(__name__)


def ping_url(external_url: str) -> str:
    """Return the ``/ping`` URL for *external_url*, adding ``https://`` if no scheme is given."""
    url = external_url.strip().rstrip("/")
    if "://" not in url:
        url = f"https://{url}"
    return f"{url}/ping"


async def ping_once(
    external_url: str,
    *,
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """Send one keep-alive ping.

    Args:
        external_url: Public base URL of this service.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests).

    Returns:
        ``True`` if the ping got a 2xx answer, ``False`` otherwise.
    """
    url = ping_url(external_url)
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(url)
            response.raise_for_status()
    except Exception as e:
        logger.warning(f"Keep-alive ping failed: {e}")
        return False
    logger.info("Keep-alive ping sent")
    return True


async def keep_alive_loop(
    external_url: str,
    interval_seconds: float,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> None:
    """Ping *external_url* forever, waiting *interval_seconds* before each ping."""
    while True:
        await asyncio.sleep(interval_seconds)
        await ping_once(external_url, transport=transport)

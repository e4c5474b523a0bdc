# app/keepalive.py
import asyncio
from typing import Optional

import httpx

import config
from logging_setup import get_logger

logger = get_logger(__name__)


async def ping_once(client: httpx.AsyncClient, url: str) -> bool:
    """GET the health URL once. Never raises; outcome is logged."""
    try:
        response = await client.get(url)
    except httpx.HTTPError as e:
        logger.error("Ping failed", extra={"url": url, "error": str(e)})
        return False

    if response.is_success:
        logger.info("Ping succeeded", extra={"url": url, "status": response.status_code})
        return True

    logger.warning("Ping returned non-OK status", extra={"url": url, "status": response.status_code})
    return False


async def ping_forever(
    url: Optional[str] = None,
    interval: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> None:
    """Ping immediately, then every ``interval`` seconds until cancelled."""
    url = url or config.ping_url()
    interval = interval if interval is not None else config.PING_INTERVAL_SECONDS

    async with httpx.AsyncClient(timeout=30, transport=transport) as client:
        while True:
            await ping_once(client, url)
            await asyncio.sleep(interval)


def start_keepalive() -> "asyncio.Task[None]":
    return asyncio.create_task(ping_forever(), name="keepalive")


async def stop_keepalive(task: "asyncio.Task[None]") -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass

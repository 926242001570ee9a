"""Shared httpx client for the collaborator services.

One ``AsyncClient`` (and therefore one connection pool) serves every Brave
and Google request in the process. Its pool limits bound how many outbound
requests run at once.
"""

import logging

import httpx

from agent_hums.constants import HTTP_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

HTTP_LIMITS = httpx.Limits(max_connections=50, max_keepalive_connections=20)

_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    global _client
    if _client is None or _client.is_closed:
        _client = httpx.AsyncClient(
            timeout=httpx.Timeout(HTTP_TIMEOUT_SECONDS),
            limits=HTTP_LIMITS,
            headers={"User-Agent": "agent-hums/1.0"},
        )
        logger.info("HTTP client pool created (timeout=%.0fs)", HTTP_TIMEOUT_SECONDS)
    return _client


async def close_http_client() -> None:
    global _client
    if _client is not None and not _client.is_closed:
        await _client.aclose()
        logger.info("HTTP client pool closed")
    _client = None

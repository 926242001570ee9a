import logging

import httpx

from agent_hums.constants import BRAVE_MAX_RESULTS, BRAVE_SEARCH_URL, HTTP_TIMEOUT_SECONDS
from agent_hums.errors import ToolExecutionError
from agent_hums.schemas import SearchResult
from agent_hums.utils.http_pool import get_http_client

logger = logging.getLogger(__name__)


class BraveSearchClient:
    """Web search through the Brave Search API (Spanish, Mexico locale)."""

    def __init__(self, api_key: str, http_client: httpx.AsyncClient | None = None):
        self._api_key = api_key
        self._client = http_client

    @property
    def _http(self) -> httpx.AsyncClient:
        # Without an injected client, use the process pool, which the app
        # lifespan may close and recreate.
        return self._client if self._client is not None else get_http_client()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} configured={bool(self._api_key)}>"

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def search(self, query: str, limit: int = 5) -> list[SearchResult]:
        if not self._api_key:
            raise ToolExecutionError("BRAVE_SEARCH_API_KEY no está configurada")
        if not query.strip():
            raise ToolExecutionError("La búsqueda necesita un texto de consulta")

        logger.info("Brave search: query=%r limit=%d", query[:100], limit)
        try:
            response = await self._http.get(
                BRAVE_SEARCH_URL,
                headers={
                    "X-Subscription-Token": self._api_key,
                    "Accept": "application/json",
                    "Accept-Encoding": "gzip",
                },
                params={
                    "q": query,
                    "count": max(1, min(limit, BRAVE_MAX_RESULTS)),
                    "search_lang": "es",
                    "country": "MX",
                    "safesearch": "moderate",
                    "freshness": "pweek",
                    "text_decorations": "false",
                },
                timeout=HTTP_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ToolExecutionError(
                f"Error en Brave Search API: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise ToolExecutionError(f"Error en Brave Search API: {type(e).__name__}") from e

        web = response.json().get("web") or {}
        items = web.get("results")
        if not isinstance(items, list):
            raise ToolExecutionError("Formato de respuesta inesperado de Brave Search API")

        results = [
            SearchResult(
                title=item.get("title") or "Sin título",
                url=item.get("url") or "",
                snippet=item.get("description") or "Sin descripción disponible",
            )
            for item in items
        ]
        logger.info("Brave search returned %d result(s)", len(results))
        return results

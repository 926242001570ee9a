"""Minimal bearer-token client shared by the Calendar and Drive services.

Access tokens come from the browser (``X-Calendar-Token`` / ``X-Drive-Token``
request headers) and are passed per call; nothing here stores or refreshes
them.
"""

import logging
from typing import Any

import httpx

from agent_hums.errors import ToolExecutionError
from agent_hums.utils.http_pool import get_http_client

logger = logging.getLogger(__name__)

_STATUS_MESSAGES = {
    401: "Error de autenticación: el token de acceso es inválido o ha expirado.",
    403: "Error de permisos: no tienes autorización para acceder a este recurso.",
    404: "Error: recurso no encontrado.",
}


class GoogleApiClient:
    service_name = "Google API"

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        self._client = http_client

    @property
    def _http(self) -> httpx.AsyncClient:
        return self._client if self._client is not None else get_http_client()

    def _require_token(self, access_token: str | None) -> str:
        if not access_token:
            raise ToolExecutionError(
                f"Se requiere un token de acceso OAuth de Google para {self.service_name}. "
                "Verifica que la integración esté conectada."
            )
        return access_token

    async def _request(
        self,
        method: str,
        url: str,
        access_token: str | None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        token = self._require_token(access_token)
        headers = {"Authorization": f"Bearer {token}", **kwargs.pop("headers", {})}
        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning("%s %s %s failed: HTTP %d", self.service_name, method, url, status)
            message = _STATUS_MESSAGES.get(status, f"Error en {self.service_name}: HTTP {status}")
            raise ToolExecutionError(message) from e
        except httpx.HTTPError as e:
            logger.warning("%s %s %s failed: %s", self.service_name, method, url, e)
            raise ToolExecutionError(f"Error en {self.service_name}: {type(e).__name__}") from e

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

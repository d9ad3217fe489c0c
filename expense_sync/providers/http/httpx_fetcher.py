"""httpx-backed :class:`IFetcher` for the expense API.

Sends JSON with the session cookie attached and maps every failure mode of
a call onto :class:`RequestFailed`:

    transport error (connect, timeout, ...)  → status=None
    non-2xx response                         → status=<code>, body=<text>
    2xx with an undecodable JSON body        → status=<code>, body=<text>
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from expense_sync.config.settings import Settings
from expense_sync.interfaces.fetcher import IFetcher
from expense_sync.utils.errors import RequestFailed

logger = structlog.get_logger(logger_name=__name__)

# Cap on how much of an error body is kept on the exception.
_MAX_ERROR_BODY = 2000


class HttpxFetcher(IFetcher):
    """JSON fetcher over an ``httpx.AsyncClient``.

    Parameters
    ----------
    settings:
        Provides the API base URL, session cookie and timeout.
    http_client:
        Optional pre-built client (tests pass one with a mock or ASGI
        transport).  When omitted the fetcher builds and owns its client.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._base_url = settings.api_base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=settings.request_timeout_seconds,
            cookies=settings.session_cookies(),
            headers={"Accept": "application/json"},
        )

    # ------------------------------------------------------------------
    # IFetcher implementation
    # ------------------------------------------------------------------

    async def get(self, resource: str) -> Any:
        return await self._request("GET", resource)

    async def post(self, resource: str, body: Any) -> Any:
        return await self._request("POST", resource, body)

    async def patch(self, resource: str, body: Any) -> Any:
        return await self._request("PATCH", resource, body)

    async def delete(self, resource: str, body: Any = None) -> Any:
        return await self._request("DELETE", resource, body)

    def get_provider_name(self) -> str:
        return "api"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _url(self, resource: str) -> str:
        if resource.startswith(("http://", "https://")):
            return resource
        return f"{self._base_url}/{resource.lstrip('/')}"

    async def _request(self, method: str, resource: str, body: Any = None) -> Any:
        url = self._url(resource)
        try:
            if body is None:
                response = await self._client.request(method, url)
            else:
                response = await self._client.request(method, url, json=body)
        except httpx.HTTPError as exc:
            logger.warning("api_transport_error", method=method, url=url, error=str(exc))
            raise RequestFailed(
                message=f"{method} {resource} failed: {exc}",
                status=None,
                body="",
                provider_name=self.get_provider_name(),
            ) from exc

        if not response.is_success:
            text = response.text[:_MAX_ERROR_BODY]
            logger.warning(
                "api_error_status",
                method=method,
                url=url,
                status=response.status_code,
            )
            raise RequestFailed(
                message=text or f"HTTP {response.status_code} on {method} {resource}",
                status=response.status_code,
                body=text,
                provider_name=self.get_provider_name(),
            )

        logger.debug("api_request", method=method, url=url, status=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RequestFailed(
                message=f"Malformed JSON from {method} {resource}",
                status=response.status_code,
                body=response.text[:_MAX_ERROR_BODY],
                provider_name=self.get_provider_name(),
            ) from exc

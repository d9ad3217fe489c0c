"""Object-store adapter that PUTs receipt bytes to a signed URL.

The URL comes from the signing endpoint and already carries its own
authorization, so this client sends no session cookie.  Files on disk are
streamed in chunks with an explicit Content-Length (presigned PUT targets
generally refuse chunked transfer encoding).
"""

from __future__ import annotations

import httpx
import structlog

from expense_sync.config.settings import Settings
from expense_sync.interfaces.object_store import IObjectStore
from expense_sync.models.upload import LocalFile
from expense_sync.utils.errors import RequestFailed

logger = structlog.get_logger(logger_name=__name__)


class SignedUrlObjectStore(IObjectStore):
    """Uploads via HTTP ``PUT`` to a pre-signed destination."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=settings.upload_timeout_seconds)

    async def put(self, destination: str, local_file: LocalFile, content_type: str) -> None:
        """Send the bytes of *local_file* to *destination*.

        Transport errors and local read errors (the file vanished or became
        unreadable) both surface as :class:`RequestFailed`.
        """
        try:
            size = local_file.size
            headers = {
                "Content-Type": content_type,
                "Content-Length": str(size),
            }
            content = local_file.data if local_file.data is not None else local_file.aiter_bytes()
            response = await self._client.put(destination, content=content, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("object_store_transport_error", filename=local_file.filename, error=str(exc))
            raise RequestFailed(
                message=f"Upload of {local_file.filename} failed: {exc}",
                status=None,
                provider_name=self.get_provider_name(),
            ) from exc
        except OSError as exc:
            logger.warning("object_store_read_error", filename=local_file.filename, error=str(exc))
            raise RequestFailed(
                message=f"Could not read {local_file.filename}: {exc}",
                status=None,
                provider_name=self.get_provider_name(),
            ) from exc

        if not response.is_success:
            raise RequestFailed(
                message=f"Object store rejected {local_file.filename} with HTTP {response.status_code}",
                status=response.status_code,
                body=response.text[:2000],
                provider_name=self.get_provider_name(),
            )

        logger.info(
            "object_stored",
            filename=local_file.filename,
            size=size,
            status=response.status_code,
        )

    def get_provider_name(self) -> str:
        return "object_store"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

"""Abstract base class for the JSON HTTP boundary.

Every call the core makes to the expense API goes through an
:class:`IFetcher`.  Implementations decide the transport; the contract only
fixes the failure shape: anything other than a successful, decodable
response raises :class:`~expense_sync.utils.errors.RequestFailed`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class IFetcher(ABC):
    """Contract for JSON request/response calls against the expense API.

    ``resource`` is a path relative to the API base URL, e.g.
    ``"/expenses/7"``.  Return values are decoded JSON, or ``None`` when
    the server sent an empty body.
    """

    @abstractmethod
    async def get(self, resource: str) -> Any:
        """Fetch *resource*."""

    @abstractmethod
    async def post(self, resource: str, body: Any) -> Any:
        """Create under *resource* with JSON *body*."""

    @abstractmethod
    async def patch(self, resource: str, body: Any) -> Any:
        """Partially update *resource* with JSON *body*."""

    @abstractmethod
    async def delete(self, resource: str, body: Any = None) -> Any:
        """Delete *resource*."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short name used in error messages and logs."""

    async def aclose(self) -> None:
        """Release transport resources.  Default: nothing to release."""

"""Abstract base class for direct-to-storage uploads.

The expense API never sees receipt bytes.  It hands out a signed,
single-use, time-bounded URL and the client writes the bytes there itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from expense_sync.models.upload import LocalFile


class IObjectStore(ABC):
    """Contract for writing raw bytes to a signed destination URL."""

    @abstractmethod
    async def put(self, destination: str, local_file: LocalFile, content_type: str) -> None:
        """Store the bytes of *local_file* at *destination*.

        Parameters
        ----------
        destination:
            Absolute signed URL returned by the signing endpoint.
        local_file:
            The file whose bytes are sent.
        content_type:
            Declared content type; must match what was signed.

        Raises
        ------
        RequestFailed
            On a non-success status, a transport error, or when the local
            file cannot be read.  A partial object may be left behind; it is
            not cleaned up.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short name used in error messages and logs."""

    async def aclose(self) -> None:
        """Release transport resources.  Default: nothing to release."""

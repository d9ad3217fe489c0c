"""Receipt upload models: the local file, the session state machine and its result.

An upload runs through three remote steps, each with its own failure
consequence:

    SIGNING ──→ TRANSFERRING ──→ ATTACHING ──→ DONE
       │             │               │
       └─────────────┴───────────────┴──→ FAILED

UploadSession is a mutable dataclass (like the pipeline's internal progress
snapshots) because the protocol updates it in place as phases complete and
it is never serialized.  LocalFile, SignedDestination and UploadResult are
immutable values.
"""

from __future__ import annotations

import asyncio
import mimetypes
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from expense_sync.models.expense import Expense
from expense_sync.utils.errors import UploadStateError

DEFAULT_CONTENT_TYPE = "application/octet-stream"
_CHUNK_SIZE = 64 * 1024


class UploadPhase(str, Enum):  # noqa: UP042
    """Phases of a receipt upload session."""

    SIGNING = "sign"
    TRANSFERRING = "transfer"
    ATTACHING = "attach"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (UploadPhase.DONE, UploadPhase.FAILED)


_TRANSITIONS: dict[UploadPhase, frozenset[UploadPhase]] = {
    UploadPhase.SIGNING: frozenset({UploadPhase.TRANSFERRING, UploadPhase.FAILED}),
    UploadPhase.TRANSFERRING: frozenset({UploadPhase.ATTACHING, UploadPhase.FAILED}),
    UploadPhase.ATTACHING: frozenset({UploadPhase.DONE, UploadPhase.FAILED}),
    UploadPhase.DONE: frozenset(),
    UploadPhase.FAILED: frozenset(),
}


@dataclass(frozen=True)
class LocalFile:
    """A file chosen by the user, held in memory or read from disk."""

    filename: str
    content_type: str = DEFAULT_CONTENT_TYPE
    data: bytes | None = None
    path: Path | None = None

    def __post_init__(self) -> None:
        if (self.data is None) == (self.path is None):
            raise ValueError("LocalFile needs exactly one of data or path")

    @classmethod
    def from_path(cls, path: str | Path, content_type: str | None = None) -> LocalFile:
        """Describe a file on disk, guessing its content type from the name."""
        p = Path(path)
        guessed, _ = mimetypes.guess_type(p.name)
        return cls(
            filename=p.name,
            content_type=content_type or guessed or DEFAULT_CONTENT_TYPE,
            path=p,
        )

    @property
    def size(self) -> int:
        if self.data is not None:
            return len(self.data)
        return self.path.stat().st_size  # type: ignore[union-attr]

    async def aiter_bytes(self, chunk_size: int = _CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Yield the file content in chunks without blocking the event loop."""
        if self.data is not None:
            yield self.data
            return
        with open(self.path, "rb") as fh:  # type: ignore[arg-type]
            while True:
                chunk = await asyncio.to_thread(fh.read, chunk_size)
                if not chunk:
                    break
                yield chunk


class SignedDestination(BaseModel):
    """Response of the signing endpoint."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    upload_url: str = Field(alias="uploadUrl", min_length=1)
    key: str = Field(min_length=1)


@dataclass
class UploadSession:
    """State of one in-flight receipt upload.

    Owned by the single caller that created it.  ``destination`` and
    ``object_key`` are filled in by the signing step and kept on failure so
    an orphaned object can be traced.
    """

    expense_id: int
    local_file: LocalFile
    phase: UploadPhase = UploadPhase.SIGNING
    destination: str | None = None
    object_key: str | None = None
    failed_phase: UploadPhase | None = None
    error: BaseException | None = field(default=None, repr=False)

    def advance(self, phase: UploadPhase) -> None:
        """Move to *phase*, rejecting anything but the next legal step."""
        if phase not in _TRANSITIONS[self.phase]:
            raise UploadStateError(
                f"Cannot move upload for expense {self.expense_id} "
                f"from {self.phase.value} to {phase.value}"
            )
        self.phase = phase

    def fail(self, error: BaseException) -> UploadPhase:
        """Record *error* against the current phase and enter FAILED.

        Returns the phase that failed.
        """
        failed = self.phase
        self.advance(UploadPhase.FAILED)
        self.failed_phase = failed
        self.error = error
        return failed


@dataclass(frozen=True)
class UploadResult:
    """Outcome of a session that reached DONE."""

    expense_id: int
    object_key: str
    destination: str
    expense: Expense | None = None

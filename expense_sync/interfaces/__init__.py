"""Public interface definitions for the collaborators the core talks to.

The core (cache, read path, coordinator, upload protocol) only ever sees
these abstract base classes.  Concrete adapters live in
``expense_sync/providers/`` and are wired together in
``expense_sync/main.py``; tests inject mocks or in-process fakes.

    Interface      →  Concrete implementation
    ─────────────────────────────────────────────────────────
    IFetcher       →  HttpxFetcher        (providers/http/)
    IObjectStore   →  SignedUrlObjectStore (providers/storage/)
"""

from expense_sync.interfaces.fetcher import IFetcher
from expense_sync.interfaces.object_store import IObjectStore

__all__ = ["IFetcher", "IObjectStore"]

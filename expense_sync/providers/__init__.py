"""Concrete adapters for the interfaces in ``expense_sync.interfaces``.

- ``http``    -- HttpxFetcher, the JSON client for the expense API.
- ``storage`` -- SignedUrlObjectStore, raw-byte PUTs to signed URLs.
"""

"""Object-store providers.

SignedUrlObjectStore writes straight to whatever storage service issued the
signed URL (S3-compatible buckets, the reference backend's /storage route).
"""

from expense_sync.providers.storage.signed_url_store import SignedUrlObjectStore

__all__ = ["SignedUrlObjectStore"]

"""HTTP providers for the expense API."""

from expense_sync.providers.http.httpx_fetcher import HttpxFetcher

__all__ = ["HttpxFetcher"]

"""Client-side entity cache.

EntityCache is constructed once per client session (see
``expense_sync.main.build_client``) and injected into the read path and the
mutation coordinator.  It is never looked up globally.
"""

from expense_sync.cache.entity_cache import CacheListener, EntityCache

__all__ = ["CacheListener", "EntityCache"]

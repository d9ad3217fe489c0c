"""expense-sync: optimistic client cache and receipt uploads for an expense API.

The engine keeps a keyed cache of server data, applies mutations to it
optimistically and rolls them back on failure, and uploads receipts in
three phases (sign, store, attach).  See ``expense_sync.main.build_client``
for how the pieces are wired.
"""

__version__ = "0.1.0"

"""Cache synchronization engine.

- **query_reader** -- read path: fetch-on-stale, shared in-flight fetches,
  advisory cancellation.
- **mutation_coordinator** -- one optimistic remote write with
  token-guarded rollback.
- **upload_protocol** -- sign → transfer → attach state machine for
  receipts.
"""

from expense_sync.sync.mutation_coordinator import MutationCoordinator, MutationResult
from expense_sync.sync.query_reader import QueryReader
from expense_sync.sync.upload_protocol import UploadProtocol

__all__ = ["MutationCoordinator", "MutationResult", "QueryReader", "UploadProtocol"]

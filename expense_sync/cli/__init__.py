"""Command-line tools for expense-sync.

- ``python -m expense_sync.cli`` - list, show, add and delete expenses and
  upload receipts against the expense API.
- ``python -m expense_sync.main`` - serve the reference backend locally.
"""

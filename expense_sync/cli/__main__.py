"""Allow ``python -m expense_sync.cli`` execution."""

from expense_sync.cli.expenses import main

main()

"""Command-line front end for the expense API.

Usage::

    python -m expense_sync.cli list
    python -m expense_sync.cli --json show 3
    python -m expense_sync.cli add "Taxi to airport" 42.50
    python -m expense_sync.cli delete 3
    python -m expense_sync.cli upload 3 ./receipt.pdf

Every command goes through :class:`ExpenseService`, so it exercises the same
cache, optimistic-mutation and upload paths a UI would.  Results go to
stdout; logs and error messages go to stderr.

Exit codes::

    0  success
    1  request failed (network, HTTP status, malformed response, not found)
    2  invalid input (validation failure, missing file, bad arguments)
    3  receipt stored but not attached to the expense (orphaned object)
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import httpx

from expense_sync.config.settings import Settings
from expense_sync.main import client_session
from expense_sync.models.expense import Expense
from expense_sync.models.upload import LocalFile
from expense_sync.utils.errors import (
    ConfigurationError,
    ExpenseSyncError,
    OrphanResourceWarning,
    RequestFailed,
    UploadError,
    ValidationError,
)
from expense_sync.utils.logging import configure_logging

EXIT_OK = 0
EXIT_REQUEST_FAILED = 1
EXIT_INVALID_INPUT = 2
EXIT_ORPHANED_UPLOAD = 3


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def _format_row(expense: Expense) -> str:
    receipt = expense.file_url or expense.file_reference or "-"
    return f"{expense.id:>6}  {expense.title:<32.32}  {expense.amount:>10.2f}  {receipt}"


def _format_table(expenses: list[Expense]) -> str:
    if not expenses:
        return "No expenses yet."
    header = f"{'ID':>6}  {'TITLE':<32}  {'AMOUNT':>10}  RECEIPT"
    lines = [header, "-" * len(header)]
    lines.extend(_format_row(e) for e in expenses)
    total = sum(e.amount for e in expenses)
    lines.append("-" * len(header))
    lines.append(f"{'':>6}  {'TOTAL':<32}  {total:>10.2f}")
    return "\n".join(lines)


def _emit(payload: Any, text: str, json_output: bool) -> None:
    if json_output:
        print(json.dumps(payload, indent=2))
    else:
        print(text)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _list(service: Any, args: argparse.Namespace) -> int:
    expenses = await service.list_expenses(refresh=True)
    _emit([e.to_wire() for e in expenses], _format_table(expenses), args.json_output)
    return EXIT_OK


async def _show(service: Any, args: argparse.Namespace) -> int:
    expense = await service.get_expense(args.expense_id)
    if expense is None:
        print(f"Expense {args.expense_id} not found", file=sys.stderr)
        return EXIT_REQUEST_FAILED
    _emit(expense.to_wire(), _format_row(expense), args.json_output)
    return EXIT_OK


async def _add(service: Any, args: argparse.Namespace) -> int:
    expense = await service.create_expense(args.title, args.amount)
    _emit(expense.to_wire(), _format_row(expense), args.json_output)
    return EXIT_OK


async def _delete(service: Any, args: argparse.Namespace) -> int:
    await service.delete_expense(args.expense_id)
    _emit({"deleted": args.expense_id}, f"Deleted expense {args.expense_id}", args.json_output)
    return EXIT_OK


async def _upload(service: Any, args: argparse.Namespace) -> int:
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: File not found: {path}", file=sys.stderr)
        return EXIT_INVALID_INPUT

    result = await service.upload_receipt(
        args.expense_id,
        LocalFile.from_path(path, content_type=args.content_type),
    )
    payload = {
        "expenseId": result.expense_id,
        "key": result.object_key,
        "expense": result.expense.to_wire() if result.expense else None,
    }
    _emit(payload, f"Attached {path.name} to expense {result.expense_id} as {result.object_key}", args.json_output)
    return EXIT_OK


_COMMANDS = {
    "list": _list,
    "show": _show,
    "add": _add,
    "delete": _delete,
    "upload": _upload,
}


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


async def run_cli(
    argv: list[str] | None = None,
    *,
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
    storage_client: httpx.AsyncClient | None = None,
) -> int:
    """Parse *argv*, run one command and return its exit code.

    The HTTP clients are injectable so the CLI can be driven against an
    in-process app.
    """
    args = _build_parser().parse_args(argv)
    s = settings or Settings()
    if args.base_url:
        s = s.model_copy(update={"api_base_url": args.base_url})

    try:
        async with client_session(s, http_client=http_client, storage_client=storage_client) as components:
            return await _COMMANDS[args.command](components["expense_service"], args)
    except (ValidationError, ConfigurationError) as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return EXIT_INVALID_INPUT
    except OrphanResourceWarning as exc:
        print(
            f"Error: receipt stored as {exc.object_key} but not attached: {exc.message}",
            file=sys.stderr,
        )
        return EXIT_ORPHANED_UPLOAD
    except (RequestFailed, UploadError) as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return EXIT_REQUEST_FAILED
    except ExpenseSyncError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_REQUEST_FAILED


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an expense id: {value!r}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"not an expense id: {value!r}")
    return number


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m expense_sync.cli",
        description="List, create, delete expenses and attach receipts.",
    )
    parser.add_argument(
        "--base-url",
        default=None,
        help="Expense API base URL (default: API_BASE_URL or http://localhost:3000/api).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Print results as JSON.",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only log warnings and errors (implied by --json).",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List all expenses.")

    show = sub.add_parser("show", help="Show one expense.")
    show.add_argument("expense_id", type=_positive_int)

    add = sub.add_parser("add", help="Create an expense.")
    add.add_argument("title")
    # Kept as text; ExpenseDraft.parse produces the user-facing message.
    add.add_argument("amount")

    delete = sub.add_parser("delete", help="Delete an expense.")
    delete.add_argument("expense_id", type=_positive_int)

    upload = sub.add_parser("upload", help="Upload a receipt and attach it to an expense.")
    upload.add_argument("expense_id", type=_positive_int)
    upload.add_argument("file")
    upload.add_argument(
        "--content-type",
        default=None,
        help="Override the content type guessed from the file name.",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entry point; exits with the command's exit code."""
    args, _ = _build_parser().parse_known_args(argv)
    settings = Settings()
    quiet = args.quiet or args.json_output
    configure_logging(
        log_level="WARNING" if quiet else settings.log_level,
        json_output=(settings.app_env == "production"),
    )
    sys.exit(asyncio.run(run_cli(argv, settings=settings)))


if __name__ == "__main__":
    main()

"""Command-line interface for bank sync."""

import argparse
import asyncio
import os
import sys
import webbrowser
from datetime import date
from pathlib import Path
from typing import Awaitable, Callable, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from bank_sync import __version__
from bank_sync.config import ConfigError, load_config
from bank_sync.errors import LedgerError
from bank_sync.models.account import AccountType
from bank_sync.models.requisition import RequisitionStatus
from bank_sync.models.results import SyncResult
from bank_sync.service import BankSyncService
from bank_sync.utils.decimal_utils import format_currency
from bank_sync.utils.logging_config import get_logger, setup_logging
from bank_sync.utils.sanitize import mask_iban, mask_secret

# Load environment variables from .env file (if it exists)
load_dotenv()

console = Console()
logger = get_logger(__name__)

# Environment variables providing defaults for `credentials set`
SECRET_ID_ENV = "BANK_SYNC_SECRET_ID"
SECRET_KEY_ENV = "BANK_SYNC_SECRET_KEY"

Handler = Callable[[BankSyncService, argparse.Namespace], Awaitable[int]]


def _iso_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Invalid date '{value}', expected YYYY-MM-DD") from e


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="bank-sync",
        description="Connect bank accounts through Open Banking and sync them into a local ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s credentials set
  %(prog)s institutions --country IT
  %(prog)s connect INTESA_SANPAOLO_BCITITMM --open
  %(prog)s finalize 8126e9fb-93c9-4228-937c-68f0383c2df7 --name "Intesa Sanpaolo"
  %(prog)s sync-all --date-from 2026-01-01
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config-dir",
        type=Path,
        default=Path("config"),
        help="Base config directory (default: ./config)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path("data"),
        help="Directory for the state file and ledger (default: ./data)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    # credentials
    creds = subparsers.add_parser("credentials", help="Manage aggregator API keys")
    creds_sub = creds.add_subparsers(dest="action", metavar="ACTION", required=True)
    creds_set = creds_sub.add_parser("set", help="Store the API key pair")
    creds_set.add_argument("--secret-id", default=None, help=f"Secret id (default: ${SECRET_ID_ENV})")
    creds_set.add_argument("--secret-key", default=None, help=f"Secret key (default: ${SECRET_KEY_ENV})")
    creds_set.set_defaults(handler=credentials_set_command)
    creds_remove = creds_sub.add_parser("remove", help="Remove keys and every linked account")
    creds_remove.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    creds_remove.set_defaults(handler=credentials_remove_command)
    creds_sub.add_parser("status", help="Show whether keys are configured").set_defaults(
        handler=credentials_status_command
    )

    # connections
    inst = subparsers.add_parser("institutions", help="List supported banks")
    inst.add_argument("--country", default=None, help="ISO-2 country code (default from settings)")
    inst.set_defaults(handler=institutions_command)

    connect = subparsers.add_parser("connect", help="Start authorization for a bank")
    connect.add_argument("institution_id", help="Institution id from `institutions`")
    connect.add_argument("--open", action="store_true", help="Open the link in a browser")
    connect.set_defaults(handler=connect_command)

    finalize = subparsers.add_parser("finalize", help="Link accounts of an authorized requisition")
    finalize.add_argument("requisition_id", help="Requisition id printed by `connect`")
    finalize.add_argument("--name", default="", help="Bank display name")
    finalize.add_argument("--logo", default="", help="Bank logo URL")
    finalize.set_defaults(handler=finalize_command)

    subparsers.add_parser("requisitions", help="List stored requisitions").set_defaults(
        handler=requisitions_command
    )
    subparsers.add_parser("linked", help="List linked accounts").set_defaults(
        handler=linked_command
    )

    unlink = subparsers.add_parser("unlink", help="Forget a linked account")
    unlink.add_argument("account_id", help="Provider account id")
    unlink.set_defaults(handler=unlink_command)

    # sync
    sync = subparsers.add_parser("sync", help="Sync one linked account into the ledger")
    sync.add_argument("account_id", help="Provider account id")
    sync.add_argument("--ledger-account", default=None, help="Ledger account id to book into")
    sync.add_argument("--date-from", type=_iso_date, default=None, help="Start date (YYYY-MM-DD)")
    sync.add_argument("--date-to", type=_iso_date, default=None, help="End date (YYYY-MM-DD)")
    sync.set_defaults(handler=sync_command)

    sync_all = subparsers.add_parser("sync-all", help="Sync every linked account")
    sync_all.add_argument("--date-from", type=_iso_date, default=None, help="Start date (YYYY-MM-DD)")
    sync_all.add_argument("--date-to", type=_iso_date, default=None, help="End date (YYYY-MM-DD)")
    sync_all.set_defaults(handler=sync_all_command)

    balance = subparsers.add_parser("balance", help="Show the bank-reported balance")
    balance.add_argument("account_id", help="Provider account id")
    balance.set_defaults(handler=balance_command)

    # ledger
    ledger = subparsers.add_parser("ledger", help="Inspect and edit the local ledger")
    ledger_sub = ledger.add_subparsers(dest="action", metavar="ACTION", required=True)
    ledger_sub.add_parser("accounts", help="List ledger accounts").set_defaults(
        handler=ledger_accounts_command
    )
    add_account = ledger_sub.add_parser("add-account", help="Create a ledger account")
    add_account.add_argument("name", help="Account name (include the bank name to auto-match syncs)")
    add_account.add_argument(
        "--type",
        choices=[t.value for t in AccountType],
        default=AccountType.BANK.value,
        help="Account type (default: bank)",
    )
    add_account.add_argument("--opening-balance", default="0", help="Opening balance (default: 0)")
    add_account.set_defaults(handler=ledger_add_account_command)
    add_txn = ledger_sub.add_parser("add-transaction", help="Record a manual transaction")
    add_txn.add_argument("title", help="Transaction title")
    add_txn.add_argument("amount", help="Signed amount (negative for expenses)")
    add_txn.add_argument("--date", type=_iso_date, default=None, help="Date (default: today)")
    add_txn.add_argument("--account", default=None, help="Ledger account id")
    add_txn.add_argument("--category", default=None, help="Category (default: from keywords)")
    add_txn.set_defaults(handler=ledger_add_transaction_command)
    ledger_sub.add_parser("check", help="Verify account balances").set_defaults(
        handler=ledger_check_command
    )

    return parser


def get_log_level(verbosity: int) -> str:
    """Convert verbosity count to log level.

    Args:
        verbosity: Number of -v flags.

    Returns:
        Log level string.
    """
    if verbosity >= 2:
        return "DEBUG"
    elif verbosity >= 1:
        return "INFO"
    else:
        return "WARNING"


def _print_error(error: object) -> None:
    console.print(f"[red]Error: {error}[/red]")


# Credentials


async def credentials_set_command(service: BankSyncService, args: argparse.Namespace) -> int:
    secret_id = args.secret_id or os.environ.get(SECRET_ID_ENV)
    secret_key = args.secret_key or os.environ.get(SECRET_KEY_ENV)
    if not secret_id:
        secret_id = console.input("[bold]Secret id:[/bold] ").strip()
    if not secret_key:
        secret_key = console.input("[bold]Secret key:[/bold] ", password=True).strip()

    result = service.set_credentials(secret_id, secret_key)
    if not result.success:
        _print_error(result.error)
        return 1
    console.print(f"[green]Credentials saved[/green] (secret id {mask_secret(secret_id)})")
    return 0


async def credentials_remove_command(service: BankSyncService, args: argparse.Namespace) -> int:
    linked = len(service.linked_accounts())
    if not args.yes:
        answer = console.input(
            f"Remove credentials and {linked} linked account(s)? [y/N] "
        ).strip().lower()
        if answer not in ("y", "yes"):
            console.print("[yellow]Aborted[/yellow]")
            return 1

    service.remove_credentials()
    console.print("[green]Credentials and linked accounts removed[/green]")
    return 0


async def credentials_status_command(service: BankSyncService, args: argparse.Namespace) -> int:
    credentials = service.credentials.get()
    if credentials is None:
        console.print("[yellow]No credentials configured.[/yellow] Run `bank-sync credentials set`.")
        return 1
    console.print(f"[green]Configured[/green] (secret id {mask_secret(credentials.secret_id)})")
    console.print(f"  Linked accounts: {len(service.linked_accounts())}")
    console.print(f"  Requisitions: {len(service.requisitions())}")
    return 0


# Connections


async def institutions_command(service: BankSyncService, args: argparse.Namespace) -> int:
    with console.status("[bold green]Fetching institutions..."):
        result = await service.list_institutions(args.country)
    if not result.success:
        _print_error(result.error)
        return 1

    table = Table(title="Institutions")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("History (days)", justify="right")
    for institution in result.data:
        table.add_row(institution.id, institution.name, str(institution.max_history_days))
    console.print(table)
    return 0


async def connect_command(service: BankSyncService, args: argparse.Namespace) -> int:
    with console.status("[bold green]Creating requisition..."):
        result = await service.create_connection(args.institution_id)
    if not result.success:
        _print_error(result.error)
        return 1

    requisition = result.data
    console.print(f"Requisition: [cyan]{requisition.id}[/cyan]")
    console.print(f"Authorize access at:\n  {requisition.link}")
    console.print(f"\nThen run: bank-sync finalize {requisition.id}")
    if args.open:
        webbrowser.open(requisition.link)
    return 0


async def finalize_command(service: BankSyncService, args: argparse.Namespace) -> int:
    with console.status("[bold green]Checking authorization..."):
        result = await service.finalize(args.requisition_id, args.name, args.logo)

    if result.pending:
        if RequisitionStatus.parse(result.status).is_terminal:
            console.print(
                f"[red]Authorization ended with status {result.status}.[/red] "
                "Start again with `bank-sync connect`."
            )
        else:
            console.print(f"[yellow]{result.message}[/yellow] (status {result.status})")
        return 1
    if not result.success:
        _print_error(result.message)
        for failure in result.failures:
            console.print(f"  - {failure.provider_account_id}: {failure.error}")
        return 1

    console.print(f"[green]{result.message}[/green]")
    for account in result.accounts:
        console.print(f"  - {account.provider_account_id} {mask_iban(account.iban)} {account.product}")
    for failure in result.failures:
        console.print(f"  [yellow]- {failure.provider_account_id}: {failure.error}[/yellow]")
    return 0


async def requisitions_command(service: BankSyncService, args: argparse.Namespace) -> int:
    requisitions = service.requisitions()
    if not requisitions:
        console.print("[yellow]No requisitions.[/yellow]")
        return 0

    table = Table(title="Requisitions")
    table.add_column("ID", style="cyan")
    table.add_column("Institution")
    table.add_column("Status")
    table.add_column("Created")
    for requisition in requisitions:
        table.add_row(
            requisition.id,
            requisition.institution_id,
            f"{requisition.status} ({requisition.state.name.lower()})",
            requisition.created_at,
        )
    console.print(table)
    return 0


async def linked_command(service: BankSyncService, args: argparse.Namespace) -> int:
    accounts = service.linked_accounts()
    if not accounts:
        console.print("[yellow]No linked accounts.[/yellow]")
        return 0

    table = Table(title="Linked accounts")
    table.add_column("Account ID", style="cyan")
    table.add_column("Bank")
    table.add_column("IBAN")
    table.add_column("Product")
    table.add_column("Currency")
    for account in accounts:
        table.add_row(
            account.provider_account_id,
            account.institution_name,
            mask_iban(account.iban),
            account.product,
            account.currency,
        )
    console.print(table)
    return 0


async def unlink_command(service: BankSyncService, args: argparse.Namespace) -> int:
    result = service.unlink(args.account_id)
    if not result.success:
        _print_error(result.error)
        return 1
    console.print(f"[green]{result.message}[/green]")
    return 0


# Sync


def _print_sync_result(label: str, result: SyncResult) -> None:
    if result.success:
        console.print(
            f"[green]{label}[/green]: imported {result.imported}/{result.total}, "
            f"skipped {result.skipped}"
        )
    else:
        console.print(
            f"[red]{label}[/red]: {result.error}"
            + (f" (imported {result.imported} before failing)" if result.imported else "")
        )


async def sync_command(service: BankSyncService, args: argparse.Namespace) -> int:
    with console.status("[bold green]Syncing transactions..."):
        result = await service.sync(
            args.account_id,
            ledger_account_id=args.ledger_account,
            date_from=args.date_from,
            date_to=args.date_to,
        )
    _print_sync_result(args.account_id, result)
    return 0 if result.success else 1


async def sync_all_command(service: BankSyncService, args: argparse.Namespace) -> int:
    if not service.linked_accounts():
        console.print("[yellow]No linked accounts.[/yellow]")
        return 0

    with console.status("[bold green]Syncing all accounts..."):
        result = await service.sync_all(date_from=args.date_from, date_to=args.date_to)

    for account_result in result.results:
        _print_sync_result(account_result.provider_account_id or "?", account_result)
    console.print(
        f"\n[bold]Total[/bold]: imported {result.imported}/{result.total}, "
        f"skipped {result.skipped}, {len(result.failed)} failed"
    )
    return 0 if result.success else 1


async def balance_command(service: BankSyncService, args: argparse.Namespace) -> int:
    with console.status("[bold green]Fetching balance..."):
        result = await service.get_balance(args.account_id)
    if not result.success:
        _print_error(result.error)
        return 1

    balance = result.data
    console.print(
        f"{args.account_id}: [bold]{format_currency(balance['amount'], balance['currency'] or 'EUR')}[/bold]"
        + (f" ({balance['balanceType']})" if balance["balanceType"] else "")
    )
    return 0


# Ledger


async def ledger_accounts_command(service: BankSyncService, args: argparse.Namespace) -> int:
    accounts = service.ledger.list_accounts()
    if not accounts:
        console.print("[yellow]No ledger accounts.[/yellow]")
        return 0

    table = Table(title="Ledger accounts")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Balance", justify="right")
    for account in accounts:
        table.add_row(
            account.id, account.name, account.account_type.value, format_currency(account.balance)
        )
    console.print(table)
    return 0


async def ledger_add_account_command(service: BankSyncService, args: argparse.Namespace) -> int:
    result = service.create_ledger_account(
        args.name, AccountType(args.type), args.opening_balance
    )
    if not result.success:
        _print_error(result.error)
        return 1
    console.print(f"[green]Created account {result.data.name}[/green] ({result.data.id})")
    return 0


async def ledger_add_transaction_command(
    service: BankSyncService, args: argparse.Namespace
) -> int:
    result = await service.add_transaction(
        args.title,
        args.amount,
        txn_date=args.date,
        account_id=args.account,
        category=args.category,
    )
    if not result.success:
        _print_error(result.error)
        return 1
    txn = result.data
    console.print(
        f"[green]Recorded[/green] {txn.date} {txn.title} {format_currency(txn.amount)} " + escape(f"[{txn.category}]")
    )
    return 0


async def ledger_check_command(service: BankSyncService, args: argparse.Namespace) -> int:
    discrepancies = service.check_balances()
    if not discrepancies:
        console.print("[green]All account balances match their transactions.[/green]")
        return 0

    console.print(f"[red]{len(discrepancies)} account(s) out of balance:[/red]")
    for d in discrepancies:
        console.print(
            f"  - {d.account_name}: stored {format_currency(d.stored_balance)}, "
            f"expected {format_currency(d.expected_balance)}"
        )
    return 1


async def run_command(handler: Handler, args: argparse.Namespace, service: BankSyncService) -> int:
    async with service:
        return await handler(service, args)


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Arguments (default: sys.argv[1:]).

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if getattr(args, "handler", None) is None:
        parser.print_help()
        return 1

    log_level = get_log_level(args.verbose)
    setup_logging(level=log_level, console_output=args.verbose > 0)

    try:
        config = load_config(config_dir=args.config_dir)
    except (FileNotFoundError, ConfigError) as e:
        _print_error(e)
        return 1

    if args.verbose == 0:
        log_level = config.logging.level
    setup_logging(level=log_level, log_file=config.logging.file, console_output=args.verbose > 0)

    try:
        service = BankSyncService.create(config, args.data_dir)
    except (ConfigError, LedgerError) as e:
        _print_error(e)
        return 1

    try:
        return asyncio.run(run_command(args.handler, args, service))
    except ConfigError as e:
        _print_error(e)
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())

"""Mini README: Entry point CLI for the shift ledger.

This script exposes a Typer CLI that signs a driver in, opens and closes
shift days, records transactions, backs ledgers up and launches the JSON
service. Settings come from ``SHIFTLEDGER_*`` environment variables; every
command shares the session saved in the local database.
"""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn, Optional

import typer
import uvicorn

from shiftledger.configuration import get_settings
from shiftledger.finance import Driver, LedgerError, TransactionType
from shiftledger.ledgers import LedgerManager
from shiftledger.logging_utils import configure_root_logger
from shiftledger.shifts import utc_now
from shiftledger.storage import SessionStore, create_store
from shiftledger.utils import export_snapshot, import_snapshot

cli = typer.Typer(help="Record a driver's daily cash and manage shift days.")


def _manager() -> LedgerManager:
    settings = get_settings()
    configure_root_logger(settings.log_level)
    manager = LedgerManager.from_settings(settings)
    if manager.driver is None:
        typer.echo("No driver is signed in. Run 'login' first.", err=True)
        raise typer.Exit(code=1)
    result = manager.refresh()
    for source, message in result.failed_sources.items():
        typer.echo(f"Warning: could not refresh {source}: {message}", err=True)
    return manager


def _fail(error: Exception) -> NoReturn:
    typer.echo(f"Error: {error}", err=True)
    raise typer.Exit(code=1)


@cli.command()
def login(
    name: str = typer.Option(..., help="Driver's display name."),
    mobile: str = typer.Option(..., help="Driver's mobile number, used as identifier."),
) -> None:
    """Sign a driver in on this device."""

    settings = get_settings()
    configure_root_logger(settings.log_level)
    manager = LedgerManager.from_settings(settings)
    try:
        result = manager.sign_in(Driver(driver_id=mobile, name=name, mobile=mobile))
    except LedgerError as error:
        _fail(error)
    typer.echo(f"Signed in as {name} ({len(result.ledgers)} days on record).")


@cli.command()
def status() -> None:
    """Show every day with its totals, newest first."""

    manager = _manager()
    now = manager.clock()
    stale = manager.stale_open_ledger()
    if stale is not None:
        typer.echo(f"Reminder: day {stale.day_id} is still open although its shift has ended.")
    if not manager.ledgers:
        typer.echo("No days recorded yet.")
    for ledger in manager.ledgers:
        summary = ledger.summary()
        line = (
            f"{ledger.day_id}  {ledger.status.value:<6}  income {summary.income:>10.2f}"
            f"  expense {summary.expense:>10.2f}  net {summary.net:>10.2f}"
        )
        if ledger.is_open:
            window = manager.window_for(ledger.day_id)
            line += (
                f"  [{window.progress_percent(now):.0f}% elapsed,"
                f" {window.remaining_hours(now)}h left]"
            )
        typer.echo(line)


@cli.command("open-day")
def open_day() -> None:
    """Open today's shift day."""

    manager = _manager()
    try:
        ledger = manager.open_day()
    except LedgerError as error:
        _fail(error)
    window = manager.window_for(ledger.day_id)
    typer.echo(f"Day {ledger.day_id} is open until {window.end.isoformat()}.")


@cli.command()
def add(
    client_name: str = typer.Argument(..., help="Client or description."),
    amount: float = typer.Argument(..., help="Amount, greater than zero."),
    kind: TransactionType = typer.Option(TransactionType.INCOME, help="income or expense."),
    day: Optional[str] = typer.Option(None, help="Day id to add to (defaults to the open day)."),
) -> None:
    """Record a transaction on the selected day."""

    manager = _manager()
    try:
        target = day or manager.current_day_id or next(
            (ledger.day_id for ledger in manager.ledgers if ledger.is_open), None
        )
        if target is not None:
            manager.select_day(target)
        transaction = manager.add_transaction(client_name, amount, kind)
    except (LedgerError, KeyError) as error:
        _fail(error)
    typer.echo(
        f"Recorded {transaction.transaction_type.value} {transaction.amount:.2f}"
        f" for {transaction.client_name} ({transaction.transaction_id})."
    )


@cli.command("close-day")
def close_day(
    day: Optional[str] = typer.Option(None, help="Day id to close (defaults to the selected day)."),
) -> None:
    """Close a shift day. Closed days can no longer change."""

    manager = _manager()
    try:
        if day is not None:
            manager.select_day(day)
        ledger = manager.close_day()
    except (LedgerError, KeyError) as error:
        _fail(error)
    typer.echo(f"Day {ledger.day_id} is {ledger.status.value}.")


@cli.command("export")
def export_command(
    output: Path = typer.Option(Path("shiftledger-backup.json"), help="File to write."),
) -> None:
    """Write a JSON backup of every day."""

    manager = _manager()
    output.write_text(
        export_snapshot(manager.driver, manager.ledgers, exported_at=utc_now()),
        encoding="utf-8",
    )
    typer.echo(f"Backup written to {output}.")


@cli.command("import")
def import_command(
    source: Path = typer.Argument(..., exists=True, readable=True, help="Backup file."),
) -> None:
    """Restore a JSON backup into the local store."""

    settings = get_settings()
    configure_root_logger(settings.log_level)
    store = create_store(settings)
    try:
        outcome = import_snapshot(
            source.read_text(encoding="utf-8"), store, SessionStore(settings.database_path)
        )
    except LedgerError as error:
        _fail(error)
    finally:
        store.close()
    typer.echo(
        f"Restored {outcome['ledgers']} days and {outcome['transactions']} new transactions"
        f" for {outcome['driver'].name}."
    )


@cli.command()
def run(
    host: str = typer.Option(None, help="Host interface to bind."),
    port: int = typer.Option(None, help="Port to listen on."),
    production: bool = typer.Option(
        False, help="Use production server settings (disable auto-reload)."
    ),
) -> None:
    """Start the JSON service using uvicorn."""

    settings = get_settings()
    effective_host = host or settings.interface_host
    effective_port = port or settings.interface_port
    configure_root_logger(settings.log_level)

    browser_host = "127.0.0.1" if effective_host in {"0.0.0.0", "::"} else effective_host
    typer.echo(
        f"Starting Shift Ledger on {effective_host}:{effective_port}.\n"
        f"API available at http://{browser_host}:{effective_port}/ledgers"
    )
    uvicorn.run(
        "shiftledger.interface.web_app:create_application",
        host=effective_host,
        port=effective_port,
        factory=True,
        reload=not production,
    )


if __name__ == "__main__":
    cli()

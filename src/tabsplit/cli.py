"""CLI for TabSplit using Typer."""

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal

import typer
from rich.console import Console
from rich.table import Table

from .assets import resolve_asset
from .clients.chain import RpcChainClient
from .config import load_settings
from .db import Database
from .exceptions import ConfigurationError, TabSplitError, ValidationError
from .identity import AddressBook
from .mcp_server import run_server
from .models import (
    NothingToSettle,
    ObservedTransfer,
    Participant,
    Settlement,
    SettlementProgress,
    Tab,
    TabSummary,
)
from .service import TabService
from .tracker import SettlementTracker

app = typer.Typer(
    name="tabsplit",
    help="Track shared expenses and settle them with on-chain transfers",
)

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


@contextmanager
def _open_service(verbose: bool) -> Iterator[TabService]:
    """Load settings, open the database and report errors uniformly."""
    setup_logging(verbose)
    db = None
    try:
        settings = load_settings()
        db = Database(settings.database_path)
        yield TabService(settings, db)
    except TabSplitError as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[bold red]Unexpected error:[/bold red] {e}")
        if verbose:
            raise
        sys.exit(1)
    finally:
        if db is not None:
            db.close()


def _parse_participant(raw: str) -> Participant:
    """Parse 'member=0xaddress' into a Participant."""
    member_id, sep, address = raw.partition("=")
    if not sep or not member_id or not address:
        raise ValidationError(f"Expected MEMBER=ADDRESS, got '{raw}'")
    return Participant(member_id=member_id.strip(), address=address.strip())


def _resolve_member(tab: Tab, value: str) -> str:
    """Resolve a member id, or an address of a participant, to a member id."""
    if tab.get_participant(value):
        return value
    book = AddressBook({p.member_id: p.address for p in tab.participants})
    participant = tab.find_participant_by_address(book.resolve_address(value))
    if participant is None:
        raise ValidationError(f"{value} is not a participant of tab {tab.name}")
    return participant.member_id


def format_money(amount: Decimal, currency: str, use_color: bool = True) -> str:
    """
    Format money in accounting style.

    Negative amounts use parentheses: (12.50 USDC)
    """
    text = f"{abs(amount):,.2f} {currency}"
    if amount < 0:
        return f"([red]{text}[/red])" if use_color else f"({text})"
    return f"[green]{text}[/green]" if use_color else text


def display_summary(summary: TabSummary):
    """Display a tab's expenses and balances as tables."""
    tab = summary.tab
    book = AddressBook({p.member_id: p.address for p in tab.participants})

    console.print(f"\n[bold]Tab: {tab.name}[/bold] ({tab.id})")
    console.print(f"  Status: {tab.status}")
    console.print(f"  Total: {format_money(summary.total_expenses, tab.currency)}")
    console.print()

    expenses = Table(title="Expenses", show_header=True, header_style="bold magenta")
    expenses.add_column("ID", style="dim", width=10)
    expenses.add_column("Description", style="cyan", width=30)
    expenses.add_column("Amount", justify="right", width=16)
    expenses.add_column("Paid by", width=16)
    expenses.add_column("Split", justify="center", width=8)
    for expense in summary.expenses:
        expenses.add_row(
            expense.id[:8],
            expense.description,
            format_money(expense.amount, expense.currency),
            book.display_name(expense.payer_address),
            str(len(expense.participant_ids)),
        )
    console.print(expenses)

    balances = Table(title="Balances", show_header=True, header_style="bold magenta")
    balances.add_column("Member", width=16)
    balances.add_column("Paid", justify="right", width=16)
    balances.add_column("Net", justify="right", width=16)
    balances.add_column("Status", justify="center", width=8)
    for balance in summary.balances:
        balances.add_row(
            balance.member_id,
            format_money(balance.total_paid, tab.currency),
            format_money(balance.net_amount, tab.currency),
            balance.status,
        )
    console.print(balances)


def display_settlement(settlement: Settlement):
    """Display the legs of a settlement."""
    table = Table(
        title=f"Settlement {settlement.id[:8]} ({settlement.status})",
        show_header=True,
        header_style="bold magenta",
    )
    table.add_column("Leg", style="dim", width=10)
    table.add_column("From", width=16)
    table.add_column("To", width=16)
    table.add_column("Amount", justify="right", width=16)
    table.add_column("Atomic", justify="right", style="dim")
    table.add_column("Status", justify="center")
    for leg in settlement.transactions:
        table.add_row(
            leg.id[:8],
            leg.from_member_id,
            leg.to_member_id,
            format_money(leg.amount, settlement.currency),
            str(leg.atomic_amount),
            leg.status,
        )
    console.print(table)


def display_progress(progress: SettlementProgress):
    """Display the effect of a confirmed leg."""
    leg = progress.leg
    console.print(
        f"\n[green]✓ Confirmed[/green] {leg.from_member_id} → {leg.to_member_id} "
        f"({format_money(leg.amount, progress.tab.currency, use_color=False)})"
    )
    if progress.is_complete:
        console.print(
            f"[bold green]Tab '{progress.tab.name}' is fully settled "
            f"({progress.total_count} transfer(s)).[/bold green]"
        )
    else:
        console.print(
            f"Settlement progress: {progress.confirmed_count}/{progress.total_count} "
            f"({progress.total_count - progress.confirmed_count} remaining)"
        )


@app.command("create-tab")
def create_tab(
    group_id: str = typer.Argument(..., help="Group the tab belongs to"),
    name: str = typer.Argument(..., help="Tab name, e.g. 'Weekend Trip'"),
    participant: list[str] = typer.Option(
        ..., "--participant", "-p", help="MEMBER=ADDRESS (repeatable)"
    ),
    currency: str | None = typer.Option(None, "--currency", help="Settlement currency"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Create a new expense tab for a group."""
    with _open_service(verbose) as service:
        participants = [_parse_participant(raw) for raw in participant]
        tab = service.create_tab(group_id, name, participants, currency)
        console.print(
            f"[bold green]✓ Created tab '{tab.name}'[/bold green] (ID: {tab.id})\n"
            f"  Participants: {len(tab.participants)}\n"
            f"  Currency: {tab.currency}"
        )


@app.command("list-tabs")
def list_tabs(
    group_id: str = typer.Argument(..., help="Group to list tabs for"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """List all tabs in a group."""
    with _open_service(verbose) as service:
        tabs = service.list_tabs(group_id)
        if not tabs:
            console.print("[yellow]No tabs found in this group.[/yellow]")
            return

        table = Table(title="Tabs", show_header=True, header_style="bold magenta")
        table.add_column("ID", style="dim", width=10)
        table.add_column("Name", style="cyan")
        table.add_column("Currency")
        table.add_column("Expenses", justify="right")
        table.add_column("Status")
        table.add_column("Created", style="dim")
        for tab in tabs:
            table.add_row(
                tab.id[:8],
                tab.name,
                tab.currency,
                str(len(tab.expenses)),
                tab.status,
                str(tab.created_at.date()),
            )
        console.print(table)


@app.command("add-expense")
def add_expense(
    group_id: str = typer.Argument(..., help="Group ID"),
    tab_id: str = typer.Argument(..., help="Tab ID"),
    amount: str = typer.Argument(..., help="Amount, e.g. 12.50"),
    description: str = typer.Argument(..., help="What it was for"),
    payer: str = typer.Option(..., "--payer", "-P", help="Member id or address of payer"),
    participant: list[str] | None = typer.Option(
        None, "--participant", "-p", help="Member sharing the cost (default: all)"
    ),
    weight: list[str] | None = typer.Option(
        None, "--weight", "-w", help="Split weight, one per --participant"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Add an expense to a tab."""
    with _open_service(verbose) as service:
        tab = service.get_tab(group_id, tab_id)
        payer_id = _resolve_member(tab, payer)
        participant_ids = (
            [_resolve_member(tab, p) for p in participant] if participant else None
        )
        expense = service.add_expense(
            group_id,
            tab_id,
            payer_id,
            amount,
            description,
            participant_ids=participant_ids,
            weights=weight or None,
        )
        console.print(
            f"[bold green]✓ Added expense[/bold green] "
            f"{format_money(expense.amount, expense.currency)} for '{expense.description}'\n"
            f"  Paid by: {expense.payer_id}\n"
            f"  Split among: {len(expense.participant_ids)} people\n"
            f"  Expense ID: {expense.id}"
        )
        if tab.status == "settlement_proposed":
            console.print("[yellow]The proposed settlement was discarded.[/yellow]")


@app.command("delete-expense")
def delete_expense(
    group_id: str = typer.Argument(..., help="Group ID"),
    tab_id: str = typer.Argument(..., help="Tab ID"),
    expense_id: str = typer.Argument(..., help="Expense ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Delete an expense from an open tab."""
    with _open_service(verbose) as service:
        service.delete_expense(group_id, tab_id, expense_id)
        console.print(f"[bold green]✓ Deleted expense {expense_id}[/bold green]")


@app.command()
def summary(
    group_id: str = typer.Argument(..., help="Group ID"),
    tab_id: str = typer.Argument(..., help="Tab ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Show a tab's expenses and who owes what."""
    with _open_service(verbose) as service:
        tab_summary = service.get_tab_summary(group_id, tab_id)
        display_summary(tab_summary)
        if tab_summary.tab.current_settlement:
            display_settlement(tab_summary.tab.current_settlement)


@app.command()
def settle(
    group_id: str = typer.Argument(..., help="Group ID"),
    tab_id: str = typer.Argument(..., help="Tab ID"),
    asset: str | None = typer.Option(
        None, "--asset", help="Token address (default: USDC on the configured network)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Propose the transfers that settle a tab."""
    with _open_service(verbose) as service:
        result = service.propose_settlement(group_id, tab_id, asset)
        if isinstance(result, NothingToSettle):
            console.print(f"[green]✓ {result.message}[/green]")
            return

        display_settlement(result.settlement)
        console.print(
            "\n[bold]Each payer should send the exact atomic amount shown.[/bold]"
        )


@app.command()
def cancel(
    group_id: str = typer.Argument(..., help="Group ID"),
    tab_id: str = typer.Argument(..., help="Tab ID"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Abandon a proposed settlement and reopen the tab."""
    with _open_service(verbose) as service:
        tab = service.cancel_settlement(group_id, tab_id)
        console.print(f"[bold green]✓ Tab '{tab.name}' reopened[/bold green]")


@app.command()
def confirm(
    sender_id: str = typer.Argument(..., help="Member who sent the payment"),
    recipient: str = typer.Argument(..., help="Recipient address"),
    atomic_amount: int = typer.Argument(..., help="Amount in atomic token units"),
    reference: str = typer.Argument(..., help="Transaction reference"),
    asset: str | None = typer.Option(
        None, "--asset", help="Token address (default: USDC on the configured network)"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Record an observed payment against a pending settlement leg."""
    with _open_service(verbose) as service:
        token = resolve_asset(service.settings.network_id, asset)
        transfer = ObservedTransfer(
            asset_id=token.address, recipient=recipient, atomic_amount=atomic_amount
        )
        progress = SettlementTracker(service).handle_transfer(
            sender_id, transfer, reference
        )
        if progress is None:
            console.print("[yellow]No matching pending settlement leg.[/yellow]")
            return
        display_progress(progress)


@app.command("confirm-tx")
def confirm_tx(
    sender_id: str = typer.Argument(..., help="Member who sent the transaction"),
    tx_hash: str = typer.Argument(..., help="Transaction hash"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Look up a transaction on chain and apply it to its settlement leg."""
    with _open_service(verbose) as service:
        if not service.settings.rpc_url:
            raise ConfigurationError("Set TABSPLIT_RPC_URL to confirm transactions")

        with RpcChainClient(service.settings.rpc_url) as chain:
            progress = SettlementTracker(service, chain).handle_transaction(
                sender_id, tx_hash
            )
        if progress is None:
            console.print(
                "[yellow]Not a pending settlement payment; nothing updated.[/yellow]"
            )
            return
        display_progress(progress)


@app.command()
def mcp():
    """Start the MCP server so an agent can manage tabs."""
    run_server()


if __name__ == "__main__":
    app()

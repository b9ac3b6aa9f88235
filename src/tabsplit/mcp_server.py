"""MCP server for TabSplit: exposes expense tabs as tools for an agent."""

import logging
from dataclasses import dataclass

from mcp.server.fastmcp import FastMCP

from .clients.chain import RpcChainClient
from .config import load_settings
from .db import Database
from .exceptions import TabSplitError
from .models import NothingToSettle, Participant, Settlement, Tab
from .money import format_amount
from .service import TabService
from .tracker import SettlementTracker

logger = logging.getLogger(__name__)

mcp_app = FastMCP("tabsplit")

WORKFLOW_INSTRUCTIONS = """\
You are tracking shared expenses for a group chat. Follow this workflow:

1. TAB: Call list_expense_tabs for the group. If there is no suitable tab,
   call create_expense_tab with every group member as MEMBER=ADDRESS.

2. EXPENSES: When someone reports a payment ("I paid 20 for dinner"), call
   add_expense. The payer can be anyone in the tab, not just the speaker.
   Omit participants to split among everyone; pass weights only when the
   user asks for an uneven split.

3. BALANCES: Call get_balances when users ask who owes what.

4. SETTLE: When users want to settle up, call settle_expenses and relay each
   transfer to its payer. Each payer must send exactly the listed amount.

5. CONFIRM: When a payer shares a transaction hash, call
   confirm_settlement_payment and report the progress.

Never invent ids; use the ones returned by the tools.\
"""


# ---------------------------------------------------------------------------
# Session state: one MCP server process serves one agent
# ---------------------------------------------------------------------------


@dataclass
class SessionState:
    """Holds the lazily created service between tool calls."""

    service: TabService | None = None
    db: Database | None = None


_state = SessionState()


def _ensure_service() -> TabService:
    """Lazily initialize the TabService (loads .env config)."""
    if _state.service is None:
        settings = load_settings()
        _state.db = Database(settings.database_path)
        _state.service = TabService(settings, _state.db)
    return _state.service


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _format_settlement(tab: Tab, settlement: Settlement) -> str:
    lines = [
        f"Settlement for tab \"{tab.name}\" ({settlement.status}, "
        f"{len(settlement.transactions)} transfer(s)):"
    ]
    for leg in settlement.transactions:
        lines.append(
            f"  - {leg.from_member_id} ({leg.from_address}) -> {leg.to_member_id} "
            f"({leg.to_address}): {format_amount(leg.amount, settlement.currency)} "
            f"[{leg.atomic_amount} atomic units, {leg.status}]"
        )
    lines.append(f"Token: {settlement.asset_id} ({settlement.asset_decimals} decimals)")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# MCP Tools
# ---------------------------------------------------------------------------


@mcp_app.tool()
def create_expense_tab(group_id: str, tab_name: str, participants: list[str]) -> str:
    """Create a new expense tab for a group.

    Args:
        group_id: The group the tab belongs to.
        tab_name: Human-readable name, e.g. "Weekend Trip".
        participants: Every member as "MEMBER_ID=0xADDRESS".
    """
    try:
        service = _ensure_service()
        parsed = []
        for raw in participants:
            member_id, sep, address = raw.partition("=")
            if not sep:
                return f"Error: expected MEMBER_ID=ADDRESS, got '{raw}'"
            parsed.append(Participant(member_id=member_id.strip(), address=address.strip()))

        tab = service.create_tab(group_id, tab_name, parsed)
        return (
            f"Created tab \"{tab.name}\" (ID: {tab.id})\n"
            f"Participants: {len(tab.participants)}\n"
            f"Currency: {tab.currency}"
        )
    except TabSplitError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to create tab: {e}"


@mcp_app.tool()
def list_expense_tabs(group_id: str) -> str:
    """List all expense tabs in a group."""
    try:
        service = _ensure_service()
        tabs = service.list_tabs(group_id)
        if not tabs:
            return "No tabs found in this group. Create one with create_expense_tab."

        lines = [f"Tabs in group {group_id}:"]
        for tab in tabs:
            lines.append(
                f"  - {tab.name} | ID: {tab.id} | {tab.currency} | "
                f"{len(tab.expenses)} expense(s) | {tab.status}"
            )
        return "\n".join(lines)
    except TabSplitError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to list tabs: {e}"


@mcp_app.tool()
def add_expense(
    group_id: str,
    tab_id: str,
    payer_id: str,
    amount: str,
    description: str,
    participant_ids: list[str] | None = None,
    weights: list[str] | None = None,
) -> str:
    """Add an expense to a tab.

    Args:
        group_id: The group ID.
        tab_id: The tab to add the expense to.
        payer_id: Member who paid (any tab participant).
        amount: Amount as a string, e.g. "10.5".
        description: What it was for, e.g. "dinner".
        participant_ids: Members sharing the cost; defaults to everyone.
        weights: Optional split weights, one per participant.
    """
    try:
        service = _ensure_service()
        expense = service.add_expense(
            group_id,
            tab_id,
            payer_id,
            amount,
            description,
            participant_ids=participant_ids,
            weights=weights,
        )
        return (
            f"Added expense: {format_amount(expense.amount, expense.currency)} "
            f"for \"{expense.description}\"\n"
            f"Paid by: {expense.payer_id}\n"
            f"Split among: {len(expense.participant_ids)} people\n"
            f"Expense ID: {expense.id}"
        )
    except TabSplitError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to add expense: {e}"


@mcp_app.tool()
def list_expenses(group_id: str, tab_id: str) -> str:
    """List all expenses recorded in a tab."""
    try:
        service = _ensure_service()
        summary = service.get_tab_summary(group_id, tab_id)
        tab = summary.tab
        if not summary.expenses:
            return f"No expenses recorded yet in tab \"{tab.name}\"."

        lines = [f"Expenses in \"{tab.name}\" ({len(summary.expenses)} total):"]
        for expense in summary.expenses:
            lines.append(
                f"  - {format_amount(expense.amount, expense.currency)} | "
                f"{expense.description} | paid by {expense.payer_id} | "
                f"split {len(expense.participant_ids)} ways | "
                f"{expense.timestamp.date()} | ID: {expense.id}"
            )
        lines.append(f"Total: {format_amount(summary.total_expenses, tab.currency)}")
        return "\n".join(lines)
    except TabSplitError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to list expenses: {e}"


@mcp_app.tool()
def get_balances(group_id: str, tab_id: str) -> str:
    """Show who owes what in a tab. Positive = owed to them, negative = they owe."""
    try:
        service = _ensure_service()
        summary = service.get_tab_summary(group_id, tab_id)
        tab = summary.tab

        lines = [f"Balances for \"{tab.name}\" ({tab.status}):"]
        for balance in summary.balances:
            lines.append(
                f"  - {balance.member_id}: {balance.status} "
                f"{format_amount(balance.net_amount, tab.currency)} "
                f"(paid {format_amount(balance.total_paid, tab.currency)})"
            )
        if tab.current_settlement:
            lines.append("")
            lines.append(_format_settlement(tab, tab.current_settlement))
        return "\n".join(lines)
    except TabSplitError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to calculate balances: {e}"


@mcp_app.tool()
def delete_expense(group_id: str, tab_id: str, expense_id: str) -> str:
    """Delete an expense from an open tab to correct a mistake."""
    try:
        service = _ensure_service()
        service.delete_expense(group_id, tab_id, expense_id)
        return f"Deleted expense {expense_id}."
    except TabSplitError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to delete expense: {e}"


@mcp_app.tool()
def settle_expenses(group_id: str, tab_id: str, token_address: str | None = None) -> str:
    """Compute the transfers that settle a tab and start tracking them.

    Args:
        group_id: The group ID.
        tab_id: The tab to settle.
        token_address: Optional token contract; defaults to USDC.
    """
    try:
        service = _ensure_service()
        result = service.propose_settlement(group_id, tab_id, token_address)
        if isinstance(result, NothingToSettle):
            return f"{result.message}. Everyone has paid their fair share."
        return _format_settlement(result.tab, result.settlement)
    except TabSplitError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to settle expenses: {e}"


@mcp_app.tool()
def cancel_settlement(group_id: str, tab_id: str) -> str:
    """Abandon a proposed settlement that nobody has paid yet."""
    try:
        service = _ensure_service()
        tab = service.cancel_settlement(group_id, tab_id)
        return f"Settlement cancelled; tab \"{tab.name}\" is open again."
    except TabSplitError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to cancel settlement: {e}"


@mcp_app.tool()
def confirm_settlement_payment(sender_id: str, tx_hash: str) -> str:
    """Check a payer's transaction on chain and record it against their transfer.

    Args:
        sender_id: Member who sent the transaction.
        tx_hash: The transaction hash they shared.
    """
    try:
        service = _ensure_service()
        if not service.settings.rpc_url:
            return "Error: no RPC endpoint configured (TABSPLIT_RPC_URL)."

        with RpcChainClient(service.settings.rpc_url) as chain:
            progress = SettlementTracker(service, chain).handle_transaction(
                sender_id, tx_hash
            )
        if progress is None:
            return "That transaction does not match any pending settlement transfer."

        leg = progress.leg
        status = (
            f"Tab \"{progress.tab.name}\" is now fully settled."
            if progress.is_complete
            else f"Progress: {progress.confirmed_count}/{progress.total_count} confirmed."
        )
        return (
            f"Confirmed {leg.from_member_id} -> {leg.to_member_id} "
            f"({format_amount(leg.amount, progress.tab.currency)}).\n{status}"
        )
    except TabSplitError as e:
        return f"Error: {e}"
    except Exception as e:
        return f"Failed to confirm payment: {e}"


# ---------------------------------------------------------------------------
# MCP Prompt
# ---------------------------------------------------------------------------


@mcp_app.prompt()
def expense_workflow() -> str:
    """Orchestration instructions for tracking and settling group expenses."""
    return WORKFLOW_INSTRUCTIONS


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def run_server():
    """Start the MCP server (stdio transport)."""
    mcp_app.run(transport="stdio")

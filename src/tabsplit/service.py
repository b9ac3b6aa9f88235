"""Service layer that composes the ledger, balance, optimizer and matcher.

This module provides the operations callers (CLI, MCP tools, message bus
handlers) use. Each one reads the tab fresh, applies the state machine in
``lifecycle`` inside a versioned write, and only then touches the pending
transaction index.
"""

import logging
from collections.abc import Sequence
from datetime import timedelta
from decimal import Decimal

from . import lifecycle
from .assets import resolve_asset
from .balances import (
    balances_for_participants,
    calculate_detailed_balances,
    calculate_total_expenses,
)
from .config import Settings
from .db import Database
from .exceptions import NotFoundError, ValidationError
from .ledger import LedgerStore
from .matcher import PendingTransactionIndex
from .models import (
    Expense,
    NothingToSettle,
    ObservedTransfer,
    Participant,
    PendingMatch,
    ProposalResult,
    Settlement,
    SettlementProposed,
    Tab,
    TabSummary,
    utc_now,
)
from .money import AmountLike, parse_amount, parse_weights
from .optimizer import has_imbalance, optimize_settlements

logger = logging.getLogger(__name__)


class TabService:
    """Expense tabs and their settlement lifecycle."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        pending_index: PendingTransactionIndex | None = None,
    ):
        """Initialize the tab service."""
        self.settings = settings
        self.db = database
        self.store = LedgerStore(database, max_write_attempts=settings.max_write_attempts)
        self.pending = pending_index or PendingTransactionIndex(
            database,
            ttl=timedelta(hours=settings.pending_tx_ttl_hours),
            max_write_attempts=settings.max_write_attempts,
        )

    @property
    def epsilon(self) -> Decimal:
        return self.settings.settlement_epsilon

    # ========================================================================
    # Tabs & expenses
    # ========================================================================

    def create_tab(
        self,
        group_id: str,
        name: str,
        participants: Sequence[Participant],
        currency: str | None = None,
    ) -> Tab:
        """
        Create a tab for a group.

        The participant list is a snapshot and cannot be changed later.

        Raises:
            ValidationError: If there are no participants or a member id
                appears twice
        """
        if not participants:
            raise ValidationError(f"Cannot create tab '{name}' without participants")

        member_ids = [p.member_id for p in participants]
        if len(set(member_ids)) != len(member_ids):
            raise ValidationError(f"Duplicate participants in tab '{name}'")

        return self.store.create_tab(
            group_id,
            name,
            currency or self.settings.default_currency,
            list(participants),
        )

    def get_tab(self, group_id: str, tab_id: str) -> Tab:
        """Get a tab (raises NotFoundError if absent)."""
        return self.store.get_tab(group_id, tab_id)

    def list_tabs(self, group_id: str) -> list[Tab]:
        """List all tabs in a group."""
        return self.store.list_tabs(group_id)

    def add_expense(
        self,
        group_id: str,
        tab_id: str,
        payer_id: str,
        amount: AmountLike,
        description: str,
        participant_ids: Sequence[str] | None = None,
        weights: Sequence[AmountLike] | None = None,
    ) -> Expense:
        """
        Record an expense on a tab.

        Adding to a tab with a proposed (unconfirmed) settlement reopens it and
        discards that proposal.

        Args:
            group_id: Group owning the tab
            tab_id: Tab to add to
            payer_id: Member who paid
            amount: Positive amount, parsed exactly
            description: What the expense was for
            participant_ids: Members sharing the cost (default: everyone)
            weights: Optional split weights, parallel to participant_ids

        Returns:
            The stored expense

        Raises:
            ValidationError: On a bad amount, weights or participant
            TabLockedError: If the tab is settling or settled
            NotFoundError: If the tab does not exist
        """
        parsed_amount = parse_amount(amount)
        parsed_weights = parse_weights(weights)

        # Participants and currency are fixed at creation, so any read will do
        tab = self.store.get_tab(group_id, tab_id)
        payer = tab.get_participant(payer_id)
        if payer is None:
            raise ValidationError(
                f"Payer {payer_id} is not a participant of tab {tab.id}"
            )

        members = (
            list(participant_ids)
            if participant_ids is not None
            else [p.member_id for p in tab.participants]
        )
        _validate_split(tab, members, parsed_weights)

        expense = Expense(
            tab_id=tab.id,
            payer_id=payer.member_id,
            payer_address=payer.address,
            amount=parsed_amount,
            description=description,
            participant_ids=members,
            weights=parsed_weights,
            currency=tab.currency,
        )
        _, discarded = self.store.add_expense(
            group_id, tab_id, expense, guard=lifecycle.reopen_for_expense
        )

        if discarded is not None:
            self.pending.discard_settlement(discarded)

        logger.info(
            f"Added expense {expense.id} to tab {tab_id}: {expense.amount} "
            f"{expense.currency} paid by {payer_id}, split {len(expense.participant_ids)} ways"
        )
        return expense

    def delete_expense(self, group_id: str, tab_id: str, expense_id: str):
        """
        Delete an expense from an open tab.

        Raises:
            NotFoundError: If the tab or expense does not exist
            TabLockedError: If the tab is not open
        """
        self.store.delete_expense(
            group_id, tab_id, expense_id, guard=lifecycle.ensure_open
        )
        logger.info(f"Deleted expense {expense_id} from tab {tab_id}")

    def get_tab_summary(self, group_id: str, tab_id: str) -> TabSummary:
        """Expenses plus freshly computed balances for every participant."""
        tab = self.store.get_tab(group_id, tab_id)
        return TabSummary(
            tab=tab,
            expenses=tab.expenses,
            balances=calculate_detailed_balances(
                tab.expenses, tab.participants, self.epsilon
            ),
            total_expenses=calculate_total_expenses(tab.expenses),
        )

    # ========================================================================
    # Settlement lifecycle
    # ========================================================================

    def propose_settlement(
        self, group_id: str, tab_id: str, asset_id: str | None = None
    ) -> ProposalResult:
        """
        Compute transfers that settle a tab and start tracking them.

        Returns ``NothingToSettle`` when every balance is within epsilon. If the
        tab already has a proposal, that proposal is returned unchanged and any of
        its legs missing from the pending index (e.g. after a failed
        registration) are registered again.

        Raises:
            InvalidStateError: If the tab is settling or settled
            NotFoundError: If the tab does not exist
        """
        asset = resolve_asset(self.settings.network_id, asset_id)

        def propose(tab: Tab) -> tuple[Settlement | None, bool]:
            lifecycle.ensure_can_propose(tab)

            if tab.status == "settlement_proposed" and tab.current_settlement:
                return tab.current_settlement, False

            balances = balances_for_participants(tab.expenses, tab.participants)
            if not has_imbalance(balances, self.epsilon):
                return None, False

            transfers = optimize_settlements(balances, tab.currency, self.epsilon)
            if not transfers:
                return None, False

            settlement = lifecycle.build_settlement(transfers, tab.currency, asset)
            lifecycle.attach_settlement(tab, settlement)
            return settlement, True

        tab, (settlement, is_new) = self.store.mutate_tab(group_id, tab_id, propose)

        if settlement is None:
            logger.info(f"Tab {tab_id} has nothing to settle")
            return NothingToSettle(tab=tab)

        # Registration skips legs already indexed, so a repeat request heals
        # a proposal whose first registration failed
        self.pending.register(settlement, group_id, tab_id)

        if is_new:
            logger.info(
                f"Proposed settlement {settlement.id} for tab {tab_id} "
                f"with {len(settlement.transactions)} transfer(s)"
            )
        else:
            logger.info(f"Tab {tab_id} already has proposed settlement {settlement.id}")

        return SettlementProposed(tab=tab, settlement=settlement)

    def cancel_settlement(self, group_id: str, tab_id: str) -> Tab:
        """
        Abandon a proposed settlement and reopen the tab.

        Raises:
            InvalidStateError: If the tab has no proposed settlement
        """
        tab, discarded = self.store.mutate_tab(
            group_id, tab_id, lifecycle.cancel_settlement
        )
        self.pending.discard_settlement(discarded)
        logger.info(f"Cancelled settlement {discarded.id} on tab {tab_id}")
        return tab

    def match_confirmation(
        self, sender_id: str, transfer: ObservedTransfer
    ) -> PendingMatch | None:
        """Resolve an observed transfer to a pending leg (at most once)."""
        return self.pending.find_and_remove(sender_id, transfer)

    def restore_confirmation(self, sender_id: str, match: PendingMatch):
        """Make a matched leg matchable again after applying it failed."""
        self.pending.restore(sender_id, match)

    def apply_confirmation(
        self,
        group_id: str,
        tab_id: str,
        settlement_id: str,
        leg_id: str,
        reference: str,
    ) -> Tab:
        """
        Mark a matched leg as confirmed and advance the tab status.

        Raises:
            SettlementNotFoundError: If the settlement or leg is not current
            InvalidStateError: If the leg was already confirmed
        """
        confirmed_at = utc_now()

        def confirm(tab: Tab) -> None:
            lifecycle.confirm_leg(tab, settlement_id, leg_id, reference, confirmed_at)

        tab, _ = self.store.mutate_tab(group_id, tab_id, confirm)
        logger.info(f"Confirmed leg {leg_id} of tab {tab_id} (ref {reference})")
        return tab


def _validate_split(tab: Tab, member_ids: list[str], weights: list[Decimal] | None):
    """Check an expense's participant list and weights against the tab."""
    if not member_ids:
        raise ValidationError("An expense needs at least one participant")

    if len(set(member_ids)) != len(member_ids):
        raise ValidationError(f"Duplicate participants in expense: {member_ids}")

    unknown = [m for m in member_ids if tab.get_participant(m) is None]
    if unknown:
        raise ValidationError(
            f"Not participants of tab {tab.id}: {', '.join(unknown)}"
        )

    if weights is not None and len(weights) != len(member_ids):
        raise ValidationError(
            f"Got {len(weights)} weights for {len(member_ids)} participants"
        )

"""Tests for the tab status state machine."""

from decimal import Decimal

import pytest

from tabsplit import lifecycle
from tabsplit.assets import AssetDetails
from tabsplit.exceptions import InvalidStateError, SettlementNotFoundError, TabLockedError
from tabsplit.models import Tab, Transfer, utc_now

from conftest import ALICE, BOB, CAROL

USDC = AssetDetails(symbol="USDC", address="0xusdc", decimals=6)


@pytest.fixture
def tab(participants):
    return Tab(name="Trip", group_id="group1", currency="USDC", participants=participants)


def transfer(from_id: str, from_addr: str, amount: str) -> Transfer:
    return Transfer(
        from_member_id=from_id,
        from_address=from_addr,
        to_member_id="alice",
        to_address=ALICE,
        amount=Decimal(amount),
        currency="USDC",
    )


@pytest.fixture
def proposed_tab(tab):
    """A tab with a two-leg proposal attached."""
    settlement = lifecycle.build_settlement(
        [transfer("carol", CAROL, "20"), transfer("bob", BOB, "5")], "USDC", USDC
    )
    lifecycle.attach_settlement(tab, settlement)
    return tab


def confirm(tab: Tab, index: int):
    settlement = tab.current_settlement
    return lifecycle.confirm_leg(
        tab, settlement.id, settlement.transactions[index].id, f"0xtx{index}", utc_now()
    )


class TestBuildSettlement:
    """Optimizer transfers become legs with exact atomic amounts."""

    def test_atomic_amounts(self):
        settlement = lifecycle.build_settlement(
            [transfer("carol", CAROL, "3.3333333")],
            "USDC",
            USDC,
        )

        leg = settlement.transactions[0]
        assert leg.atomic_amount == 3_333_333
        assert leg.amount == Decimal("3.333333")
        assert leg.status == "pending"
        assert settlement.status == "proposed"
        assert settlement.asset_decimals == 6


class TestTransitions:
    """Legal and illegal status changes."""

    def test_attach_moves_to_proposed(self, proposed_tab):
        assert proposed_tab.status == "settlement_proposed"
        assert len(proposed_tab.current_settlement.transactions) == 2

    def test_first_confirmation_locks_tab(self, proposed_tab):
        confirm(proposed_tab, 0)

        assert proposed_tab.status == "settling"
        assert proposed_tab.current_settlement.status == "in_progress"
        with pytest.raises(TabLockedError):
            lifecycle.reopen_for_expense(proposed_tab)

    def test_last_confirmation_settles(self, proposed_tab):
        confirm(proposed_tab, 1)
        leg = confirm(proposed_tab, 0)

        assert leg.status == "confirmed"
        assert leg.tx_reference == "0xtx0"
        assert proposed_tab.status == "settled"
        assert proposed_tab.current_settlement.status == "completed"

    def test_single_leg_settles_directly(self, tab):
        lifecycle.attach_settlement(
            tab,
            lifecycle.build_settlement([transfer("bob", BOB, "5")], "USDC", USDC),
        )

        confirm(tab, 0)

        assert tab.status == "settled"

    def test_reopen_discards_proposal(self, proposed_tab):
        settlement = proposed_tab.current_settlement

        discarded = lifecycle.reopen_for_expense(proposed_tab)

        assert discarded == settlement
        assert proposed_tab.status == "open"
        assert proposed_tab.current_settlement is None

    def test_reopen_open_tab_is_noop(self, tab):
        assert lifecycle.reopen_for_expense(tab) is None
        assert tab.status == "open"

    def test_cannot_propose_while_settling(self, proposed_tab):
        confirm(proposed_tab, 0)

        with pytest.raises(InvalidStateError, match="already settling"):
            lifecycle.ensure_can_propose(proposed_tab)

    def test_cannot_propose_when_settled(self, proposed_tab):
        confirm(proposed_tab, 0)
        confirm(proposed_tab, 1)

        with pytest.raises(InvalidStateError, match="already settled"):
            lifecycle.ensure_can_propose(proposed_tab)

    def test_cancel(self, proposed_tab):
        lifecycle.cancel_settlement(proposed_tab)

        assert proposed_tab.status == "open"

    def test_cancel_after_confirmation_refused(self, proposed_tab):
        confirm(proposed_tab, 0)

        with pytest.raises(InvalidStateError):
            lifecycle.cancel_settlement(proposed_tab)


class TestConfirmLeg:
    """Confirmations against unknown or stale settlements."""

    def test_unknown_leg(self, proposed_tab):
        settlement_id = proposed_tab.current_settlement.id

        with pytest.raises(SettlementNotFoundError) as exc_info:
            lifecycle.confirm_leg(proposed_tab, settlement_id, "nope", "0xtx", utc_now())

        assert exc_info.value.leg_id == "nope"
        assert proposed_tab.status == "settlement_proposed"

    def test_stale_settlement(self, proposed_tab):
        leg_id = proposed_tab.current_settlement.transactions[0].id

        with pytest.raises(SettlementNotFoundError):
            lifecycle.confirm_leg(proposed_tab, "old-settlement", leg_id, "0xtx", utc_now())

    def test_no_settlement(self, tab):
        with pytest.raises(SettlementNotFoundError):
            lifecycle.confirm_leg(tab, "s", "l", "0xtx", utc_now())

    def test_double_confirmation_refused(self, proposed_tab):
        confirm(proposed_tab, 0)

        with pytest.raises(InvalidStateError, match="already confirmed"):
            confirm(proposed_tab, 0)

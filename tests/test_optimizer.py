"""Tests for the greedy settlement optimizer."""

from decimal import Decimal

from tabsplit.balances import balances_for_participants
from tabsplit.models import Balance
from tabsplit.optimizer import has_imbalance, optimize_settlements

from conftest import make_expense

EPSILON = Decimal("0.01")


def make_balances(**nets: str) -> list[Balance]:
    """Build balances in keyword order, e.g. make_balances(a="25", b="-5")."""
    return [
        Balance(member_id=member_id, address=f"0x{member_id}", net_amount=Decimal(net))
        for member_id, net in nets.items()
    ]


def apply_transfers(balances: list[Balance], transfers) -> dict[str, Decimal]:
    """Net balances after every transfer has been paid."""
    net = {b.member_id: b.net_amount for b in balances}
    for transfer in transfers:
        net[transfer.from_member_id] += transfer.amount
        net[transfer.to_member_id] -= transfer.amount
    return net


class TestOptimizeSettlements:
    """Greedy largest-debtor to largest-creditor matching."""

    def test_three_way_trip(self, participants):
        """A pays 60, B pays 30, C pays 15, all split three ways."""
        everyone = ["alice", "bob", "carol"]
        expenses = [
            make_expense("alice", "60", everyone),
            make_expense("bob", "30", everyone),
            make_expense("carol", "15", everyone),
        ]
        balances = balances_for_participants(expenses, participants)

        transfers = optimize_settlements(balances, "USDC", EPSILON)

        assert [(t.from_member_id, t.to_member_id, t.amount) for t in transfers] == [
            ("carol", "alice", Decimal("20")),
            ("bob", "alice", Decimal("5")),
        ]
        assert transfers[0].to_address == participants[0].address
        assert all(t.currency == "USDC" for t in transfers)

    def test_all_settled_produces_nothing(self):
        balances = make_balances(a="0", b="0.005", c="-0.005")

        assert optimize_settlements(balances, "USDC", EPSILON) == []
        assert not has_imbalance(balances, EPSILON)

    def test_one_creditor_many_debtors(self):
        balances = make_balances(a="30", b="-10", c="-10", d="-10")

        transfers = optimize_settlements(balances, "USDC", EPSILON)

        assert len(transfers) == 3
        assert {t.from_member_id for t in transfers} == {"b", "c", "d"}
        assert all(t.to_member_id == "a" for t in transfers)

    def test_at_most_n_minus_one_transfers(self):
        balances = make_balances(a="50", b="20", c="-15", d="-25", e="-30")

        transfers = optimize_settlements(balances, "USDC", EPSILON)

        assert len(transfers) <= 4
        assert all(t.amount > 0 for t in transfers)

    def test_transfers_zero_every_balance(self):
        balances = make_balances(a="12.34", b="7.66", c="-3.5", d="-16.5")

        transfers = optimize_settlements(balances, "USDC", EPSILON)
        remaining = apply_transfers(balances, transfers)

        assert all(abs(net) <= EPSILON for net in remaining.values())

    def test_debtor_and_creditor_equal(self):
        """Equal amounts close both sides with one transfer."""
        balances = make_balances(a="10", b="-10")

        transfers = optimize_settlements(balances, "USDC", EPSILON)

        assert len(transfers) == 1
        assert transfers[0].amount == Decimal("10")

    def test_ties_broken_by_member_id(self):
        """Equal debts are settled in member id order, whatever the input order."""
        forward = make_balances(a="20", b="-10", c="-10")
        backward = make_balances(c="-10", b="-10", a="20")

        for balances in (forward, backward):
            transfers = optimize_settlements(balances, "USDC", EPSILON)
            assert [t.from_member_id for t in transfers] == ["b", "c"]

    def test_equal_creditors_by_member_id(self):
        balances = make_balances(z="10", y="10", x="-20")

        transfers = optimize_settlements(balances, "USDC", EPSILON)

        assert [t.to_member_id for t in transfers] == ["y", "z"]

    def test_deterministic(self):
        balances = make_balances(a="40", b="-15", c="-15", d="-10")

        first = optimize_settlements(balances, "USDC", EPSILON)
        second = optimize_settlements(balances, "USDC", EPSILON)

        assert first == second

    def test_dust_transfer_dropped(self):
        """Leftover sub-epsilon amounts from uneven splits are not paid."""
        balances = make_balances(a="10.015", b="-10.011", c="-0.02")

        transfers = optimize_settlements(balances, "USDC", EPSILON)

        assert len(transfers) == 1
        assert transfers[0].from_member_id == "b"


def test_has_imbalance():
    assert has_imbalance(make_balances(a="0.02", b="-0.02"), EPSILON)
    assert not has_imbalance(make_balances(a="0.01", b="-0.01"), EPSILON)

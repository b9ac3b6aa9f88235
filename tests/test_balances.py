"""Tests for net balance calculation."""

from decimal import Decimal

import pytest

from tabsplit.balances import (
    balance_status,
    balances_for_participants,
    calculate_detailed_balances,
    calculate_total_expenses,
    compute_balances,
    distribute_expense,
)
from tabsplit.exceptions import ValidationError

from conftest import make_expense

EPSILON = Decimal("0.01")


class TestDistributeExpense:
    """Splitting one expense among its participants."""

    def test_equal_split(self):
        expense = make_expense("alice", "30", ["alice", "bob", "carol"])

        shares = distribute_expense(expense)

        assert shares == {
            "alice": Decimal("10"),
            "bob": Decimal("10"),
            "carol": Decimal("10"),
        }

    def test_weighted_split(self):
        """Weights 2:1 split 30 into 20 and 10."""
        expense = make_expense("alice", "30", ["alice", "bob"], weights=["2", "1"])

        shares = distribute_expense(expense)

        assert shares == {"alice": Decimal("20"), "bob": Decimal("10")}

    def test_uneven_split_sums_close_to_amount(self):
        """10 split three ways does not lose more than rounding noise."""
        expense = make_expense("alice", "10", ["alice", "bob", "carol"])

        total = sum(distribute_expense(expense).values())

        assert abs(total - Decimal("10")) < Decimal("1e-20")

    def test_empty_participants_rejected(self):
        expense = make_expense("alice", "10", [])
        with pytest.raises(ValidationError, match="no participants"):
            distribute_expense(expense)

    def test_mismatched_weights_rejected(self):
        expense = make_expense("alice", "10", ["alice", "bob"], weights=["1"])
        with pytest.raises(ValidationError, match="weights"):
            distribute_expense(expense)

    def test_non_positive_weight_rejected(self):
        expense = make_expense("alice", "10", ["alice", "bob"], weights=["1", "0"])
        with pytest.raises(ValidationError, match="non-positive"):
            distribute_expense(expense)


class TestComputeBalances:
    """Net balances over all expenses."""

    def test_payer_credited_participants_debited(self):
        """Alice pays 30 for three people: +20 for her, -10 for the others."""
        expenses = [make_expense("alice", "30", ["alice", "bob", "carol"])]

        balances = compute_balances(expenses)

        assert balances == {
            "alice": Decimal("20"),
            "bob": Decimal("-10"),
            "carol": Decimal("-10"),
        }

    def test_payer_not_among_participants(self):
        """Paying for others only earns the full amount as credit."""
        expenses = [make_expense("alice", "20", ["bob", "carol"])]

        balances = compute_balances(expenses)

        assert balances["alice"] == Decimal("20")
        assert balances["bob"] == Decimal("-10")

    def test_balances_sum_to_zero(self):
        expenses = [
            make_expense("alice", "30", ["alice", "bob", "carol"]),
            make_expense("bob", "10", ["alice", "bob", "carol"]),
            make_expense("carol", "7.77", ["alice", "carol"], weights=["3", "1"]),
        ]

        balances = compute_balances(expenses)

        assert abs(sum(balances.values())) < Decimal("1e-20")

    def test_no_expenses(self):
        assert compute_balances([]) == {}


class TestParticipantBalances:
    """Balances reported per tab participant."""

    def test_inactive_participant_gets_zero(self, participants):
        expenses = [make_expense("alice", "10", ["alice", "bob"])]

        balances = balances_for_participants(expenses, participants)

        assert [b.member_id for b in balances] == ["alice", "bob", "carol"]
        assert balances[2].net_amount == Decimal("0")

    def test_detailed_balances(self, participants):
        expenses = [
            make_expense("alice", "30", ["alice", "bob", "carol"]),
            make_expense("bob", "5", ["bob"]),
        ]

        detailed = calculate_detailed_balances(expenses, participants, EPSILON)
        by_member = {b.member_id: b for b in detailed}

        assert by_member["alice"].total_paid == Decimal("30")
        assert by_member["alice"].status == "owed"
        assert by_member["bob"].total_paid == Decimal("5")
        assert by_member["bob"].net_amount == Decimal("-10")
        assert by_member["carol"].status == "owes"

    def test_total_expenses(self):
        expenses = [
            make_expense("alice", "30", ["alice"]),
            make_expense("bob", "0.5", ["bob"]),
        ]
        assert calculate_total_expenses(expenses) == Decimal("30.5")


@pytest.mark.parametrize(
    ("net", "status"),
    [
        ("5", "owed"),
        ("-5", "owes"),
        ("0.01", "settled"),
        ("-0.01", "settled"),
        ("0.011", "owed"),
    ],
)
def test_balance_status(net, status):
    """Balances within epsilon count as settled."""
    assert balance_status(Decimal(net), EPSILON) == status

"""Net balance calculation for a tab's expenses.

Balances are always recomputed from the full expense list; nothing is cached
or updated incrementally. All arithmetic is exact ``Decimal``.
"""

import logging
from decimal import Decimal

from .exceptions import ValidationError
from .models import Balance, BalanceStatus, DetailedBalance, Expense, Participant

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def distribute_expense(expense: Expense) -> dict[str, Decimal]:
    """
    Split an expense among its participants according to its weights.

    Each share is ``amount * weight / sum(weights)``; without weights every
    participant owes ``amount / count``.

    Args:
        expense: The expense to split

    Returns:
        Mapping of member id -> amount owed

    Raises:
        ValidationError: If the participant list is empty or the weights do
            not line up with it
    """
    participant_ids = expense.participant_ids
    if not participant_ids:
        raise ValidationError(f"Expense {expense.id} has no participants")

    distribution: dict[str, Decimal] = {}

    if expense.weights is None:
        share = expense.amount / len(participant_ids)
        for member_id in participant_ids:
            distribution[member_id] = distribution.get(member_id, ZERO) + share
        return distribution

    if len(expense.weights) != len(participant_ids):
        raise ValidationError(
            f"Expense {expense.id} has {len(expense.weights)} weights "
            f"for {len(participant_ids)} participants"
        )
    if any(weight <= 0 for weight in expense.weights):
        raise ValidationError(f"Expense {expense.id} has a non-positive weight")

    total_weight = sum(expense.weights, ZERO)
    for member_id, weight in zip(participant_ids, expense.weights, strict=True):
        share = expense.amount * weight / total_weight
        distribution[member_id] = distribution.get(member_id, ZERO) + share

    return distribution


def compute_balances(expenses: list[Expense]) -> dict[str, Decimal]:
    """
    Calculate the signed net balance of everyone involved in ``expenses``.

    Positive = they paid more than their share (others owe them).
    Negative = they paid less than their share (they owe others).
    """
    balances: dict[str, Decimal] = {}

    for expense in expenses:
        # Credit the payer with the full amount
        balances[expense.payer_id] = balances.get(expense.payer_id, ZERO) + expense.amount

        for member_id, owed in distribute_expense(expense).items():
            balances[member_id] = balances.get(member_id, ZERO) - owed

    return balances


def calculate_total_expenses(expenses: list[Expense]) -> Decimal:
    """Sum of all expense amounts."""
    return sum((expense.amount for expense in expenses), ZERO)


def balance_status(net_amount: Decimal, epsilon: Decimal) -> BalanceStatus:
    """Classify a net balance, treating anything within epsilon as settled."""
    if net_amount > epsilon:
        return "owed"
    if net_amount < -epsilon:
        return "owes"
    return "settled"


def balances_for_participants(
    expenses: list[Expense], participants: list[Participant]
) -> list[Balance]:
    """
    Net balances for every tab participant, in participant order.

    Participants with no activity get a zero balance.
    """
    net = compute_balances(expenses)
    known = {p.member_id for p in participants}
    for member_id in net:
        if member_id not in known:
            logger.warning(f"Balance for {member_id} who is not a tab participant")

    return [
        Balance(
            member_id=p.member_id,
            address=p.address,
            net_amount=net.get(p.member_id, ZERO),
        )
        for p in participants
    ]


def calculate_detailed_balances(
    expenses: list[Expense],
    participants: list[Participant],
    epsilon: Decimal,
) -> list[DetailedBalance]:
    """
    Net balances plus total paid and a status for every participant.

    Args:
        expenses: All expenses of the tab
        participants: The tab's participants
        epsilon: Threshold below which a balance counts as settled

    Returns:
        One entry per participant, in participant order
    """
    total_paid: dict[str, Decimal] = {}
    for expense in expenses:
        total_paid[expense.payer_id] = (
            total_paid.get(expense.payer_id, ZERO) + expense.amount
        )

    return [
        DetailedBalance(
            member_id=balance.member_id,
            address=balance.address,
            net_amount=balance.net_amount,
            total_paid=total_paid.get(balance.member_id, ZERO),
            status=balance_status(balance.net_amount, epsilon),
        )
        for balance in balances_for_participants(expenses, participants)
    ]

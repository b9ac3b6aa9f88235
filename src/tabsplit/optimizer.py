"""Greedy debt minimization: turn net balances into a short list of transfers."""

import logging
from dataclasses import dataclass
from decimal import Decimal

from .models import Balance, Transfer

logger = logging.getLogger(__name__)


@dataclass
class _Party:
    member_id: str
    address: str
    remaining: Decimal


def has_imbalance(balances: list[Balance], epsilon: Decimal) -> bool:
    """True if any balance is further than epsilon from zero."""
    return any(abs(b.net_amount) > epsilon for b in balances)


def optimize_settlements(
    balances: list[Balance], currency: str, epsilon: Decimal
) -> list[Transfer]:
    """
    Compute transfers that bring every balance to zero.

    Matches the largest debtor with the largest creditor, transfers the
    smaller of the two amounts, and moves on from whichever side is paid off
    (the debtor when both are). This yields at most ``n - 1`` transfers for
    ``n`` non-zero balances. It is not guaranteed to be the minimum possible
    count for every distribution.

    Parties with equal amounts are taken in member id order, so the output
    does not depend on the order balances are given in.

    Args:
        balances: Net balances (positive = owed to them)
        currency: Currency label for the transfers
        epsilon: Balances and transfers at or below this are ignored

    Returns:
        Transfers in the order they were matched
    """
    debtors = sorted(
        (
            _Party(b.member_id, b.address, -b.net_amount)
            for b in balances
            if b.net_amount < -epsilon
        ),
        key=lambda p: (-p.remaining, p.member_id),
    )
    creditors = sorted(
        (
            _Party(b.member_id, b.address, b.net_amount)
            for b in balances
            if b.net_amount > epsilon
        ),
        key=lambda p: (-p.remaining, p.member_id),
    )

    transfers: list[Transfer] = []
    debtor_index = 0
    creditor_index = 0

    while debtor_index < len(debtors) and creditor_index < len(creditors):
        debtor = debtors[debtor_index]
        creditor = creditors[creditor_index]

        if debtor.remaining <= creditor.remaining:
            amount = debtor.remaining
            creditor.remaining -= amount
            debtor.remaining = Decimal("0")
            debtor_index += 1
        else:
            amount = creditor.remaining
            debtor.remaining -= amount
            creditor.remaining = Decimal("0")
            creditor_index += 1

        # Skip dust left over from uneven splits
        if amount <= epsilon:
            logger.debug(
                f"Dropping dust transfer {debtor.member_id} -> "
                f"{creditor.member_id}: {amount}"
            )
            continue

        transfers.append(
            Transfer(
                from_member_id=debtor.member_id,
                from_address=debtor.address,
                to_member_id=creditor.member_id,
                to_address=creditor.address,
                amount=amount,
                currency=currency,
            )
        )

    return transfers

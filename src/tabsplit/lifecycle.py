"""Tab status state machine.

::

    open --propose--> settlement_proposed --first leg confirmed--> settling
    settlement_proposed --expense added / cancelled--> open
    settling --all legs confirmed--> settled (terminal)

These functions only edit the ``Tab`` they are given; persistence and the
pending-transaction index are handled by the service layer.
"""

import logging
from datetime import datetime

from .assets import AssetDetails
from .exceptions import InvalidStateError, SettlementNotFoundError, TabLockedError
from .models import Settlement, SettlementTransaction, Tab, Transfer
from .money import from_atomic_units, to_atomic_units

logger = logging.getLogger(__name__)


def ensure_open(tab: Tab) -> None:
    """Raise TabLockedError unless the tab's expenses may change."""
    if tab.status != "open":
        raise TabLockedError(tab.id, tab.status)


def reopen_for_expense(tab: Tab) -> Settlement | None:
    """
    Make a tab ready to accept a new expense.

    A proposed but unconfirmed settlement is abandoned: the tab goes back to
    ``open`` and the discarded settlement is returned so its pending legs can
    be dropped.

    Raises:
        TabLockedError: If the tab is settling or settled
    """
    if tab.status == "settlement_proposed":
        discarded = tab.current_settlement
        tab.current_settlement = None
        tab.status = "open"
        logger.info(f"Tab {tab.id} reopened; proposed settlement discarded")
        return discarded

    ensure_open(tab)
    return None


def ensure_can_propose(tab: Tab) -> None:
    """Raise InvalidStateError if a settlement is already underway or done."""
    if tab.status == "settling":
        raise InvalidStateError(tab.id, tab.status, f"Tab {tab.id} is already settling")
    if tab.status == "settled":
        raise InvalidStateError(tab.id, tab.status, f"Tab {tab.id} is already settled")


def build_settlement(
    transfers: list[Transfer], currency: str, asset: AssetDetails
) -> Settlement:
    """
    Turn optimizer transfers into settlement legs.

    Each leg's ``atomic_amount`` is the exact integer the payer will send on
    chain, and ``amount`` is derived back from it so both always agree.
    """
    legs = []
    for transfer in transfers:
        atomic_amount = to_atomic_units(transfer.amount, asset.decimals)
        legs.append(
            SettlementTransaction(
                from_member_id=transfer.from_member_id,
                from_address=transfer.from_address,
                to_member_id=transfer.to_member_id,
                to_address=transfer.to_address,
                amount=from_atomic_units(atomic_amount, asset.decimals),
                atomic_amount=atomic_amount,
            )
        )

    return Settlement(
        currency=currency,
        asset_id=asset.address,
        asset_decimals=asset.decimals,
        transactions=legs,
    )


def attach_settlement(tab: Tab, settlement: Settlement) -> None:
    """Make ``settlement`` the tab's current proposal, replacing any earlier one."""
    ensure_can_propose(tab)
    tab.current_settlement = settlement
    tab.status = "settlement_proposed"


def cancel_settlement(tab: Tab) -> Settlement:
    """
    Abandon a proposed settlement and reopen the tab.

    Raises:
        InvalidStateError: If the tab has no unconfirmed proposal
    """
    if tab.status != "settlement_proposed" or tab.current_settlement is None:
        raise InvalidStateError(
            tab.id, tab.status, f"Tab {tab.id} has no proposed settlement to cancel"
        )
    discarded = tab.current_settlement
    tab.current_settlement = None
    tab.status = "open"
    return discarded


def confirm_leg(
    tab: Tab,
    settlement_id: str,
    leg_id: str,
    reference: str,
    confirmed_at: datetime,
) -> SettlementTransaction:
    """
    Mark one settlement leg as paid and advance the tab status.

    Args:
        tab: Tab owning the settlement
        settlement_id: Settlement the leg was registered under
        leg_id: The leg to confirm
        reference: External transaction reference (e.g. tx hash)
        confirmed_at: Confirmation time

    Returns:
        The confirmed leg

    Raises:
        SettlementNotFoundError: If the settlement is not current or the leg
            does not exist
        InvalidStateError: If the leg was already confirmed
    """
    settlement = tab.current_settlement
    if settlement is None or settlement.id != settlement_id:
        raise SettlementNotFoundError(tab.id, settlement_id, leg_id)

    leg = settlement.get_leg(leg_id)
    if leg is None:
        raise SettlementNotFoundError(tab.id, settlement_id, leg_id)

    if leg.status == "confirmed":
        raise InvalidStateError(
            tab.id,
            tab.status,
            f"Leg {leg_id} of settlement {settlement_id} is already confirmed",
        )

    leg.status = "confirmed"
    leg.tx_reference = reference
    leg.confirmed_at = confirmed_at

    confirmed = settlement.confirmed_count
    total = len(settlement.transactions)

    if confirmed == total:
        settlement.status = "completed"
        tab.status = "settled"
        logger.info(f"Tab {tab.id} fully settled ({total} legs)")
    elif tab.status == "settlement_proposed":
        settlement.status = "in_progress"
        tab.status = "settling"
        logger.info(f"Tab {tab.id} locked for settlement ({confirmed}/{total})")

    return leg

"""Turn observed on-chain payments into settlement progress."""

import logging

from .clients.chain import ChainClient
from .exceptions import (
    ConcurrentModificationError,
    ConfigurationError,
    StorageUnavailableError,
)
from .models import ObservedTransfer, SettlementProgress
from .service import TabService

logger = logging.getLogger(__name__)


class SettlementTracker:
    """Matches confirmed transfers to pending legs and applies them."""

    def __init__(self, service: TabService, chain: ChainClient | None = None):
        """Initialize the tracker."""
        self.service = service
        self.chain = chain

    def handle_transaction(
        self, sender_id: str, reference: str
    ) -> SettlementProgress | None:
        """
        Handle a transaction reference a member reported as sent.

        Only Transfer events of a token the sender has pending legs in are
        considered.

        Args:
            sender_id: Member who sent the transaction
            reference: Transaction hash

        Returns:
            Progress of the tab the payment settled, or None if the
            transaction is not a pending settlement payment
        """
        if self.chain is None:
            raise ConfigurationError("No chain client configured")

        assets = dict.fromkeys(
            entry.asset_id for entry in self.service.pending.pending_for(sender_id)
        )
        if not assets:
            logger.info(f"No pending legs for {sender_id}; ignoring {reference}")
            return None

        logger.info(f"Checking transaction {reference} from {sender_id}")
        for asset_id in assets:
            transfer = self.chain.get_transfer(reference, asset_id)
            if transfer is not None:
                return self.handle_transfer(sender_id, transfer, reference)

        logger.info(f"{reference} moved none of the pending tokens; ignoring")
        return None

    def handle_transfer(
        self, sender_id: str, transfer: ObservedTransfer, reference: str
    ) -> SettlementProgress | None:
        """
        Match an already-decoded transfer and confirm its leg.

        If the confirmation cannot be written, the matched leg is put back so
        the same payment can be reported again.
        """
        match = self.service.match_confirmation(sender_id, transfer)
        if match is None:
            return None

        try:
            tab = self.service.apply_confirmation(
                match.group_id,
                match.tab_id,
                match.settlement_id,
                match.leg_id,
                reference,
            )
        except (StorageUnavailableError, ConcurrentModificationError):
            logger.error(f"Could not confirm leg {match.leg_id}; keeping it pending")
            self.service.restore_confirmation(sender_id, match)
            raise

        # apply_confirmation guarantees the settlement and leg exist
        settlement = tab.current_settlement
        assert settlement is not None
        leg = settlement.get_leg(match.leg_id)
        assert leg is not None

        progress = SettlementProgress(
            tab=tab,
            leg=leg,
            confirmed_count=settlement.confirmed_count,
            total_count=len(settlement.transactions),
        )
        logger.info(
            f"Settlement progress for tab {tab.id}: "
            f"{progress.confirmed_count}/{progress.total_count} ({tab.status})"
        )
        return progress

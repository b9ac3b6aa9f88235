"""Index of settlement legs awaiting on-chain confirmation.

Legs are stored per sender under ``pendingTx:{sender_id}``. An observed
transfer is matched on token contract, recipient (case-insensitive) and the
exact atomic amount, never on an approximate decimal value, so a sender with
several pending legs cannot have the wrong one confirmed.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import TypeVar

from .db import Database
from .exceptions import ConcurrentModificationError
from .models import (
    ObservedTransfer,
    PendingMatch,
    PendingTransaction,
    PendingTransactionList,
    Settlement,
    SettlementTransaction,
    utc_now,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def pending_key(sender_id: str) -> str:
    return f"pendingTx:{sender_id}"


class PendingTransactionIndex:
    """Registers settlement legs and resolves confirmations to exactly one leg."""

    def __init__(
        self,
        database: Database,
        ttl: timedelta = timedelta(hours=24),
        max_write_attempts: int = 5,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the index."""
        self.db = database
        self.ttl = ttl
        self.max_write_attempts = max_write_attempts
        self.clock = clock

    def _update(
        self,
        sender_id: str,
        edit: Callable[[list[PendingTransaction]], T],
    ) -> T:
        """Versioned read-modify-write of one sender's live entries."""
        key = pending_key(sender_id)
        for attempt in range(1, self.max_write_attempts + 1):
            now = self.clock()
            record = self.db.get_record(key)
            stored = (
                PendingTransactionList.model_validate_json(record.value)
                if record
                else PendingTransactionList()
            )
            live = [entry for entry in stored.entries if entry.expires_at > now]
            expired = len(stored.entries) - len(live)
            if expired:
                logger.debug(f"Pruned {expired} expired pending legs for {sender_id}")

            result = edit(live)

            if live == stored.entries:
                return result

            expires_at = max((entry.expires_at for entry in live), default=now)
            written = self.db.put_record(
                key,
                PendingTransactionList(entries=live).model_dump_json(),
                expected_version=record.version if record else None,
                expires_at=expires_at,
            )
            if written:
                return result

            logger.debug(f"Conflict on {key}, retrying (attempt {attempt})")

        raise ConcurrentModificationError(key, self.max_write_attempts)

    def register(self, settlement: Settlement, group_id: str, tab_id: str):
        """
        Add every pending leg of a settlement to its sender's list.

        Legs already in the index, and legs that are confirmed, are skipped,
        so registering the same settlement again only fills in what is missing.
        """
        by_sender: dict[str, list[SettlementTransaction]] = {}
        for leg in settlement.transactions:
            if leg.status == "pending":
                by_sender.setdefault(leg.from_member_id, []).append(leg)

        for sender_id, legs in by_sender.items():

            def append(entries: list[PendingTransaction], legs=legs) -> int:
                now = self.clock()
                present = {entry.leg_id for entry in entries}
                added = 0
                for leg in legs:
                    if leg.id in present:
                        continue
                    entries.append(
                        PendingTransaction(
                            group_id=group_id,
                            tab_id=tab_id,
                            settlement_id=settlement.id,
                            leg_id=leg.id,
                            from_address=leg.from_address.lower(),
                            to_address=leg.to_address.lower(),
                            atomic_amount=leg.atomic_amount,
                            asset_id=settlement.asset_id.lower(),
                            registered_at=now,
                            expires_at=now + self.ttl,
                        )
                    )
                    added += 1
                return added

            added = self._update(sender_id, append)
            if added:
                logger.info(
                    f"Registered {added} pending leg(s) for {sender_id} "
                    f"(settlement {settlement.id})"
                )

    def find_and_remove(
        self, sender_id: str, transfer: ObservedTransfer
    ) -> PendingMatch | None:
        """
        Match an observed transfer to a pending leg and remove that leg.

        The token contract, recipient (case-insensitive) and exact atomic
        amount must all agree. When the transfer names its sender address,
        that must be the leg's payer too.

        Args:
            sender_id: Member who sent the transfer
            transfer: Transfer decoded from the chain (or reported manually)

        Returns:
            The matched leg, or None if the transfer is not a pending
            settlement payment
        """
        recipient = transfer.recipient.lower()
        asset_id = transfer.asset_id.lower()
        sender_address = transfer.sender.lower() if transfer.sender else None

        def take(entries: list[PendingTransaction]) -> PendingMatch | None:
            for index, entry in enumerate(entries):
                if (
                    entry.asset_id.lower() == asset_id
                    and entry.to_address.lower() == recipient
                    and entry.atomic_amount == transfer.atomic_amount
                    and (sender_address is None or entry.from_address == sender_address)
                ):
                    del entries[index]
                    return PendingMatch(
                        group_id=entry.group_id,
                        tab_id=entry.tab_id,
                        settlement_id=entry.settlement_id,
                        leg_id=entry.leg_id,
                        entry=entry,
                    )
            return None

        match = self._update(sender_id, take)
        if match is not None:
            logger.info(f"Matched transfer from {sender_id} to leg {match.leg_id}")
        else:
            logger.info(
                f"No pending leg for {sender_id} -> {recipient} "
                f"({transfer.atomic_amount} of {asset_id})"
            )
        return match

    def restore(self, sender_id: str, match: PendingMatch):
        """Put a matched entry back after its confirmation could not be applied."""

        def put_back(entries: list[PendingTransaction]) -> None:
            if all(entry.leg_id != match.leg_id for entry in entries):
                entries.append(match.entry)

        self._update(sender_id, put_back)
        logger.warning(f"Restored pending leg {match.leg_id} for {sender_id}")

    def discard_settlement(self, settlement: Settlement):
        """Drop every pending entry belonging to an abandoned settlement."""
        senders = {leg.from_member_id for leg in settlement.transactions}
        for sender_id in senders:

            def drop(entries: list[PendingTransaction]) -> None:
                entries[:] = [e for e in entries if e.settlement_id != settlement.id]

            self._update(sender_id, drop)

        logger.info(f"Discarded pending legs of settlement {settlement.id}")

    def pending_for(self, sender_id: str) -> list[PendingTransaction]:
        """Live (non-expired) pending entries for a sender, oldest first."""
        record = self.db.get_record(pending_key(sender_id))
        if record is None:
            return []
        now = self.clock()
        stored = PendingTransactionList.model_validate_json(record.value)
        return [entry for entry in stored.entries if entry.expires_at > now]

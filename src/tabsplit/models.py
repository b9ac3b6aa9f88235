"""Pydantic domain models for TabSplit."""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

TabStatus = Literal["open", "settlement_proposed", "settling", "settled"]
SettlementStatus = Literal["proposed", "in_progress", "completed"]
LegStatus = Literal["pending", "confirmed"]
BalanceStatus = Literal["owes", "owed", "settled"]


def generate_id() -> str:
    """Generate a random hex identifier for tabs, expenses and settlements."""
    return uuid4().hex


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


# ============================================================================
# Ledger Models
# ============================================================================


class Participant(BaseModel):
    """A group member taking part in a tab."""

    member_id: str
    address: str

    @field_validator("address")
    @classmethod
    def normalize_address(cls, value: str) -> str:
        return value.lower()


class Expense(BaseModel):
    """A single payment shared among some of a tab's participants.

    ``weights`` is parallel to ``participant_ids``. When it is ``None`` the
    amount is split equally.
    """

    id: str = Field(default_factory=generate_id)
    tab_id: str
    payer_id: str
    payer_address: str
    amount: Decimal
    description: str
    participant_ids: list[str]
    weights: list[Decimal] | None = None
    timestamp: datetime = Field(default_factory=utc_now)
    currency: str


class SettlementTransaction(BaseModel):
    """One leg of a settlement: a single debtor -> creditor transfer."""

    id: str = Field(default_factory=generate_id)
    from_member_id: str
    from_address: str
    to_member_id: str
    to_address: str
    amount: Decimal  # quantized to the asset's decimals
    atomic_amount: int  # exact integer amount expected on chain
    status: LegStatus = "pending"
    tx_reference: str | None = None
    confirmed_at: datetime | None = None


class Settlement(BaseModel):
    """A proposed (and then tracked) set of transfers for a tab."""

    id: str = Field(default_factory=generate_id)
    created_at: datetime = Field(default_factory=utc_now)
    status: SettlementStatus = "proposed"
    currency: str
    asset_id: str
    asset_decimals: int
    transactions: list[SettlementTransaction]

    @property
    def confirmed_count(self) -> int:
        return sum(1 for leg in self.transactions if leg.status == "confirmed")

    def get_leg(self, leg_id: str) -> SettlementTransaction | None:
        """Find a leg by id."""
        for leg in self.transactions:
            if leg.id == leg_id:
                return leg
        return None


class Tab(BaseModel):
    """A named, group-scoped collection of shared expenses."""

    id: str = Field(default_factory=generate_id)
    name: str
    group_id: str
    currency: str
    participants: list[Participant]
    expenses: list[Expense] = Field(default_factory=list)
    status: TabStatus = "open"
    current_settlement: Settlement | None = None
    created_at: datetime = Field(default_factory=utc_now)

    def get_participant(self, member_id: str) -> Participant | None:
        """Look up a participant by member id."""
        for participant in self.participants:
            if participant.member_id == member_id:
                return participant
        return None

    def find_participant_by_address(self, address: str) -> Participant | None:
        """Look up a participant by address (case-insensitive)."""
        normalized = address.lower()
        for participant in self.participants:
            if participant.address == normalized:
                return participant
        return None


# ============================================================================
# Derived Models
# ============================================================================


class Balance(BaseModel):
    """Signed net balance. Positive = owed to them, negative = they owe."""

    member_id: str
    address: str
    net_amount: Decimal


class DetailedBalance(Balance):
    """Net balance plus how much the participant paid in total."""

    total_paid: Decimal
    status: BalanceStatus


class Transfer(BaseModel):
    """A directed transfer produced by the settlement optimizer."""

    from_member_id: str
    from_address: str
    to_member_id: str
    to_address: str
    amount: Decimal
    currency: str


class TabSummary(BaseModel):
    """Expenses and freshly computed balances for a tab."""

    tab: Tab
    expenses: list[Expense]
    balances: list[DetailedBalance]
    total_expenses: Decimal


# ============================================================================
# Pending Transaction Models
# ============================================================================


class PendingTransaction(BaseModel):
    """A settlement leg awaiting on-chain confirmation, indexed by sender."""

    group_id: str
    tab_id: str
    settlement_id: str
    leg_id: str
    from_address: str
    to_address: str
    atomic_amount: int
    asset_id: str
    registered_at: datetime
    expires_at: datetime


class PendingTransactionList(BaseModel):
    """All pending legs stored for one sender."""

    entries: list[PendingTransaction] = Field(default_factory=list)


class PendingMatch(BaseModel):
    """The leg an observed transfer was matched to."""

    group_id: str
    tab_id: str
    settlement_id: str
    leg_id: str
    entry: PendingTransaction  # removed index entry, kept so it can be restored


class ObservedTransfer(BaseModel):
    """A token transfer as seen on chain.

    ``asset_id`` is the token contract that emitted the Transfer event.
    ``sender`` is the token holder it was sent from, when known.
    """

    asset_id: str
    recipient: str
    atomic_amount: int
    sender: str | None = None


# ============================================================================
# Result Models
# ============================================================================


class SettlementProposed(BaseModel):
    """A settlement was created (or an existing proposal returned)."""

    kind: Literal["settlement_proposed"] = "settlement_proposed"
    tab: Tab
    settlement: Settlement


class NothingToSettle(BaseModel):
    """Every balance is already within epsilon of zero."""

    kind: Literal["nothing_to_settle"] = "nothing_to_settle"
    tab: Tab
    message: str = "All settled, nothing to do"


ProposalResult = SettlementProposed | NothingToSettle


class SettlementProgress(BaseModel):
    """State of a tab after one of its legs was confirmed."""

    tab: Tab
    leg: SettlementTransaction
    confirmed_count: int
    total_count: int

    @property
    def is_complete(self) -> bool:
        return self.tab.status == "settled"

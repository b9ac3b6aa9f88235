"""Shared fixtures for TabSplit tests."""

from decimal import Decimal

import pytest

from tabsplit.config import Settings
from tabsplit.db import Database
from tabsplit.models import Expense, Participant
from tabsplit.service import TabService

ALICE = "0x" + "a" * 40
BOB = "0x" + "b" * 40
CAROL = "0x" + "c" * 40


@pytest.fixture
def mock_settings(tmp_path):
    """Create settings pointing at a temporary database."""
    return Settings(database_path=tmp_path / "test.db")


@pytest.fixture
def mock_db(mock_settings):
    """Create a temporary database."""
    db = Database(mock_settings.database_path)
    yield db
    db.close()


@pytest.fixture
def service(mock_settings, mock_db):
    """Create a TabService instance."""
    return TabService(mock_settings, mock_db)


@pytest.fixture
def participants():
    """Alice, Bob and Carol."""
    return [
        Participant(member_id="alice", address=ALICE),
        Participant(member_id="bob", address=BOB),
        Participant(member_id="carol", address=CAROL),
    ]


def make_expense(
    payer_id: str,
    amount: str,
    participant_ids: list[str],
    weights: list[str] | None = None,
) -> Expense:
    """Create an expense without going through the service."""
    return Expense(
        tab_id="tab",
        payer_id=payer_id,
        payer_address="0x" + "0" * 40,
        amount=Decimal(amount),
        description="test",
        participant_ids=participant_ids,
        weights=[Decimal(w) for w in weights] if weights is not None else None,
        currency="USDC",
    )

"""TabSplit - Track shared group expenses and settle them with on-chain transfers."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .db import Database
from .models import (
    Expense,
    NothingToSettle,
    Participant,
    Settlement,
    SettlementProposed,
    SettlementTransaction,
    Tab,
)
from .optimizer import optimize_settlements
from .service import TabService
from .tracker import SettlementTracker

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "Expense",
    "NothingToSettle",
    "Participant",
    "Settlement",
    "SettlementProposed",
    "SettlementTransaction",
    "Tab",
    "optimize_settlements",
    "TabService",
    "SettlementTracker",
]

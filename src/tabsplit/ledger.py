"""Persistent repository of tabs and their expenses."""

import logging
from collections.abc import Callable
from typing import TypeVar

from .db import Database
from .exceptions import ConcurrentModificationError, NotFoundError
from .models import Expense, Participant, Tab

logger = logging.getLogger(__name__)

T = TypeVar("T")


def tab_key(group_id: str, tab_id: str) -> str:
    return f"tab:{group_id}:{tab_id}"


def group_tabs_key(group_id: str) -> str:
    return f"tabs:{group_id}"


class LedgerStore:
    """CRUD over tabs, keyed by (group_id, tab_id).

    Each mutation is a versioned read-modify-write of the whole tab record. A
    write that races with another writer is retried against a fresh read, so
    concurrent expense additions never overwrite each other.
    """

    def __init__(self, database: Database, max_write_attempts: int = 5):
        """Initialize the store."""
        self.db = database
        self.max_write_attempts = max_write_attempts

    def create_tab(
        self,
        group_id: str,
        name: str,
        currency: str,
        participants: list[Participant],
    ) -> Tab:
        """Create and persist a new, open tab."""
        tab = Tab(
            name=name,
            group_id=group_id,
            currency=currency,
            participants=participants,
        )
        key = tab_key(group_id, tab.id)
        if not self.db.put_record(key, tab.model_dump_json(), expected_version=None):
            raise ConcurrentModificationError(key, attempts=1)
        self.db.add_to_set(group_tabs_key(group_id), tab.id)

        logger.info(
            f"Created tab '{name}' ({tab.id}) in group {group_id} "
            f"with {len(participants)} participants"
        )
        return tab

    def get_tab(self, group_id: str, tab_id: str) -> Tab:
        """
        Get a tab by id.

        Raises:
            NotFoundError: If the tab does not exist in the group
        """
        record = self.db.get_record(tab_key(group_id, tab_id))
        if record is None:
            raise NotFoundError(f"Tab not found: {tab_id} (group {group_id})")
        return Tab.model_validate_json(record.value)

    def list_tabs(self, group_id: str) -> list[Tab]:
        """List all tabs in a group, oldest first."""
        tabs = []
        for tab_id in self.db.get_set_members(group_tabs_key(group_id)):
            record = self.db.get_record(tab_key(group_id, tab_id))
            if record is None:
                logger.warning(f"Tab {tab_id} listed for group {group_id} but missing")
                continue
            tabs.append(Tab.model_validate_json(record.value))
        return tabs

    def mutate_tab(
        self, group_id: str, tab_id: str, mutate: Callable[[Tab], T]
    ) -> tuple[Tab, T]:
        """
        Apply ``mutate`` to a fresh copy of the tab and persist the result.

        ``mutate`` changes the tab in place and may raise to abort without
        writing. On a version conflict it is re-run against the latest tab,
        so it must not have side effects outside the tab.

        Args:
            group_id: Group the tab belongs to
            tab_id: Tab to modify
            mutate: Function that edits the tab and returns a result

        Returns:
            Tuple of (persisted tab, value returned by mutate)

        Raises:
            NotFoundError: If the tab does not exist
            ConcurrentModificationError: If every attempt conflicted
        """
        key = tab_key(group_id, tab_id)
        for attempt in range(1, self.max_write_attempts + 1):
            record = self.db.get_record(key)
            if record is None:
                raise NotFoundError(f"Tab not found: {tab_id} (group {group_id})")

            tab = Tab.model_validate_json(record.value)
            result = mutate(tab)

            if self.db.put_record(
                key, tab.model_dump_json(), expected_version=record.version
            ):
                return tab, result

            logger.debug(f"Conflict on {key}, retrying (attempt {attempt})")

        raise ConcurrentModificationError(key, self.max_write_attempts)

    def add_expense(
        self,
        group_id: str,
        tab_id: str,
        expense: Expense,
        guard: Callable[[Tab], T] | None = None,
    ) -> tuple[Tab, T | None]:
        """
        Append an expense to a tab.

        Args:
            group_id: Group the tab belongs to
            tab_id: Tab to add to
            expense: The expense to store
            guard: Optional check run on the fresh tab before appending; it
                may edit the tab or raise to abort

        Returns:
            Tuple of (persisted tab, value returned by guard)
        """

        def append(tab: Tab) -> T | None:
            result = guard(tab) if guard else None
            tab.expenses.append(expense)
            return result

        return self.mutate_tab(group_id, tab_id, append)

    def delete_expense(
        self,
        group_id: str,
        tab_id: str,
        expense_id: str,
        guard: Callable[[Tab], object] | None = None,
    ) -> Tab:
        """
        Remove an expense from a tab.

        ``guard`` runs on the fresh tab first and may raise to abort.

        Raises:
            NotFoundError: If the tab or the expense does not exist
        """

        def remove(tab: Tab) -> None:
            if guard:
                guard(tab)
            remaining = [e for e in tab.expenses if e.id != expense_id]
            if len(remaining) == len(tab.expenses):
                raise NotFoundError(f"Expense not found: {expense_id} (tab {tab_id})")
            tab.expenses = remaining

        tab, _ = self.mutate_tab(group_id, tab_id, remove)
        return tab

"""Tests for name and address lookup."""

import pytest

from tabsplit.exceptions import NotFoundError
from tabsplit.identity import AddressBook, is_address, truncate_address

from conftest import ALICE


def test_is_address():
    assert is_address(ALICE)
    assert is_address("0x" + "AbC1" * 10)
    assert not is_address("alice")
    assert not is_address("0x1234")


def test_truncate_address():
    assert truncate_address("0x1234567890abcdef1234567890abcdef12345678") == "0x1234...5678"
    assert truncate_address("") == ""


class TestAddressBook:
    """Resolving names both ways."""

    def test_resolve_name(self):
        book = AddressBook({"Alice": ALICE.upper().replace("0X", "0x")})

        assert book.resolve_address("alice") == ALICE

    def test_address_passthrough(self):
        assert AddressBook().resolve_address(ALICE.upper().replace("0X", "0x")) == ALICE

    def test_unknown_name(self):
        with pytest.raises(NotFoundError):
            AddressBook().resolve_address("mallory")

    def test_display_name(self):
        book = AddressBook({"alice": ALICE})

        assert book.display_name(ALICE) == "alice"
        assert book.display_name("0x" + "b" * 40) == "0xbbbb...bbbb"

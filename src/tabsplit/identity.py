"""Name <-> address lookup used when reporting settlements."""

import re
from typing import Protocol

from .exceptions import NotFoundError

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def is_address(value: str) -> bool:
    """Check if a string looks like an Ethereum address."""
    return bool(_ADDRESS_RE.match(value))


def truncate_address(address: str) -> str:
    """Shorten an address for display, e.g. 0x1234...abcd."""
    if not address:
        return ""
    return f"{address[:6]}...{address[-4:]}"


class IdentityResolver(Protocol):
    """Resolves human-readable names to addresses and back."""

    def resolve_address(self, name: str) -> str: ...

    def display_name(self, address: str) -> str: ...


class AddressBook:
    """In-memory resolver backed by a fixed name -> address mapping.

    Unknown addresses are displayed truncated.
    """

    def __init__(self, names: dict[str, str] | None = None):
        """Initialize the address book."""
        names = names or {}
        self._by_name = {name.lower(): addr.lower() for name, addr in names.items()}
        self._by_address = {addr.lower(): name for name, addr in names.items()}

    def resolve_address(self, name: str) -> str:
        """
        Look up the address for a name; addresses are returned as-is.

        Raises:
            NotFoundError: If the name is unknown
        """
        if is_address(name):
            return name.lower()
        address = self._by_name.get(name.lower())
        if address is None:
            raise NotFoundError(f"Unknown name: {name}")
        return address

    def display_name(self, address: str) -> str:
        """Name for an address, falling back to the truncated address."""
        return self._by_address.get(address.lower(), truncate_address(address))

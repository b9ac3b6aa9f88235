"""Custom exceptions for TabSplit."""


class TabSplitError(Exception):
    """Base exception for all TabSplit errors."""

    pass


class ConfigurationError(TabSplitError):
    """Raised when configuration is invalid or missing."""

    pass


class ValidationError(TabSplitError):
    """Raised when an amount, weight vector or participant list is invalid."""

    pass


class NotFoundError(TabSplitError):
    """Raised when a tab or expense does not exist."""

    pass


class InvalidStateError(TabSplitError):
    """Raised when an operation is illegal for the tab's current status."""

    def __init__(self, tab_id: str, status: str, message: str | None = None):
        self.tab_id = tab_id
        self.status = status
        super().__init__(message or f"Tab {tab_id} is {status}")


class TabLockedError(TabSplitError):
    """Raised when expenses are mutated on a tab that is no longer open."""

    def __init__(self, tab_id: str, status: str):
        self.tab_id = tab_id
        self.status = status
        super().__init__(
            f"Tab {tab_id} is locked ({status}); expenses can only change while open"
        )


class SettlementNotFoundError(TabSplitError):
    """Raised when a confirmation targets a stale or unknown settlement leg."""

    def __init__(
        self,
        tab_id: str,
        settlement_id: str,
        leg_id: str | None = None,
        message: str | None = None,
    ):
        self.tab_id = tab_id
        self.settlement_id = settlement_id
        self.leg_id = leg_id
        super().__init__(
            message
            or f"Settlement {settlement_id} (leg {leg_id}) not found on tab {tab_id}"
        )


class StorageUnavailableError(TabSplitError):
    """Raised when the backing store cannot be read or written."""

    pass


class ConcurrentModificationError(TabSplitError):
    """Raised when a versioned write keeps conflicting after all retries."""

    def __init__(self, key: str, attempts: int):
        self.key = key
        self.attempts = attempts
        super().__init__(f"Gave up writing {key} after {attempts} conflicting attempts")


class APIError(TabSplitError):
    """Base class for API-related errors."""

    pass


class ChainAPIError(APIError):
    """Raised when a JSON-RPC request to the chain node fails."""

    pass

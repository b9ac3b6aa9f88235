"""Configuration management for TabSplit."""

from decimal import Decimal
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TABSPLIT_",
        case_sensitive=False,
        extra="ignore",
    )

    # Settlement asset
    default_currency: str = "USDC"
    network_id: str = "base-sepolia"

    # Balances within this many currency units of zero count as settled
    settlement_epsilon: Decimal = Decimal("0.01")

    # Pending settlement legs are forgotten after this long
    pending_tx_ttl_hours: int = 24

    # Optimistic write retries before giving up
    max_write_attempts: int = 5

    # JSON-RPC endpoint for confirming transfers on chain
    rpc_url: str | None = None

    # Database path
    database_path: Path = Path.home() / ".tabsplit" / "tabsplit.db"

    def __init__(self, **kwargs):
        """Initialize settings and create database directory if needed."""
        super().__init__(**kwargs)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ValueError(
            f"Failed to load settings. Check the TABSPLIT_* variables in your "
            f"environment or .env file.\n"
            f"Error: {e}"
        ) from e

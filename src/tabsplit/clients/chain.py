"""JSON-RPC client for reading token transfers from an EVM chain."""

import logging
from typing import Any, Protocol

import httpx

from ..exceptions import ChainAPIError
from ..models import ObservedTransfer

logger = logging.getLogger(__name__)

# keccak256("Transfer(address,address,uint256)")
TRANSFER_EVENT_TOPIC = (
    "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
)


class ChainClient(Protocol):
    """Anything that can tell which token transfer a transaction performed."""

    def get_transfer(self, tx_hash: str, asset_id: str) -> ObservedTransfer | None: ...


def _topic_address(topic: str) -> str:
    # Topics are 32 bytes; the address is the last 20
    return "0x" + topic[-40:].lower()


def parse_transfer_log(
    receipt: dict[str, Any], asset_id: str | None = None
) -> ObservedTransfer | None:
    """
    Extract the first ERC-20 Transfer event from a transaction receipt.

    Args:
        receipt: Receipt object as returned by eth_getTransactionReceipt
        asset_id: Only accept events emitted by this token contract

    Returns:
        Token, sender, recipient and atomic amount, or None if the transaction
        failed or moved none of the expected token
    """
    if receipt.get("status") != "0x1":
        logger.info("Transaction failed or reverted")
        return None

    expected = asset_id.lower() if asset_id else None
    for log in receipt.get("logs", []):
        topics = log.get("topics", [])
        if len(topics) < 3 or topics[0].lower() != TRANSFER_EVENT_TOPIC:
            continue

        contract = str(log.get("address", "")).lower()
        if expected is not None and contract != expected:
            logger.debug(f"Ignoring Transfer event from {contract}")
            continue

        return ObservedTransfer(
            asset_id=contract,
            sender=_topic_address(topics[1]),
            recipient=_topic_address(topics[2]),
            atomic_amount=int(log.get("data", "0x0"), 16),
        )

    logger.info("No matching ERC20 Transfer event found in logs")
    return None


class RpcChainClient:
    """Client for an Ethereum JSON-RPC endpoint."""

    def __init__(self, rpc_url: str, timeout: float = 30.0):
        """Initialize the RPC client."""
        self.rpc_url = rpc_url
        self.client = httpx.Client(
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
        self._request_id = 0

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    def _call(self, method: str, params: list[Any]) -> Any:
        """Make a JSON-RPC call and return its result."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        try:
            response = self.client.post(self.rpc_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ChainAPIError(f"{method} failed: {e}") from e

        data = response.json()
        if data.get("error"):
            raise ChainAPIError(f"{method} failed: {data['error']}")
        return data.get("result")

    def get_transaction_receipt(self, tx_hash: str) -> dict[str, Any] | None:
        """Get a transaction receipt, or None if it is not mined yet."""
        receipt: dict[str, Any] | None = self._call(
            "eth_getTransactionReceipt", [tx_hash]
        )
        return receipt

    def get_transfer(self, tx_hash: str, asset_id: str) -> ObservedTransfer | None:
        """
        Look up which transfer of a token a transaction performed.

        Args:
            tx_hash: Transaction hash reported by the payer's wallet
            asset_id: Token contract the payment must be made in

        Returns:
            The observed transfer, or None if there is none (yet)
        """
        receipt = self.get_transaction_receipt(tx_hash)
        if receipt is None:
            logger.info(f"No receipt yet for {tx_hash}")
            return None
        return parse_transfer_log(receipt, asset_id)

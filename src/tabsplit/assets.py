"""Settlement token lookup per network."""

from pydantic import BaseModel

from .exceptions import ConfigurationError


class AssetDetails(BaseModel):
    """An ERC-20 token used to settle tabs."""

    symbol: str
    address: str
    decimals: int


USDC_ADDRESSES: dict[str, str] = {
    "base-mainnet": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
    "base-sepolia": "0x036CbD53842c5426634e7929541eC2318f3dCF7e",
    "ethereum-mainnet": "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
    "ethereum-sepolia": "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
}

USDC_DECIMALS = 6


def get_usdc_details(network_id: str) -> AssetDetails:
    """
    Get the USDC contract for a network.

    Raises:
        ConfigurationError: If USDC is not deployed on the network
    """
    address = USDC_ADDRESSES.get(network_id)
    if address is None:
        raise ConfigurationError(f"USDC not available on network: {network_id}")
    return AssetDetails(symbol="USDC", address=address, decimals=USDC_DECIMALS)


def resolve_asset(network_id: str, asset_id: str | None = None) -> AssetDetails:
    """
    Resolve the token a settlement is paid in.

    A custom ``asset_id`` (token address) is assumed to use USDC's 6 decimals,
    since only stablecoin settlement is supported.
    """
    if asset_id is None:
        return get_usdc_details(network_id)
    return AssetDetails(symbol="ERC20", address=asset_id, decimals=USDC_DECIMALS)

"""External service clients."""

from .chain import ChainClient, RpcChainClient, parse_transfer_log

__all__ = ["ChainClient", "RpcChainClient", "parse_transfer_log"]

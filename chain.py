# chain.py - Thin web3 adapter for the indexer
# - current height, eth_getLogs for one contract/topic, block timestamps
# - Polygon (and other POA chains) need the extraData middleware for get_block

from typing import Any, List, Sequence
from urllib.parse import urlparse

from web3 import Web3
from web3.middleware import ExtraDataToPOAMiddleware

# keccak("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

POA_HINTS = ["polygon", "bsc", "matic", "avax", "sepolia", "linea"]


class ChainConfigError(Exception):
    pass


def _inject_poa_if_needed(w3: Web3, rpc: str) -> None:
    if any(x in rpc.lower() for x in POA_HINTS):
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)


def validate_rpc_url(rpc_url: str) -> str:
    rpc_url = (rpc_url or "").strip()
    parsed = urlparse(rpc_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ChainConfigError(f"Invalid RPC URL: {rpc_url!r}")
    return rpc_url


def to_checksum(address: str) -> str:
    if not Web3.is_address(address):
        raise ChainConfigError(f"Invalid contract address: {address!r}")
    return Web3.to_checksum_address(address)


class ChainClient:
    """Every method may raise whatever the transport raises; callers own retry policy."""

    def __init__(self, rpc_url: str, timeout: int = 30):
        self.rpc_url = validate_rpc_url(rpc_url)
        self.w3 = Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": timeout}))
        _inject_poa_if_needed(self.w3, self.rpc_url)

    def current_height(self) -> int:
        return int(self.w3.eth.block_number)

    def get_logs(
        self, contract: str, topics: Sequence[str], from_block: int, to_block: int
    ) -> List[Any]:
        return list(
            self.w3.eth.get_logs(
                {
                    "fromBlock": from_block,
                    "toBlock": to_block,
                    "address": to_checksum(contract),
                    "topics": list(topics),
                }
            )
        )

    def get_block_timestamp(self, block_number: int) -> int:
        block = self.w3.eth.get_block(block_number)
        return int(block["timestamp"])

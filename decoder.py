# decoder.py - ERC20 Transfer(address indexed from, address indexed to, uint256 value)
# - topics[0] = event signature, topics[1] = from, topics[2] = to (32-byte padded)
# - data = value (single uint256 word)
# - tx hash / block number come from the log envelope, timestamp from a block lookup

from typing import Any, Callable, Mapping

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes
from web3 import Web3

from chain import TRANSFER_TOPIC
from ledger import RawTransfer

WORD_SIZE = 32

_TRANSFER_TOPIC_BYTES = HexBytes(TRANSFER_TOPIC)


class DecodeError(Exception):
    pass


class TimestampUnavailable(DecodeError):
    pass


def _as_bytes(value: Any, field: str) -> HexBytes:
    try:
        return HexBytes(value)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"{field} is not hex/bytes: {e}")


def _decode_address_topic(topic: HexBytes, field: str) -> str:
    if len(topic) != WORD_SIZE:
        raise DecodeError(f"{field} topic must be {WORD_SIZE} bytes, got {len(topic)}")
    try:
        (addr,) = abi_decode(["address"], bytes(topic))
    except DecodingError as e:
        raise DecodeError(f"{field} topic is not an address: {e}")
    return addr.lower()


def decode_transfer(log: Mapping[str, Any], timestamp_lookup: Callable[[int], int]) -> RawTransfer:
    topics = log.get("topics") or []
    if len(topics) != 3:
        raise DecodeError(f"expected 3 topics, got {len(topics)}")

    signature = _as_bytes(topics[0], "topic0")
    if signature != _TRANSFER_TOPIC_BYTES:
        raise DecodeError(f"topic0 {Web3.to_hex(signature)} is not Transfer")

    from_address = _decode_address_topic(_as_bytes(topics[1], "from"), "from")
    to_address = _decode_address_topic(_as_bytes(topics[2], "to"), "to")

    data = _as_bytes(log.get("data") or b"", "data")
    if len(data) != WORD_SIZE:
        raise DecodeError(f"data must be one {WORD_SIZE}-byte word, got {len(data)} bytes")
    (value,) = abi_decode(["uint256"], bytes(data))

    tx_hash = log.get("transactionHash")
    if tx_hash is None:
        raise DecodeError("transaction hash missing")
    raw_block = log.get("blockNumber")
    if raw_block is None:
        raise DecodeError("block number missing")
    try:
        # raw JSON-RPC payloads carry quantities as hex strings
        block_number = int(raw_block, 16) if isinstance(raw_block, str) else int(raw_block)
    except (TypeError, ValueError):
        raise DecodeError(f"block number {raw_block!r} is not an integer")

    try:
        timestamp = int(timestamp_lookup(block_number))
    except Exception as e:
        raise TimestampUnavailable(f"block {block_number} timestamp lookup failed: {e}")

    return RawTransfer(
        tx_hash=Web3.to_hex(_as_bytes(tx_hash, "transactionHash")).lower(),
        block_number=block_number,
        from_address=from_address,
        to_address=to_address,
        value=value,
        timestamp=timestamp,
    )

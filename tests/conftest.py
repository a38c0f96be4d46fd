"""
Shared fixtures: a temp SQLite ledger, a fake chain client and a
Transfer log builder shaped like web3's get_logs output.
"""

from pathlib import Path
from typing import Dict, List

import pytest
from hexbytes import HexBytes

from chain import TRANSFER_TOPIC
from ledger import Ledger

SCHEMA_PATH = Path(__file__).resolve().parent.parent / "schema.sql"

WATCHED = "0x" + "a" * 40
OTHER_B = "0x" + "b" * 40
OTHER_C = "0x" + "c" * 40


def address_topic(addr: str) -> HexBytes:
    return HexBytes("0x" + "0" * 24 + addr[2:])


class FakeChain:
    """In-memory stand-in for chain.ChainClient."""

    def __init__(self, heights=None, logs=None, timestamps=None):
        self.heights: List[int] = list(heights or [])
        self.logs: Dict[int, list] = dict(logs or {})
        self.timestamps: Dict[int, int] = dict(timestamps or {})
        self.height_failures = 0
        self.log_failures: Dict[int, int] = {}
        self.get_logs_calls: List[tuple] = []
        self.height_calls = 0

    def current_height(self) -> int:
        self.height_calls += 1
        if self.height_failures:
            self.height_failures -= 1
            raise ConnectionError("rpc down")
        if len(self.heights) > 1:
            return self.heights.pop(0)
        return self.heights[0]

    def get_logs(self, contract, topics, from_block, to_block):
        self.get_logs_calls.append((from_block, to_block))
        if self.log_failures.get(from_block, 0):
            self.log_failures[from_block] -= 1
            raise ConnectionError(f"get_logs failed for {from_block}")
        out = []
        for blk in range(from_block, to_block + 1):
            out.extend(self.logs.get(blk, []))
        return out

    def get_block_timestamp(self, block_number: int) -> int:
        return self.timestamps[block_number]


@pytest.fixture
def schema_path():
    return SCHEMA_PATH


@pytest.fixture
def ledger(tmp_path):
    led = Ledger.open(tmp_path / "indexer.db", SCHEMA_PATH)
    yield led
    led.close()


@pytest.fixture
def make_log():
    counter = {"n": 0}

    def _make(from_addr, to_addr, value, block, tx_hash=None):
        counter["n"] += 1
        if tx_hash is None:
            tx_hash = "0x" + format(block, "08x") + format(counter["n"], "056x")
        return {
            "address": "0x1234567890abcdef1234567890abcdef12345678",
            "topics": [HexBytes(TRANSFER_TOPIC), address_topic(from_addr), address_topic(to_addr)],
            "data": HexBytes(int(value).to_bytes(32, "big")),
            "blockNumber": block,
            "transactionHash": HexBytes(tx_hash),
            "logIndex": 0,
        }

    return _make


@pytest.fixture
def fake_chain():
    return FakeChain(heights=[100])

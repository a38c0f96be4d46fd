# listener.py - Transfer ingestion loop (polling)
# - Cursor starts at the chain height seen at startup (not persisted)
# - Each round: re-query height, scan [cursor, height] block by block, sleep
# - Log fetches are retried a fixed number of times, then the block is skipped
# - Undecodable logs and storage failures skip one log, never the round

import logging
import sqlite3
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence

from chain import TRANSFER_TOPIC
from decoder import DecodeError, decode_transfer
from ledger import Ledger, LedgerError
from watchlist import classify

logger = logging.getLogger("netflow_indexer.listener")

DEFAULT_POLL_SECONDS = 5.0
DEFAULT_RETRY_SECONDS = 5.0
DEFAULT_MAX_ATTEMPTS = 5


class State(Enum):
    IDLE = "idle"
    FETCHING_HEIGHT = "fetching_height"
    SCANNING_RANGE = "scanning_range"
    SLEEPING = "sleeping"


class StartupError(Exception):
    pass


@dataclass
class RoundStats:
    from_block: int = 0
    to_block: int = -1
    blocks_scanned: int = 0
    logs_seen: int = 0
    transfers_recorded: int = 0
    aggregate_updates: int = 0
    logs_skipped: int = 0


def fetch_logs_with_retry(
    client: Any,
    contract: str,
    topics: Sequence[str],
    from_block: int,
    to_block: int,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    retry_interval: float = DEFAULT_RETRY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> List[Any]:
    """Fetch logs, giving up with an empty list after max_attempts failures."""
    attempts = 0
    while True:
        try:
            return client.get_logs(contract, topics, from_block, to_block)
        except Exception as e:
            attempts += 1
            logger.warning(
                f"Failed to fetch logs for blocks {from_block}-{to_block} "
                f"(attempt {attempts}/{max_attempts}): {e}. Retrying in {retry_interval}s..."
            )
            sleep(retry_interval)
            if attempts >= max_attempts:
                logger.error(f"Max retries reached. Skipping blocks {from_block}-{to_block}.")
                return []


class Listener:
    def __init__(
        self,
        client: Any,
        ledger: Ledger,
        contract: str,
        watchlist: FrozenSet[str],
        poll_interval: float = DEFAULT_POLL_SECONDS,
        retry_interval: float = DEFAULT_RETRY_SECONDS,
        max_fetch_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.ledger = ledger
        self.contract = contract
        self.watchlist = watchlist
        self.poll_interval = poll_interval
        self.retry_interval = retry_interval
        self.max_fetch_attempts = max_fetch_attempts
        self.sleep = sleep
        self.state = State.IDLE
        self.cursor: Optional[int] = None

    # ---------------------------------
    # Idle -> cursor at current height
    # ---------------------------------
    def start(self) -> int:
        try:
            height = self.client.current_height()
        except Exception as e:
            raise StartupError(f"Failed to get current block number: {e}") from e
        self.cursor = height
        logger.info(f"Listener starting at block {height} (watching {len(self.watchlist)} addresses)")
        return height

    def fetch_height(self) -> int:
        self.state = State.FETCHING_HEIGHT
        while True:
            try:
                return self.client.current_height()
            except Exception as e:
                logger.warning(f"Failed to get latest block number: {e}. Retrying in {self.poll_interval}s...")
                self.sleep(self.poll_interval)

    # ---------------------------------
    # Range scan
    # ---------------------------------
    def scan_range(self, to_block: int) -> RoundStats:
        if self.cursor is None:
            raise RuntimeError("Listener.start() must run before scanning")
        self.state = State.SCANNING_RANGE
        stats = RoundStats(from_block=self.cursor, to_block=to_block)
        if to_block < self.cursor:
            return stats

        for blk_num in range(self.cursor, to_block + 1):
            self._process_block(blk_num, stats)
            stats.blocks_scanned += 1
        self.cursor = to_block + 1
        return stats

    def _process_block(self, blk_num: int, stats: RoundStats) -> None:
        logs = fetch_logs_with_retry(
            self.client,
            self.contract,
            [TRANSFER_TOPIC],
            blk_num,
            blk_num,
            max_attempts=self.max_fetch_attempts,
            retry_interval=self.retry_interval,
            sleep=self.sleep,
        )
        timestamps: Dict[int, int] = {}

        def timestamp_of(block_number: int) -> int:
            if block_number not in timestamps:
                timestamps[block_number] = self.client.get_block_timestamp(block_number)
            return timestamps[block_number]

        for log in logs:
            stats.logs_seen += 1
            self._process_log(log, timestamp_of, stats)

    def _process_log(self, log: Any, timestamp_of: Callable[[int], int], stats: RoundStats) -> None:
        try:
            transfer = decode_transfer(log, timestamp_of)
        except DecodeError as e:
            logger.warning(f"Failed to decode log: {e}. Skipping...")
            stats.logs_skipped += 1
            return

        is_in, is_out = classify(transfer, self.watchlist)
        logger.info(f"Block {transfer.block_number}: in={is_in} out={is_out} value={transfer.value}")

        try:
            inserted, aggregate = self.ledger.record_transfer(transfer, is_in, is_out)
        except (sqlite3.Error, LedgerError):
            logger.exception(f"Failed to record transfer {transfer.tx_hash}")
            stats.logs_skipped += 1
            return

        if inserted:
            stats.transfers_recorded += 1
        if aggregate is not None:
            stats.aggregate_updates += 1
            logger.info(
                f"Net flows updated: in={aggregate.cumulative_in} out={aggregate.cumulative_out} "
                f"net={aggregate.net_flow} at {aggregate.last_updated}"
            )

    # ---------------------------------
    # Rounds
    # ---------------------------------
    def run_once(self) -> RoundStats:
        to_block = self.fetch_height()
        stats = self.scan_range(to_block)
        if stats.blocks_scanned:
            logger.info(
                f"Scanned blocks {stats.from_block}-{stats.to_block}: {stats.logs_seen} logs, "
                f"{stats.transfers_recorded} new transfers, {stats.aggregate_updates} aggregate updates, "
                f"{stats.logs_skipped} skipped"
            )
        self.state = State.SLEEPING
        self.sleep(self.poll_interval)
        return stats

    def run_forever(self, max_rounds: Optional[int] = None) -> None:
        if self.cursor is None:
            self.start()
        rounds = 0
        while max_rounds is None or rounds < max_rounds:
            self.run_once()
            rounds += 1

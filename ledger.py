# ledger.py - Durable ledger (SQLite)
# - raw_transfers: one row per transfer tx hash (INSERT OR IGNORE dedup)
# - net_flows: singleton aggregate row (id = 1), seeded by schema.sql
# - Aggregate updates are a single BEGIN IMMEDIATE read-modify-write
# - WAL journal so the read-only query path never blocks the writer

import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

import amounts

logger = logging.getLogger("netflow_indexer.ledger")

NET_FLOWS_ID = 1


class LedgerError(Exception):
    """Storage could not be opened or initialized."""


class SchemaNotFound(LedgerError):
    pass


class AggregateNotFound(LedgerError):
    pass


@dataclass(frozen=True)
class RawTransfer:
    tx_hash: str
    block_number: int
    from_address: str
    to_address: str
    value: int
    timestamp: int


@dataclass(frozen=True)
class NetFlows:
    cumulative_in: int
    cumulative_out: int
    net_flow: int
    last_updated: int


def connect(db_path: Union[str, Path]) -> sqlite3.Connection:
    # isolation_level=None: transactions are opened explicitly below
    conn = sqlite3.connect(str(db_path), isolation_level=None)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Union[str, Path], schema_path: Union[str, Path]) -> sqlite3.Connection:
    schema_file = Path(schema_path)
    try:
        schema = schema_file.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise SchemaNotFound(f"failed to read {schema_file}: file not found")
    except OSError as e:
        raise SchemaNotFound(f"failed to read {schema_file}: {e}")

    try:
        conn = connect(db_path)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(schema)
    except sqlite3.Error as e:
        raise LedgerError(f"failed to initialize database at {db_path}: {e}")
    return conn


def connect_readonly(db_path: Union[str, Path], check_same_thread: bool = True) -> sqlite3.Connection:
    """Read-only connection for query paths: no DDL, no seed, no write lock."""
    db_file = Path(db_path)
    if not db_file.exists():
        raise LedgerError(f"Ledger not initialized at {db_file}")
    try:
        conn = sqlite3.connect(
            f"{db_file.resolve().as_uri()}?mode=ro", uri=True, check_same_thread=check_same_thread
        )
    except sqlite3.Error as e:
        raise LedgerError(f"failed to open {db_file} read-only: {e}")
    conn.row_factory = sqlite3.Row
    return conn


def _row_to_net_flows(row: sqlite3.Row) -> NetFlows:
    return NetFlows(
        cumulative_in=amounts.parse(row["cumulative_in"]),
        cumulative_out=amounts.parse(row["cumulative_out"]),
        net_flow=amounts.parse(row["net_flow"]),
        last_updated=int(row["last_updated"]),
    )


def _row_to_transfer(row: sqlite3.Row) -> RawTransfer:
    return RawTransfer(
        tx_hash=row["tx_hash"],
        block_number=int(row["block_number"]),
        from_address=row["from_address"],
        to_address=row["to_address"],
        value=amounts.parse(row["value"]),
        timestamp=int(row["timestamp"]),
    )


class Ledger:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    @classmethod
    def open(cls, db_path: Union[str, Path], schema_path: Union[str, Path]) -> "Ledger":
        return cls(init_db(db_path, schema_path))

    @classmethod
    def open_readonly(cls, db_path: Union[str, Path], check_same_thread: bool = True) -> "Ledger":
        return cls(connect_readonly(db_path, check_same_thread))

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "Ledger":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @contextmanager
    def _write_txn(self) -> Iterator[sqlite3.Cursor]:
        cur = self.conn.cursor()
        # IMMEDIATE takes the write lock before the aggregate read
        cur.execute("BEGIN IMMEDIATE")
        try:
            yield cur
            cur.execute("COMMIT")
        except BaseException:
            # a failed COMMIT can leave the transaction open; close it so the next BEGIN works
            if self.conn.in_transaction:
                cur.execute("ROLLBACK")
            raise

    # ---------------------------------
    # raw_transfers
    # ---------------------------------
    @staticmethod
    def _insert(cur: sqlite3.Cursor, record: RawTransfer) -> bool:
        cur.execute(
            """
            INSERT OR IGNORE INTO raw_transfers
                (tx_hash, block_number, from_address, to_address, value, timestamp)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                record.tx_hash,
                record.block_number,
                record.from_address,
                record.to_address,
                amounts.to_decimal_string(record.value),
                record.timestamp,
            ),
        )
        return cur.rowcount > 0

    def insert_raw_transfer_if_absent(self, record: RawTransfer) -> bool:
        """Returns True if newly inserted, False if the tx hash was already stored."""
        with self._write_txn() as cur:
            return self._insert(cur, record)

    def list_transfers(self, limit: int = 50) -> List[RawTransfer]:
        cur = self.conn.execute(
            """
            SELECT tx_hash, block_number, from_address, to_address, value, timestamp
            FROM raw_transfers
            ORDER BY block_number DESC, tx_hash
            LIMIT ?
            """,
            (limit,),
        )
        return [_row_to_transfer(r) for r in cur.fetchall()]

    def count_transfers(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM raw_transfers").fetchone()[0]

    # ---------------------------------
    # net_flows
    # ---------------------------------
    @staticmethod
    def _read(cur: sqlite3.Cursor) -> NetFlows:
        cur.execute(
            "SELECT cumulative_in, cumulative_out, net_flow, last_updated FROM net_flows WHERE id = ?",
            (NET_FLOWS_ID,),
        )
        row = cur.fetchone()
        if row is None:
            raise AggregateNotFound("net_flows row not found")
        return _row_to_net_flows(row)

    @classmethod
    def _apply(cls, cur: sqlite3.Cursor, amount: int, timestamp: int, is_in: bool, is_out: bool) -> NetFlows:
        current = cls._read(cur)
        new_in = amounts.add(current.cumulative_in, amount) if is_in else current.cumulative_in
        new_out = amounts.add(current.cumulative_out, amount) if is_out else current.cumulative_out
        updated = NetFlows(
            cumulative_in=new_in,
            cumulative_out=new_out,
            net_flow=amounts.saturating_sub(new_in, new_out),
            last_updated=timestamp,
        )
        cur.execute(
            """
            UPDATE net_flows
            SET cumulative_in = ?, cumulative_out = ?, net_flow = ?, last_updated = ?
            WHERE id = ?
            """,
            (
                amounts.to_decimal_string(updated.cumulative_in),
                amounts.to_decimal_string(updated.cumulative_out),
                amounts.to_decimal_string(updated.net_flow),
                updated.last_updated,
                NET_FLOWS_ID,
            ),
        )
        return updated

    def read_net_flows(self) -> NetFlows:
        return self._read(self.conn.cursor())

    def apply_transfer_to_aggregate(self, amount: int, timestamp: int, is_in: bool, is_out: bool) -> NetFlows:
        with self._write_txn() as cur:
            return self._apply(cur, amount, timestamp, is_in, is_out)

    def record_transfer(
        self, record: RawTransfer, is_in: bool, is_out: bool
    ) -> Tuple[bool, Optional[NetFlows]]:
        """
        Insert the raw row and, if it is new and touches the watch-list, update
        the aggregate in the same transaction.

        Returns (inserted, aggregate); aggregate is None when nothing was applied.
        """
        with self._write_txn() as cur:
            if not self._insert(cur, record):
                logger.debug(f"Transfer {record.tx_hash} already stored; skipping aggregate")
                return False, None
            if not (is_in or is_out):
                return True, None
            return True, self._apply(cur, record.value, record.timestamp, is_in, is_out)

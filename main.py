# main.py - netflow-indexer entrypoint
# - `start`: ingest Transfer events for the token contract forever
# - `query`: print the net-flow aggregate and exit
# - `serve`: read-only HTTP view of the ledger (FastAPI)

import argparse
import logging
import sqlite3
import sys
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel

from chain import ChainClient, ChainConfigError
from config import ConfigError, Settings, load_settings
from ledger import AggregateNotFound, Ledger, LedgerError, NetFlows, RawTransfer, SchemaNotFound
from listener import Listener, StartupError

logger = logging.getLogger("netflow_indexer")

FATAL_ERRORS = (ConfigError, ChainConfigError, SchemaNotFound, LedgerError, StartupError)


# =========================================================
# Logging
# =========================================================
def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> None:
    logging.basicConfig(
        filename=log_file,
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


# =========================================================
# HTTP read path
# =========================================================
class NetFlowsResponse(BaseModel):
    cumulative_in: str
    cumulative_out: str
    net_flow: str
    last_updated: int


class TransferResponse(BaseModel):
    tx_hash: str
    block_number: int
    from_address: str
    to_address: str
    value: str
    timestamp: int


def net_flows_response(flows: NetFlows) -> NetFlowsResponse:
    return NetFlowsResponse(
        cumulative_in=str(flows.cumulative_in),
        cumulative_out=str(flows.cumulative_out),
        net_flow=str(flows.net_flow),
        last_updated=flows.last_updated,
    )


def transfer_response(t: RawTransfer) -> TransferResponse:
    return TransferResponse(
        tx_hash=t.tx_hash,
        block_number=t.block_number,
        from_address=t.from_address,
        to_address=t.to_address,
        value=str(t.value),
        timestamp=t.timestamp,
    )


def create_app(settings: Settings) -> FastAPI:
    app = FastAPI(
        title="netflow-indexer",
        description="Read-only view of ingested token transfers and watch-list net flows",
        version="1.0.0",
    )

    def get_ledger():
        # read-only connection; WAL lets it read while the listener writes
        try:
            ledger = Ledger.open_readonly(settings.db_path, check_same_thread=False)
        except LedgerError as e:
            raise HTTPException(status_code=503, detail=str(e))
        try:
            yield ledger
        finally:
            ledger.close()

    @app.get("/")
    def root():
        return {"status": "ok", "service": "netflow-indexer"}

    @app.get("/net_flows", response_model=NetFlowsResponse)
    def get_net_flows(ledger: Ledger = Depends(get_ledger)):
        try:
            return net_flows_response(ledger.read_net_flows())
        except AggregateNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        except sqlite3.Error as e:
            logger.error(f"net_flows read failed: {e}")
            raise HTTPException(status_code=503, detail="Ledger unavailable")

    @app.get("/transfers", response_model=List[TransferResponse])
    def get_transfers(
        limit: int = Query(50, ge=1, le=500),
        ledger: Ledger = Depends(get_ledger),
    ):
        try:
            return [transfer_response(t) for t in ledger.list_transfers(limit)]
        except sqlite3.Error as e:
            logger.error(f"transfers read failed: {e}")
            raise HTTPException(status_code=503, detail="Ledger unavailable")

    return app


# =========================================================
# Commands
# =========================================================
def cmd_start(settings: Settings) -> int:
    ledger = Ledger.open(settings.db_path, settings.schema_path)
    print(f"DB initialized at {settings.db_path}")
    try:
        client = ChainClient(settings.rpc_url)
        listener = Listener(
            client,
            ledger,
            settings.token_contract,
            settings.watchlist,
            poll_interval=settings.poll_seconds,
            retry_interval=settings.retry_seconds,
            max_fetch_attempts=settings.max_fetch_attempts,
        )
        listener.start()
        listener.run_forever()
    except KeyboardInterrupt:
        logger.info("Listener stopped")
    finally:
        ledger.close()
    return 0


def cmd_query(settings: Settings) -> int:
    # read-only: never runs the schema or takes the write lock the listener needs
    with Ledger.open_readonly(settings.db_path) as ledger:
        try:
            flows = ledger.read_net_flows()
        except (AggregateNotFound, sqlite3.Error) as e:
            logger.error(f"Failed to read net flows: {e}")
            print(f"Failed to read net flows: {e}", file=sys.stderr)
            return 1
    print(f"Cumulative In: {flows.cumulative_in}")
    print(f"Cumulative Out: {flows.cumulative_out}")
    print(f"Net Flow: {flows.net_flow}")
    print(f"Last Updated Timestamp: {flows.last_updated}")
    return 0


def cmd_serve(settings: Settings) -> int:
    import uvicorn

    # make sure schema + singleton exist before the read-only app opens the file
    Ledger.open(settings.db_path, settings.schema_path).close()
    uvicorn.run(create_app(settings), host=settings.api_host, port=settings.api_port)
    return 0


COMMANDS = {
    "start": cmd_start,
    "query": cmd_query,
    "serve": cmd_serve,
}


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="netflow-indexer",
        description="Index token Transfer events and track net flows for a watch-list",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("start", help="run the ingestion loop")
    sub.add_parser("query", help="print the current net-flow aggregate")
    sub.add_parser("serve", help="serve a read-only HTTP API over the ledger")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = create_parser().parse_args(argv)
    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    setup_logging(settings.log_level, settings.log_file)

    try:
        return COMMANDS[args.command](settings)
    except FATAL_ERRORS as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Startup failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

# config.py - Runtime settings from environment / .env
# - Every setting has a default so `netflow-indexer start` works out of the box
# - Malformed addresses or intervals raise ConfigError (fatal at startup)

import math
import os
from dataclasses import dataclass
from typing import FrozenSet, Optional

from dotenv import load_dotenv

from watchlist import DEFAULT_WATCHLIST, load_watchlist, normalize_address

DEFAULT_DB_PATH = "indexer.db"
DEFAULT_SCHEMA_PATH = "schema.sql"
DEFAULT_RPC_URL = "https://polygon-rpc.com/"
# POL token contract
DEFAULT_TOKEN_CONTRACT = "0x1234567890abcdef1234567890abcdef12345678"


class ConfigError(Exception):
    pass


@dataclass(frozen=True)
class Settings:
    db_path: str = DEFAULT_DB_PATH
    schema_path: str = DEFAULT_SCHEMA_PATH
    rpc_url: str = DEFAULT_RPC_URL
    token_contract: str = DEFAULT_TOKEN_CONTRACT
    watchlist: FrozenSet[str] = frozenset()
    poll_seconds: float = 5.0
    retry_seconds: float = 5.0
    max_fetch_attempts: int = 5
    log_level: str = "INFO"
    log_file: Optional[str] = None
    api_host: str = "127.0.0.1"
    api_port: int = 8000


def _env(name: str, default: str) -> str:
    return os.getenv(name, default).strip() or default


def _env_number(name: str, default: str, cast):
    raw = _env(name, default)
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")
    if not math.isfinite(value) or value < 0:
        raise ConfigError(f"{name} must be a finite non-negative number, got {raw!r}")
    return value


def load_settings() -> Settings:
    load_dotenv()

    try:
        token_contract = normalize_address(_env("TOKEN_CONTRACT", DEFAULT_TOKEN_CONTRACT))
    except ValueError as e:
        raise ConfigError(f"Invalid contract address: {e}")

    raw_watchlist = os.getenv("WATCHLIST", "").strip()
    entries = [a for a in raw_watchlist.split(",") if a.strip()] if raw_watchlist else DEFAULT_WATCHLIST
    try:
        watchlist = load_watchlist(entries)
    except ValueError as e:
        raise ConfigError(f"Invalid watch-list entry: {e}")

    max_attempts = _env_number("MAX_FETCH_ATTEMPTS", "5", int)
    if max_attempts < 1:
        raise ConfigError("MAX_FETCH_ATTEMPTS must be at least 1")

    return Settings(
        db_path=_env("DB_PATH", DEFAULT_DB_PATH),
        schema_path=_env("SCHEMA_PATH", DEFAULT_SCHEMA_PATH),
        rpc_url=_env("POLYGON_RPC", DEFAULT_RPC_URL),
        token_contract=token_contract,
        watchlist=watchlist,
        poll_seconds=_env_number("POLL_SECONDS", "5", float),
        retry_seconds=_env_number("RETRY_SECONDS", "5", float),
        max_fetch_attempts=max_attempts,
        log_level=_env("LOG_LEVEL", "INFO").upper(),
        log_file=os.getenv("LOG_FILE") or None,
        api_host=_env("API_HOST", "127.0.0.1"),
        api_port=_env_number("API_PORT", "8000", int),
    )

import pytest

import config
from config import ConfigError, load_settings
from watchlist import DEFAULT_WATCHLIST

ENV_VARS = [
    "DB_PATH",
    "SCHEMA_PATH",
    "POLYGON_RPC",
    "TOKEN_CONTRACT",
    "WATCHLIST",
    "POLL_SECONDS",
    "RETRY_SECONDS",
    "MAX_FETCH_ATTEMPTS",
    "LOG_LEVEL",
    "LOG_FILE",
    "API_HOST",
    "API_PORT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # keep a developer's local .env out of the tests
    monkeypatch.setattr(config, "load_dotenv", lambda *a, **k: False)


def test_defaults():
    s = load_settings()
    assert s.db_path == "indexer.db"
    assert s.schema_path == "schema.sql"
    assert s.rpc_url == "https://polygon-rpc.com/"
    assert s.token_contract == "0x1234567890abcdef1234567890abcdef12345678"
    assert s.watchlist == frozenset(a.lower() for a in DEFAULT_WATCHLIST)
    assert (s.poll_seconds, s.retry_seconds, s.max_fetch_attempts) == (5.0, 5.0, 5)
    assert s.log_file is None


def test_overrides(monkeypatch):
    monkeypatch.setenv("DB_PATH", "/tmp/x.db")
    monkeypatch.setenv("WATCHLIST", " 0x" + "A" * 40 + ", 0x" + "b" * 40 + ",")
    monkeypatch.setenv("POLL_SECONDS", "1.5")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    s = load_settings()
    assert s.db_path == "/tmp/x.db"
    assert s.watchlist == {"0x" + "a" * 40, "0x" + "b" * 40}
    assert s.poll_seconds == 1.5
    assert s.log_level == "DEBUG"


@pytest.mark.parametrize(
    "name,value",
    [
        ("TOKEN_CONTRACT", "0xnotanaddress"),
        ("WATCHLIST", "0x" + "a" * 40 + ",0x123"),
        ("POLL_SECONDS", "soon"),
        ("RETRY_SECONDS", "-1"),
        ("MAX_FETCH_ATTEMPTS", "0"),
        ("POLL_SECONDS", "nan"),
        ("POLL_SECONDS", "inf"),
        ("RETRY_SECONDS", "NaN"),
        ("RETRY_SECONDS", "-inf"),
        ("RETRY_SECONDS", "Infinity"),
    ],
)
def test_malformed_values_are_config_errors(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigError):
        load_settings()


@pytest.mark.parametrize("value", ["nan", "inf"])
def test_non_finite_interval_fails_at_startup_not_mid_loop(monkeypatch, capsys, value):
    import main

    monkeypatch.setenv("POLL_SECONDS", value)
    assert main.main(["start"]) == 1
    assert "Configuration error" in capsys.readouterr().err

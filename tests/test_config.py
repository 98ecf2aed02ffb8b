import dataclasses

import pytest

from crypto_signal_engine.config import (
    SYMBOL_MAP,
    EngineConfig,
    _env_float,
    _env_int,
    _env_str,
    base_asset,
    interval_ms,
    normalize_trading_symbol,
    pick_allowed,
)


@pytest.mark.parametrize("raw,expected", [
    ("btc", "BTCUSDT"),
    ("eth/usdt", "ETHUSDT"),
    (" sol-usdc ", "SOLUSDC"),
    ("", "BTCUSDT"),
    (None, "BTCUSDT"),
    ("USDT", "USDTUSDT"),
    ("1000pepe", "1000PEPEUSDT"),
])
def test_normalize_trading_symbol(raw, expected):
    assert normalize_trading_symbol(raw) == expected


def test_base_asset():
    assert base_asset("ETHUSDT") == "ETH"
    assert base_asset("SOLFDUSD") == "SOL"
    assert base_asset("ETH") == "ETH"


def test_interval_ms():
    assert interval_ms("15m") == 900_000
    assert interval_ms("1d") == 86_400_000
    assert interval_ms("3w") == 14_400_000


def test_pick_allowed():
    assert pick_allowed("1h", ("1h", "4h"), "4h") == "1h"
    assert pick_allowed("2h", ("1h", "4h"), "4h") == "4h"
    assert pick_allowed(None, ("1h", "4h"), "4h") == "4h"


def test_tables_are_read_only():
    with pytest.raises(TypeError):
        SYMBOL_MAP["FOOUSDT"] = SYMBOL_MAP["BTCUSDT"]


def test_config_is_frozen():
    cfg = EngineConfig()
    with pytest.raises(dataclasses.FrozenInstanceError):
        cfg.candle_limit = 5
    assert cfg.symbol_map["BTCUSDT"].gecko_id == "bitcoin"


def test_env_helpers(monkeypatch):
    monkeypatch.setenv("CSE_TEST_NUM", "2.5")
    monkeypatch.setenv("CSE_TEST_BAD", "abc")
    monkeypatch.setenv("CSE_TEST_EMPTY", "")
    assert _env_float("CSE_TEST_NUM", 1.0) == 2.5
    assert _env_float("CSE_TEST_BAD", 1.0) == 1.0
    assert _env_int("CSE_TEST_BAD", 7) == 7
    assert _env_int("CSE_TEST_MISSING", 7) == 7
    assert _env_str("CSE_TEST_EMPTY", "x") == "x"

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

def _env_float(key: str, default: float) -> float:
    v = os.getenv(key)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except ValueError:
        return default

def _env_int(key: str, default: int) -> int:
    v = os.getenv(key)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default

def _env_str(key: str, default: str) -> str:
    v = os.getenv(key)
    return v if v not in (None, "") else default

@dataclass(frozen=True)
class CoinInfo:
    name: str
    gecko_id: str
    base_price: float  # anchor for the synthetic series

SYMBOL_MAP: Mapping[str, CoinInfo] = MappingProxyType({
    "BTCUSDT": CoinInfo("Bitcoin", "bitcoin", 96500.0),
    "ETHUSDT": CoinInfo("Ethereum", "ethereum", 2700.0),
    "SOLUSDT": CoinInfo("Solana", "solana", 195.0),
    "BNBUSDT": CoinInfo("BNB", "binancecoin", 640.0),
    "XRPUSDT": CoinInfo("Ripple", "ripple", 2.65),
    "ADAUSDT": CoinInfo("Cardano", "cardano", 0.78),
    "AVAXUSDT": CoinInfo("Avalanche", "avalanche-2", 36.0),
    "DOGEUSDT": CoinInfo("Dogecoin", "dogecoin", 0.26),
})

DEFAULT_BASE_PRICE = 50000.0
DEFAULT_GECKO_ID = "bitcoin"

TIMEFRAME_MS: Mapping[str, int] = MappingProxyType({
    "15m": 900_000,
    "1h": 3_600_000,
    "4h": 14_400_000,
    "1d": 86_400_000,
})

# CoinGecko market_chart lookback (days) per timeframe
GECKO_DAYS: Mapping[str, int] = MappingProxyType({"15m": 1, "1h": 3, "4h": 7, "1d": 90})

RISK_THRESHOLDS: Mapping[str, float] = MappingProxyType({
    "conservative": 4.9,
    "moderate": 3.6,
    "aggressive": 2.6,
})

# (tp1, tp2, stop) as fractions of price
TARGET_PCTS: Mapping[str, Tuple[float, float, float]] = MappingProxyType({
    "scalp": (0.01, 0.02, 0.005),
    "swing": (0.03, 0.08, 0.015),
    "position": (0.10, 0.20, 0.03),
})

SUPPORTED_TIMEFRAMES: Tuple[str, ...] = tuple(TIMEFRAME_MS)
SUPPORTED_SIGNAL_TYPES: Tuple[str, ...] = tuple(TARGET_PCTS)
SUPPORTED_RISK_TOLERANCE: Tuple[str, ...] = tuple(RISK_THRESHOLDS)

QUOTE_SUFFIXES: Tuple[str, ...] = ("USDT", "USDC", "FDUSD", "BUSD")

@dataclass(frozen=True)
class EngineConfig:
    # Providers
    binance_base: str = _env_str("CSE_BINANCE_BASE", "https://api.binance.com")
    coingecko_base: str = _env_str("CSE_COINGECKO_BASE", "https://api.coingecko.com")
    request_timeout: float = _env_float("CSE_REQUEST_TIMEOUT", 10.0)  # seconds, per provider call

    # Request defaults
    candle_limit: int = _env_int("CSE_CANDLE_LIMIT", 120)
    default_timeframe: str = _env_str("CSE_DEFAULT_TIMEFRAME", "4h")
    default_signal_type: str = _env_str("CSE_DEFAULT_SIGNAL_TYPE", "swing")
    default_risk_tolerance: str = _env_str("CSE_DEFAULT_RISK", "moderate")

    # HTTP layer response cache (not a correctness dependency)
    cache_ttl_sec: int = _env_int("CSE_CACHE_TTL_SEC", 60)

    symbol_map: Mapping[str, CoinInfo] = field(default_factory=lambda: SYMBOL_MAP)

def interval_ms(timeframe: str) -> int:
    return TIMEFRAME_MS.get(timeframe, TIMEFRAME_MS["4h"])

def pick_allowed(value: Optional[str], allowed: Tuple[str, ...], fallback: str) -> str:
    v = str(value or "")
    return v if v in allowed else fallback

def normalize_trading_symbol(value: Optional[str]) -> str:
    """'btc' -> 'BTCUSDT', 'eth/usdt' -> 'ETHUSDT', '' -> 'BTCUSDT'."""
    s = re.sub(r"[^A-Z0-9]", "", str(value or "").upper())
    if not s:
        return "BTCUSDT"
    if any(s.endswith(q) and len(s) > len(q) for q in QUOTE_SUFFIXES):
        return s
    return f"{s}USDT"

def base_asset(symbol: str) -> str:
    for q in QUOTE_SUFFIXES:
        if symbol.endswith(q) and len(symbol) > len(q):
            return symbol[: -len(q)]
    return symbol

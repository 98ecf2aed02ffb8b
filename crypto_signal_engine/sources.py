"""Candle acquisition: Binance -> CoinGecko -> deterministic demo series.

Each provider is one step of an ordered chain. A step that fails
or returns no candles hands over to the next one; the demo series always
answers for ``limit > 0``, and ``limit == 0`` yields an empty fetch.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import requests

from .config import (
    DEFAULT_BASE_PRICE,
    DEFAULT_GECKO_ID,
    GECKO_DAYS,
    SYMBOL_MAP,
    CoinInfo,
    EngineConfig,
    base_asset,
    interval_ms,
)
from .models import Candle

LCG_MULTIPLIER = 16807
LCG_MODULUS = 2147483647  # 2**31 - 1

class ProviderUnavailable(Exception):
    def __init__(self, provider: str, detail: str):
        super().__init__(f"{provider}: {detail}")
        self.provider = provider
        self.detail = detail

@dataclass(frozen=True)
class CandleFetch:
    candles: List[Candle]
    source: str  # binance | coingecko | synthetic
    attempts: Tuple[str, ...] = ()  # failures seen before `source` answered

    @property
    def is_fallback(self) -> bool:
        return self.source != "binance"

def _get_json(provider: str, url: str, params: Dict[str, Any], timeout: float) -> Any:
    """GET + JSON decode, bounded by `timeout` seconds end to end.

    The per-socket timeout alone lets a trickling body run past it, so the
    body is streamed and checked against a deadline.
    """
    deadline = time.monotonic() + timeout
    try:
        resp = requests.get(url, params=params, timeout=timeout, stream=True)
    except requests.RequestException as e:
        raise ProviderUnavailable(provider, f"request error: {e}") from e
    try:
        if not resp.ok:
            raise ProviderUnavailable(provider, f"HTTP {resp.status_code}")
        chunks = []
        for chunk in resp.iter_content(chunk_size=65536):
            if time.monotonic() > deadline:
                raise ProviderUnavailable(provider, f"exceeded {timeout}s deadline")
            chunks.append(chunk)
    except requests.RequestException as e:
        raise ProviderUnavailable(provider, f"read error: {e}") from e
    finally:
        resp.close()
    try:
        return json.loads(b"".join(chunks))
    except ValueError as e:
        raise ProviderUnavailable(provider, "invalid JSON payload") from e

def fetch_from_binance(symbol: str, timeframe: str, limit: int, cfg: EngineConfig) -> List[Candle]:
    """Binance kline: [openTime, open, high, low, close, volume, closeTime, ...]"""
    data = _get_json(
        "binance",
        f"{cfg.binance_base}/api/v3/klines",
        {"symbol": symbol, "interval": timeframe, "limit": int(limit)},
        cfg.request_timeout,
    )
    try:
        return [
            Candle(
                timestamp=int(k[0]),
                open=float(k[1]),
                high=float(k[2]),
                low=float(k[3]),
                close=float(k[4]),
                volume=float(k[5]),
            )
            for k in data
        ]
    except (TypeError, ValueError, IndexError) as e:
        raise ProviderUnavailable("binance", f"unexpected kline payload: {e}") from e

def resolve_gecko_id(symbol: str, gecko_id: Optional[str] = None,
                     symbol_map: Mapping[str, CoinInfo] = SYMBOL_MAP) -> str:
    if gecko_id:
        return gecko_id
    info = symbol_map.get(symbol)
    return info.gecko_id if info else DEFAULT_GECKO_ID

def fetch_from_coingecko(
    symbol: str,
    timeframe: str,
    limit: int,
    cfg: EngineConfig,
    gecko_id: Optional[str] = None,
) -> List[Candle]:
    """Price-only market chart mapped to synthetic OHLC (+/-0.5% wicks)."""
    gid = resolve_gecko_id(symbol, gecko_id, cfg.symbol_map)
    data = _get_json(
        "coingecko",
        f"{cfg.coingecko_base}/api/v3/coins/{gid}/market_chart",
        {
            "vs_currency": "usd",
            "days": GECKO_DAYS.get(timeframe, 7),
            "interval": "hourly" if timeframe in ("15m", "1h", "4h") else "daily",
        },
        cfg.request_timeout,
    )
    if not isinstance(data, dict):
        raise ProviderUnavailable("coingecko", "unexpected market_chart payload")
    all_prices = data.get("prices") or []
    volumes = data.get("total_volumes") or []
    if not isinstance(all_prices, list) or not isinstance(volumes, list):
        raise ProviderUnavailable("coingecko", "unexpected market_chart series")
    prices = all_prices[-int(limit):] if limit > 0 else []
    offset = len(all_prices) - len(prices)
    out: List[Candle] = []
    try:
        for i, p in enumerate(prices):
            price = float(p[1])
            j = offset + i
            vol = float(volumes[j][1]) if j < len(volumes) and volumes[j] else 0.0
            out.append(Candle(
                timestamp=int(p[0]),
                open=price,
                high=price * 1.005,
                low=price * 0.995,
                close=price,
                volume=vol,
            ))
    except (TypeError, ValueError, IndexError) as e:
        raise ProviderUnavailable("coingecko", f"unexpected price point: {e}") from e
    return out

# ---------- deterministic demo series ----------

def _to_int32(x: int) -> int:
    x &= 0xFFFFFFFF
    return x - 0x100000000 if x >= 0x80000000 else x

def string_seed(text: str) -> int:
    """32-bit rolling hash: seed = seed*31 + char code."""
    seed = 0
    for ch in text:
        seed = _to_int32((seed << 5) - seed + ord(ch))
    return seed

class Lcg:
    """Park-Miller style generator; the modulus keeps the dividend's sign."""

    def __init__(self, seed: int):
        self.seed = seed

    def __call__(self) -> float:
        x = self.seed * LCG_MULTIPLIER
        r = abs(x) % LCG_MODULUS
        self.seed = -r if x < 0 else r
        return (self.seed & 0x7FFFFFFF) / LCG_MODULUS

def generate_demo_data(
    symbol: str,
    timeframe: str,
    limit: int = 100,
    *,
    now_ms: Optional[int] = None,
    symbol_map: Mapping[str, CoinInfo] = SYMBOL_MAP,
) -> List[Candle]:
    """Synthetic random walk, identical for identical (symbol, timeframe, limit).

    Timestamps end at the current interval boundary, so two calls inside the
    same interval also agree on timestamps.
    """
    info = symbol_map.get(symbol)
    price = info.base_price if info else DEFAULT_BASE_PRICE

    rand = Lcg(string_seed(symbol + timeframe))
    trend = 1 if rand() > 0.5 else -1
    volatility = 0.01 + rand() * 0.02

    step = interval_ms(timeframe)
    now = int(time.time() * 1000) if now_ms is None else int(now_ms)
    ts = (now - now % step) - limit * step

    out: List[Candle] = []
    for _ in range(max(0, int(limit))):
        change = (rand() - 0.5 + trend * 0.002) * volatility
        price *= 1 + change
        high = price * (1 + rand() * volatility * 0.5)
        low = price * (1 - rand() * volatility * 0.5)
        close = low + rand() * (high - low)
        out.append(Candle(
            timestamp=ts,
            open=price,
            high=high,
            low=low,
            close=close,
            volume=100000 + rand() * 400000,
        ))
        ts += step
        price = close
    return out

# ---------- chain ----------

Step = Tuple[str, Callable[[], Sequence[Candle]]]

def _try(name: str, fn: Callable[[], Sequence[Candle]], attempts: List[str]) -> Optional[List[Candle]]:
    try:
        candles = list(fn())
    except ProviderUnavailable as e:
        logging.warning("candle source %s unavailable: %s", name, e.detail)
        attempts.append(f"{name}: {e.detail}")
        return None
    except Exception as e:
        # malformed payloads must advance the chain, never escape it
        logging.warning("candle source %s failed: %r", name, e)
        attempts.append(f"{name}: {type(e).__name__}: {e}")
        return None
    if not candles:
        logging.warning("candle source %s returned no candles", name)
        attempts.append(f"{name}: empty")
        return None
    return candles

def run_chain(steps: Sequence[Step]) -> CandleFetch:
    """First step with candles wins. If none has any, an empty fetch from the last step."""
    attempts: List[str] = []
    last = "synthetic"
    for name, fn in steps:
        last = name
        candles = _try(name, fn, attempts)
        if candles is not None:
            logging.info("candles served by %s (n=%d)", name, len(candles))
            return CandleFetch(candles=candles, source=name, attempts=tuple(attempts))
    logging.warning("no candle source returned candles: %s", "; ".join(attempts))
    return CandleFetch(candles=[], source=last, attempts=tuple(attempts))

def fetch_ohlcv(
    symbol: str,
    timeframe: str,
    limit: Optional[int] = None,
    cfg: Optional[EngineConfig] = None,
    *,
    gecko_id: Optional[str] = None,
    now_ms: Optional[int] = None,
) -> CandleFetch:
    cfg = cfg or EngineConfig()
    n = int(cfg.candle_limit if limit is None else limit)
    steps: List[Step] = [
        ("binance", lambda: fetch_from_binance(symbol, timeframe, n, cfg)),
        ("coingecko", lambda: fetch_from_coingecko(symbol, timeframe, n, cfg, gecko_id=gecko_id)),
        ("synthetic", lambda: generate_demo_data(symbol, timeframe, n, now_ms=now_ms, symbol_map=cfg.symbol_map)),
    ]
    return run_chain(steps)

def search_coins(keyword: str, limit: int = 10, cfg: Optional[EngineConfig] = None) -> List[Dict[str, Any]]:
    cfg = cfg or EngineConfig()
    data = _get_json(
        "coingecko",
        f"{cfg.coingecko_base}/api/v3/search",
        {"query": keyword},
        cfg.request_timeout,
    )
    coins = data.get("coins") if isinstance(data, dict) else None
    coins = coins or []
    out: List[Dict[str, Any]] = []
    for c in coins[: max(1, min(20, int(limit)))]:
        sym = str(c.get("symbol") or "").upper()
        if not sym:
            continue
        out.append({
            "id": c.get("id"),
            "symbol": sym,
            "name": c.get("name"),
            "thumb": c.get("thumb"),
            "marketCapRank": c.get("market_cap_rank"),
            "tradingSymbol": f"{base_asset(sym)}USDT",
        })
    return out

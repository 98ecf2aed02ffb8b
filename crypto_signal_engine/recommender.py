from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Callable, List, Optional, Sequence

from .config import (
    SUPPORTED_RISK_TOLERANCE,
    SUPPORTED_SIGNAL_TYPES,
    SUPPORTED_TIMEFRAMES,
    EngineConfig,
    base_asset,
    normalize_trading_symbol,
    pick_allowed,
)
from .indicators import analyze_indicators, macd
from .models import Candle, CatalystWatch, FuturesContext, IndicatorSet, MacdValue, Signal, fixed
from .scoring import score_indicators
from .sources import CandleFetch, fetch_ohlcv, generate_demo_data
from .targets import build_targets

FuturesProvider = Callable[[str, str], FuturesContext]
CatalystProvider = Callable[[str], CatalystWatch]

SOURCE_WARNINGS = {
    "coingecko": "Primary exchange data unavailable, served aggregator candles",
    "synthetic": "Live market data unavailable, served deterministic demo candles",
}

def generate_signal(
    candles: Sequence[Candle],
    signal_type: str,
    risk_tolerance: str,
    *,
    futures: Optional[FuturesContext] = None,
    catalyst: Optional[CatalystWatch] = None,
) -> Signal:
    """Indicators -> regime-aware score -> decision -> targets for the latest candle."""
    if not candles:
        raise ValueError("no candles to analyze")
    closes = [c.close for c in candles]
    ind = analyze_indicators(candles)
    # previous bar, for MACD crossover detection
    prev_macd = macd(closes[:-1]) if len(closes) > 30 else MacdValue()

    res = score_indicators(ind, prev_macd, risk_tolerance, futures=futures, catalyst=catalyst)
    price = ind.current_price
    plan = build_targets(res.signal, price, ind.atr14, signal_type)

    return Signal(
        signal=res.signal,
        confidence=fixed(res.confidence, 1),
        current_price=fixed(price, 2),
        entry_low=plan.entry_low,
        entry_high=plan.entry_high,
        take_profit1=plan.take_profit1,
        take_profit1_pct=plan.take_profit1_pct,
        take_profit2=plan.take_profit2,
        take_profit2_pct=plan.take_profit2_pct,
        stop_loss=plan.stop_loss,
        stop_loss_pct=plan.stop_loss_pct,
        risk_reward=plan.risk_reward,
        reasons=list(res.state.reasons),
        indicators=ind.to_display(),
        regime=res.regime,
        futures_context=futures,
        catalyst_watch=catalyst,
    )

def empty_signal(error: Optional[str] = None) -> Signal:
    """Last-resort payload: schema-valid HOLD with no analysis data."""
    return Signal(
        signal="HOLD",
        confidence=0.0,
        current_price=None,
        entry_low=None,
        entry_high=None,
        take_profit1=None,
        take_profit1_pct=None,
        take_profit2=None,
        take_profit2_pct=None,
        stop_loss=None,
        stop_loss_pct=None,
        risk_reward=None,
        reasons=["Temporary API issue, no analysis data available."],
        indicators=IndicatorSet.empty_display(),
        symbol="BTCUSDT",
        symbol_name="Bitcoin",
        gecko_id="bitcoin",
        timeframe="4h",
        signal_type="swing",
        risk_tolerance="moderate",
        data_source="fallback",
        degraded=True,
        warnings=["Signal endpoint degraded mode response"],
        error=error,
    )

def fallback_signal(error: str, cfg: EngineConfig) -> Signal:
    """BTCUSDT 4h swing/moderate on the demo series; empty payload if even that fails."""
    try:
        candles = generate_demo_data("BTCUSDT", "4h", cfg.candle_limit, symbol_map=cfg.symbol_map)
        sig = generate_signal(candles, "swing", "moderate")
    except Exception as e:
        logging.exception("fallback signal failed")
        return empty_signal(f"{error}; {e}")
    return replace(
        sig,
        symbol="BTCUSDT",
        symbol_name="Bitcoin",
        gecko_id="bitcoin",
        timeframe="4h",
        signal_type="swing",
        risk_tolerance="moderate",
        data_source="synthetic",
        degraded=True,
        warnings=["Signal generation failed, fallback payload returned"],
        error=error,
    )

def _context(label: str, provider, args, neutral):
    """(context, warning) from an optional collaborator; a failure yields the neutral context."""
    if provider is None:
        return None, None
    try:
        return provider(*args), None
    except Exception as e:
        logging.warning("%s provider failed: %s", label, e)
        return neutral, f"{label} unavailable, served neutral values"

def analyze_symbol(
    symbol: Optional[str],
    timeframe: Optional[str] = None,
    signal_type: Optional[str] = None,
    risk_tolerance: Optional[str] = None,
    *,
    gecko_id: Optional[str] = None,
    symbol_name: Optional[str] = None,
    futures_provider: Optional[FuturesProvider] = None,
    catalyst_provider: Optional[CatalystProvider] = None,
    cfg: Optional[EngineConfig] = None,
    now_ms: Optional[int] = None,
) -> Signal:
    """Full request: normalize inputs, fetch, score, flag degraded states. Never raises."""
    cfg = cfg or EngineConfig()
    warnings: List[str] = []

    sym = normalize_trading_symbol(symbol)
    tf = pick_allowed(timeframe or cfg.default_timeframe, SUPPORTED_TIMEFRAMES, "4h")
    st = pick_allowed(signal_type or cfg.default_signal_type, SUPPORTED_SIGNAL_TYPES, "swing")
    rt = pick_allowed(risk_tolerance or cfg.default_risk_tolerance, SUPPORTED_RISK_TOLERANCE, "moderate")
    if timeframe and tf != timeframe:
        warnings.append(f"Invalid timeframe normalized to {tf}")
    if signal_type and st != signal_type:
        warnings.append(f"Invalid signalType normalized to {st}")
    if risk_tolerance and rt != risk_tolerance:
        warnings.append(f"Invalid riskTolerance normalized to {rt}")

    try:
        # candle chain and the optional context collaborators run side by side
        with ThreadPoolExecutor(max_workers=3) as pool:
            f_candles = pool.submit(fetch_ohlcv, sym, tf, cfg.candle_limit, cfg, gecko_id=gecko_id, now_ms=now_ms)
            f_futures = pool.submit(
                _context, "Futures context", futures_provider, (sym, tf), FuturesContext(),
            )
            f_catalyst = pool.submit(
                _context, "Catalyst watch", catalyst_provider, (sym,), CatalystWatch(),
            )
            fetch: CandleFetch = f_candles.result()
            futures, w_futures = f_futures.result()
            catalyst, w_catalyst = f_catalyst.result()
        if not fetch.candles:
            logging.warning("no candles for %s %s (%s)", sym, tf, "; ".join(fetch.attempts))
        elif fetch.source in SOURCE_WARNINGS:
            warnings.append(SOURCE_WARNINGS[fetch.source])
        warnings.extend(w for w in (w_futures, w_catalyst) if w)

        # empty candles raise here and take the fallback path below
        sig = generate_signal(fetch.candles, st, rt, futures=futures, catalyst=catalyst)
    except Exception as e:
        logging.exception("signal generation failed for %s %s", sym, tf)
        return fallback_signal(str(e), cfg)

    info = cfg.symbol_map.get(sym)
    return replace(
        sig,
        symbol=sym,
        symbol_name=symbol_name or (info.name if info else base_asset(sym)),
        gecko_id=gecko_id or (info.gecko_id if info else None),
        timeframe=tf,
        signal_type=st,
        risk_tolerance=rt,
        data_source="live" if fetch.source == "binance" else fetch.source,
        degraded=bool(warnings),
        warnings=warnings,
    )

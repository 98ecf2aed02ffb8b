from __future__ import annotations

from typing import Optional, Sequence

import numpy as np

from .models import BollingerValue, Candle, IndicatorSet, MacdValue

def _mean(values: np.ndarray) -> Optional[float]:
    if len(values) == 0:
        return None
    return float(np.mean(values))

def _pstdev(values: np.ndarray) -> Optional[float]:
    """Population standard deviation (ddof=0)."""
    if len(values) == 0:
        return None
    return float(np.std(values))

def _ema_series(values: np.ndarray, period: int):
    """EMA seeded with the simple average of the first `period` values.

    Yields the seed (aligned to index period-1) and every value after it.
    """
    k = 2.0 / (period + 1)
    e = _mean(values[:period])
    yield e
    for v in values[period:]:
        e = float(v) * k + e * (1.0 - k)
        yield e

def sma(closes: Sequence[float], period: int) -> Optional[float]:
    c = np.asarray(closes, dtype=float)
    if period <= 0 or len(c) < period:
        return None
    return _mean(c[-period:])

def ema(closes: Sequence[float], period: int) -> Optional[float]:
    c = np.asarray(closes, dtype=float)
    if period <= 0 or len(c) < period:
        return None
    e = None
    for e in _ema_series(c, period):
        pass
    return e

def rsi(closes: Sequence[float], period: int = 14) -> Optional[float]:
    """RSI from the simple average gain/loss of the trailing `period` deltas.

    Note:
      - Not Wilder-smoothed; only the trailing window is used.
      - Zero average loss gives 100.
    """
    c = np.asarray(closes, dtype=float)
    if period <= 0 or len(c) < period + 1:
        return None
    d = np.diff(c[-(period + 1):])
    avg_gain = float(np.sum(np.clip(d, 0, None))) / period
    avg_loss = float(np.sum(np.clip(-d, 0, None))) / period
    if avg_loss == 0:
        return 100.0
    return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)

def macd_history(closes: Sequence[float]) -> list:
    """MACD(12, 26) value for every close from index 26 onwards."""
    c = np.asarray(closes, dtype=float)
    if len(c) < 26:
        return []
    k12, k26 = 2.0 / 13, 2.0 / 27
    e12 = _mean(c[:12])
    e26 = _mean(c[:26])
    for v in c[12:26]:
        e12 = float(v) * k12 + e12 * (1.0 - k12)
    out = []
    for v in c[26:]:
        e12 = float(v) * k12 + e12 * (1.0 - k12)
        e26 = float(v) * k26 + e26 * (1.0 - k26)
        out.append(e12 - e26)
    return out

def macd(closes: Sequence[float]) -> MacdValue:
    """MACD line, 9-period signal and histogram.

    The line needs 26 closes; the signal needs 9 history points (35 closes).
    """
    if len(closes) < 26:
        return MacdValue()
    ema12 = ema(closes, 12)
    ema26 = ema(closes, 26)
    if ema12 is None or ema26 is None:
        return MacdValue()
    line = ema12 - ema26

    hist = macd_history(closes)
    signal = None
    if len(hist) >= 9:
        signal = ema(hist, 9)
    return MacdValue(
        line=line,
        signal=signal,
        histogram=(line - signal) if signal is not None else None,
    )

def bollinger_bands(closes: Sequence[float], period: int = 20, std_dev: float = 2.0) -> BollingerValue:
    c = np.asarray(closes, dtype=float)
    if period <= 0 or len(c) < period:
        return BollingerValue()
    window = c[-period:]
    mid = _mean(window)
    sd = _pstdev(window)
    return BollingerValue(upper=mid + std_dev * sd, middle=mid, lower=mid - std_dev * sd)

def atr(candles: Sequence[Candle], period: int = 14) -> Optional[float]:
    """Mean of the trailing `period` true ranges.

    TR = max(high-low, abs(high-prev_close), abs(low-prev_close))
    """
    n = len(candles)
    if period <= 0 or n < period + 1:
        return None
    h = np.array([x.high for x in candles[-period:]], dtype=float)
    l = np.array([x.low for x in candles[-period:]], dtype=float)
    pc = np.array([x.close for x in candles[-(period + 1):-1]], dtype=float)
    tr = np.maximum(h - l, np.maximum(np.abs(h - pc), np.abs(l - pc)))
    return _mean(tr)

def momentum(closes: Sequence[float], period: int) -> Optional[float]:
    if len(closes) <= period:
        return None
    base = closes[-1 - period]
    if not base:
        return None
    return (closes[-1] - base) / base

def simple_returns(closes: Sequence[float]) -> list:
    # zero base -> 0 return
    return [
        (closes[i] - closes[i - 1]) / closes[i - 1] if closes[i - 1] else 0.0
        for i in range(1, len(closes))
    ]

def return_volatility(closes: Sequence[float], window: int = 20) -> Optional[float]:
    rets = simple_returns(closes)[-window:]
    return _pstdev(np.asarray(rets, dtype=float))

def volume_stats(candles: Sequence[Candle], window: int = 20):
    """(latest_volume, avg_volume, volume_ratio); ratio is None when the average is 0."""
    latest = float(candles[-1].volume) if candles else 0.0
    avg = _mean(np.asarray([x.volume for x in candles[-window:]], dtype=float)) or 0.0
    ratio = latest / avg if avg > 0 else None
    return latest, avg, ratio

def analyze_indicators(candles: Sequence[Candle]) -> IndicatorSet:
    closes = [x.close for x in candles]
    latest_volume, avg_volume, volume_ratio = volume_stats(candles)
    return IndicatorSet(
        current_price=closes[-1] if closes else None,
        rsi=rsi(closes),
        macd=macd(closes),
        bollinger_bands=bollinger_bands(closes),
        ema20=ema(closes, 20),
        ema50=ema(closes, 50),
        sma200=sma(closes, 200) if len(closes) >= 200 else None,
        atr14=atr(candles, 14),
        momentum3=momentum(closes, 3),
        momentum10=momentum(closes, 10),
        volatility20=return_volatility(closes),
        latest_volume=latest_volume,
        avg_volume=avg_volume,
        volume_ratio=volume_ratio,
    )

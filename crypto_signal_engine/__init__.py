"""Crypto signal engine (BUY / SELL / HOLD recommendations).

Pipeline per request:
- Candles: Binance klines -> CoinGecko market chart -> deterministic demo series
- Indicators on the latest bar: RSI, MACD, Bollinger, EMA20/50, SMA200, ATR,
  momentum, return volatility, volume ratio
- Regime-aware weighted scoring (uptrend / downtrend / range) with a
  contradiction penalty and a minimum edge before any directional call
- Targets: ATR-padded entry band, two take-profits, volatility-adjusted stop
"""

__all__ = [
    "config",
    "models",
    "sources",
    "indicators",
    "scoring",
    "targets",
    "recommender",
]

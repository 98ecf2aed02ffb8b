from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

def fixed(value: Optional[float], digits: int = 2) -> Optional[float]:
    """Round like JavaScript ``Number.prototype.toFixed`` (half away from zero on the
    exact binary value). Rounded output is part of the response contract."""
    if value is None or not math.isfinite(value):
        return None
    q = Decimal(1).scaleb(-digits)
    return float(Decimal(value).quantize(q, rounding=ROUND_HALF_UP))

def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")

@dataclass(frozen=True)
class Candle:
    timestamp: int  # ms epoch, bar open
    open: float
    high: float
    low: float
    close: float
    volume: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }

@dataclass(frozen=True)
class MacdValue:
    line: Optional[float] = None
    signal: Optional[float] = None
    histogram: Optional[float] = None

@dataclass(frozen=True)
class BollingerValue:
    upper: Optional[float] = None
    middle: Optional[float] = None
    lower: Optional[float] = None

@dataclass(frozen=True)
class IndicatorSet:
    """Indicator snapshot for the latest candle. ``None`` = not enough history."""
    current_price: Optional[float]
    rsi: Optional[float]
    macd: MacdValue
    bollinger_bands: BollingerValue
    ema20: Optional[float]
    ema50: Optional[float]
    sma200: Optional[float]
    atr14: Optional[float]
    momentum3: Optional[float]
    momentum10: Optional[float]
    volatility20: Optional[float]
    latest_volume: float
    avg_volume: float
    volume_ratio: Optional[float]

    def to_display(self) -> Dict[str, Any]:
        pct = lambda v: fixed(v * 100, 2) if v is not None else None
        return {
            "rsi": fixed(self.rsi, 2),
            "macd": {
                "line": fixed(self.macd.line, 4),
                "signal": fixed(self.macd.signal, 4),
                "histogram": fixed(self.macd.histogram, 4),
            },
            "bollingerBands": {
                "upper": fixed(self.bollinger_bands.upper, 2),
                "middle": fixed(self.bollinger_bands.middle, 2),
                "lower": fixed(self.bollinger_bands.lower, 2),
            },
            "ema20": fixed(self.ema20, 2),
            "ema50": fixed(self.ema50, 2),
            "sma200": fixed(self.sma200, 2),
            "atr14": fixed(self.atr14, 4),
            "momentum3": pct(self.momentum3),
            "momentum10": pct(self.momentum10),
            "volatility20": pct(self.volatility20),
            "volumeRatio": fixed(self.volume_ratio, 2),
        }

    @staticmethod
    def empty_display() -> Dict[str, Any]:
        return {
            "rsi": None,
            "macd": {"line": None, "signal": None, "histogram": None},
            "bollingerBands": {"upper": None, "middle": None, "lower": None},
            "ema20": None,
            "ema50": None,
            "sma200": None,
            "atr14": None,
            "momentum3": None,
            "momentum10": None,
            "volatility20": None,
            "volumeRatio": None,
        }

@dataclass
class ScoreState:
    buy_score: float = 0.0
    sell_score: float = 0.0
    buy_evidence: int = 0
    sell_evidence: int = 0
    reasons: List[str] = field(default_factory=list)

    def add_buy(self, points: float, reason: str) -> None:
        self.buy_score += points
        self.buy_evidence += 1
        self.reasons.append(reason)

    def add_sell(self, points: float, reason: str) -> None:
        self.sell_score += points
        self.sell_evidence += 1
        self.reasons.append(reason)

    def note(self, reason: str) -> None:
        self.reasons.append(reason)

    def scale(self, factor: float) -> None:
        self.buy_score *= factor
        self.sell_score *= factor

    @property
    def edge(self) -> float:
        return abs(self.buy_score - self.sell_score)

@dataclass(frozen=True)
class FuturesContext:
    funding_rate: Optional[float] = None
    funding_annualized_pct: Optional[float] = None
    next_funding_time: Optional[int] = None
    open_interest: Optional[float] = None
    open_interest_change_pct: Optional[float] = None
    long_short_ratio: Optional[float] = None
    long_short_change_pct: Optional[float] = None
    source: str = "fallback"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fundingRate": {
                "current": self.funding_rate,
                "annualizedPct": self.funding_annualized_pct,
                "nextFundingTime": self.next_funding_time,
            },
            "openInterest": {"latest": self.open_interest, "changePct": self.open_interest_change_pct},
            "longShortRatio": {"ratio": self.long_short_ratio, "changePct": self.long_short_change_pct},
            "source": self.source,
        }

@dataclass(frozen=True)
class CatalystWatch:
    sentiment_score: float = 0.0
    trend_boost: float = 0.0
    combined_score: float = 0.0
    sentiment_label: str = "Neutral"
    symbol_trending_rank: Optional[int] = None
    catalysts: tuple = ()
    trending_topics: tuple = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sentimentScore": self.sentiment_score,
            "trendBoost": self.trend_boost,
            "combinedScore": self.combined_score,
            "sentimentLabel": self.sentiment_label,
            "symbolTrendingRank": self.symbol_trending_rank,
            "catalysts": list(self.catalysts),
            "trendingTopics": list(self.trending_topics),
        }

@dataclass(frozen=True)
class Signal:
    signal: str  # BUY | SELL | HOLD
    confidence: float
    current_price: Optional[float]
    entry_low: Optional[float]
    entry_high: Optional[float]
    take_profit1: Optional[float]
    take_profit1_pct: Optional[float]
    take_profit2: Optional[float]
    take_profit2_pct: Optional[float]
    stop_loss: Optional[float]
    stop_loss_pct: Optional[float]
    risk_reward: Optional[float]
    reasons: List[str]
    indicators: Dict[str, Any]
    regime: Optional[str] = None
    timestamp: str = field(default_factory=iso_now)

    # request metadata, filled by the pipeline
    symbol: Optional[str] = None
    symbol_name: Optional[str] = None
    gecko_id: Optional[str] = None
    timeframe: Optional[str] = None
    signal_type: Optional[str] = None
    risk_tolerance: Optional[str] = None
    data_source: str = "live"
    degraded: bool = False
    warnings: List[str] = field(default_factory=list)
    error: Optional[str] = None
    futures_context: Optional[FuturesContext] = None
    catalyst_watch: Optional[CatalystWatch] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "signal": self.signal,
            "confidence": self.confidence,
            "currentPrice": self.current_price,
            "entryRange": {"low": self.entry_low, "high": self.entry_high},
            "takeProfit1": self.take_profit1,
            "takeProfit1Pct": self.take_profit1_pct,
            "takeProfit2": self.take_profit2,
            "takeProfit2Pct": self.take_profit2_pct,
            "stopLoss": self.stop_loss,
            "stopLossPct": self.stop_loss_pct,
            "riskReward": self.risk_reward,
            "reasons": list(self.reasons),
            "indicators": self.indicators,
            "regime": self.regime,
            "timestamp": self.timestamp,
            "symbol": self.symbol,
            "symbolName": self.symbol_name,
            "geckoId": self.gecko_id,
            "timeframe": self.timeframe,
            "signalType": self.signal_type,
            "riskTolerance": self.risk_tolerance,
            "dataSource": self.data_source,
            "degraded": self.degraded,
            "warnings": list(self.warnings),
            "futuresContext": (self.futures_context or FuturesContext()).to_dict(),
            "catalystWatch": (self.catalyst_watch or CatalystWatch()).to_dict(),
        }
        if self.error is not None:
            out["error"] = self.error
        return out

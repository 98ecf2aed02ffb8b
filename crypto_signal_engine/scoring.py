from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from .config import RISK_THRESHOLDS
from .models import CatalystWatch, FuturesContext, IndicatorSet, MacdValue, ScoreState, fixed

TREND_BIAS_MIN = 0.012
MIN_EDGE = 0.9
BAND_SQUEEZE_WIDTH = 0.04
VOLUME_SPIKE = 1.6
VOLUME_DRY = 0.75
HIGH_VOLATILITY = 0.025
CONTRADICTION_PENALTY = 0.35

def _f(v: float, digits: int) -> str:
    return f"{fixed(v, digits):.{digits}f}"

@dataclass(frozen=True)
class ScoreResult:
    signal: str
    confidence: float
    regime: str
    trend_bias: float
    threshold: float
    buy_score: float
    sell_score: float
    edge: float
    state: ScoreState

def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))

def classify_regime(ind: IndicatorSet) -> Tuple[str, float]:
    price = ind.current_price
    if ind.ema20 is not None and ind.ema50 is not None and price:
        bias = (ind.ema20 - ind.ema50) / price
    else:
        bias = 0.0
    if abs(bias) >= TREND_BIAS_MIN:
        return ("uptrend" if bias > 0 else "downtrend"), bias
    return "range", bias

def rsi_rule(st: ScoreState, rsi: Optional[float], regime: str) -> None:
    if rsi is None:
        return
    r = _f(rsi, 1)
    if regime == "uptrend":
        if rsi < 38:
            st.add_buy(1.6, f"RSI({r}) pullback in uptrend - dip-buy setup")
        elif rsi > 78:
            st.add_sell(1.2, f"RSI({r}) extended in uptrend - short-term exhaustion risk")
        else:
            st.note(f"RSI({r}) healthy for uptrend continuation")
    elif regime == "downtrend":
        if rsi > 62:
            st.add_sell(1.6, f"RSI({r}) bounce in downtrend - sell-the-rally setup")
        elif rsi < 22:
            st.add_buy(1.1, f"RSI({r}) deeply oversold - relief bounce possible")
        else:
            st.note(f"RSI({r}) neutral within downtrend")
    else:
        if rsi < 30:
            st.add_buy(1.8, f"RSI({r}) oversold in range - bullish mean reversion")
        elif rsi > 70:
            st.add_sell(1.8, f"RSI({r}) overbought in range - bearish mean reversion")
        else:
            st.note(f"RSI({r}) neutral in ranging market")

def macd_rule(st: ScoreState, now: MacdValue, prev: MacdValue) -> None:
    """Fresh crossover 1.9, strengthening 1.4, persisting 1.1."""
    if now.histogram is None:
        return
    h, hp = now.histogram, prev.histogram
    if h > 0 and now.line > now.signal:
        if hp is not None and hp <= 0:
            st.add_buy(1.9, "MACD fresh bullish crossover - momentum shift upward")
        elif hp is not None and h > hp:
            st.add_buy(1.4, "MACD bullish momentum is strengthening")
        else:
            st.add_buy(1.1, "MACD remains bullish")
    elif h < 0 and now.line < now.signal:
        if hp is not None and hp >= 0:
            st.add_sell(1.9, "MACD fresh bearish crossover - momentum shift downward")
        elif hp is not None and h < hp:
            st.add_sell(1.4, "MACD bearish momentum is strengthening")
        else:
            st.add_sell(1.1, "MACD remains bearish")
    else:
        st.note("MACD near equilibrium - weak momentum conviction")

def bollinger_rule(st: ScoreState, ind: IndicatorSet, regime: str) -> None:
    bb = ind.bollinger_bands
    if bb.lower is None or bb.middle is None or bb.upper is None:
        return
    price = ind.current_price
    if price <= bb.lower:
        # counter-trend touch is discounted
        points = 0.8 if regime == "downtrend" else 1.4
        st.add_buy(points, f"Price touched lower Bollinger Band (${_f(bb.lower, 2)}) - downside stretch")
    elif price >= bb.upper:
        points = 0.8 if regime == "uptrend" else 1.4
        st.add_sell(points, f"Price touched upper Bollinger Band (${_f(bb.upper, 2)}) - upside stretch")
    if bb.middle and (bb.upper - bb.lower) / bb.middle < BAND_SQUEEZE_WIDTH:
        st.note("Bollinger bandwidth compressed - breakout risk rising, confidence moderated")
        st.scale(0.95)

def ema_rule(st: ScoreState, ind: IndicatorSet) -> None:
    price = ind.current_price
    if ind.ema20 is not None and ind.ema50 is not None:
        if price > ind.ema20 > ind.ema50:
            st.add_buy(1.5, "Price above EMA20 > EMA50 - bullish structure intact")
        elif price < ind.ema20 < ind.ema50:
            st.add_sell(1.5, "Price below EMA20 < EMA50 - bearish structure intact")
        else:
            st.note("EMA structure mixed - trend conviction reduced")
    if ind.sma200 is not None:
        if price > ind.sma200:
            st.add_buy(0.7, "Price above SMA200 - long-term trend support")
        else:
            st.add_sell(0.7, "Price below SMA200 - long-term trend pressure")

def momentum_rule(st: ScoreState, ind: IndicatorSet) -> None:
    m3, m10 = ind.momentum3, ind.momentum10
    if m3 is None or m10 is None:
        return
    if m3 > 0 and m10 > 0:
        st.add_buy(1.1, "Short and medium-term momentum aligned upward")
    elif m3 < 0 and m10 < 0:
        st.add_sell(1.1, "Short and medium-term momentum aligned downward")
    else:
        st.note("Momentum mixed across time windows - possible transition phase")

def volume_rule(st: ScoreState, ratio: Optional[float]) -> None:
    """Spike reinforces the leading side (no evidence count); dry volume discounts both."""
    if ratio is None:
        return
    if ratio > VOLUME_SPIKE:
        st.note(f"Volume spike ({_f(ratio, 2)}x avg) - move conviction higher")
        if st.buy_score > st.sell_score:
            st.buy_score += 0.6
        elif st.sell_score > st.buy_score:
            st.sell_score += 0.6
    elif ratio < VOLUME_DRY:
        st.note(f"Volume below average ({_f(ratio, 2)}x) - breakout reliability lower")
        st.scale(0.93)

def context_rules(
    st: ScoreState,
    futures: Optional[FuturesContext] = None,
    catalyst: Optional[CatalystWatch] = None,
) -> None:
    """Optional derivatives / sentiment evidence. Additive only."""
    if futures is not None:
        fr = futures.funding_rate
        if fr is not None:
            if fr >= 0.0005:
                st.add_sell(0.4, f"Funding rate elevated ({_f(fr * 100, 3)}%) - crowded longs")
            elif fr <= -0.0005:
                st.add_buy(0.4, f"Funding rate negative ({_f(fr * 100, 3)}%) - crowded shorts")
        ls = futures.long_short_ratio
        if ls is not None:
            if ls >= 2.5:
                st.add_sell(0.3, f"Long/short ratio {_f(ls, 2)} - positioning one-sided long")
            elif ls <= 0.6:
                st.add_buy(0.3, f"Long/short ratio {_f(ls, 2)} - positioning one-sided short")
    if catalyst is not None:
        cs = catalyst.combined_score
        if cs >= 0.35:
            st.add_buy(0.5, f"Catalyst sentiment {catalyst.sentiment_label} ({_f(cs, 2)}) supports upside")
        elif cs <= -0.35:
            st.add_sell(0.5, f"Catalyst sentiment {catalyst.sentiment_label} ({_f(cs, 2)}) weighs on price")
        rank = catalyst.symbol_trending_rank
        if rank is not None and rank <= 7:
            st.note(f"Trending rank #{rank} - attention elevated, expect wider swings")

def resolve_contradiction(st: ScoreState) -> None:
    if st.buy_score > 0 and st.sell_score > 0:
        overlap = min(st.buy_score, st.sell_score) * CONTRADICTION_PENALTY
        st.buy_score -= overlap
        st.sell_score -= overlap
        st.note("Bullish and bearish evidence both present - applied contradiction penalty")

def decision_threshold(risk_tolerance: str, regime: str, volatility20: Optional[float]) -> float:
    threshold = RISK_THRESHOLDS.get(risk_tolerance, RISK_THRESHOLDS["moderate"])
    if regime == "range":
        threshold += 0.2
    if volatility20 is not None and volatility20 > HIGH_VOLATILITY:
        threshold += 0.2
    return threshold

def decide(st: ScoreState, threshold: float) -> str:
    edge = st.edge
    if st.buy_score >= threshold and st.buy_score > st.sell_score and edge >= MIN_EDGE:
        return "BUY"
    if st.sell_score >= threshold and st.sell_score > st.buy_score and edge >= MIN_EDGE:
        return "SELL"
    return "HOLD"

def confidence(signal: str, st: ScoreState) -> float:
    edge = st.edge
    if signal == "HOLD":
        return clamp(42 + edge * 6, 40, 65)
    evidence = st.buy_evidence if signal == "BUY" else st.sell_evidence
    dominant = max(st.buy_score, st.sell_score)
    return clamp(dominant * 13 + edge * 16 + evidence * 2, 55, 95)

def score_indicators(
    ind: IndicatorSet,
    prev_macd: MacdValue,
    risk_tolerance: str,
    *,
    futures: Optional[FuturesContext] = None,
    catalyst: Optional[CatalystWatch] = None,
) -> ScoreResult:
    """Single pass: regime -> rules -> contradiction penalty -> threshold -> decision."""
    st = ScoreState()
    regime, bias = classify_regime(ind)
    if regime == "range":
        st.note("Market regime: ranging - mean reversion signals weighted higher")
    else:
        st.note(f"Market regime: {regime} - trend-following signals weighted higher")

    rsi_rule(st, ind.rsi, regime)
    macd_rule(st, ind.macd, prev_macd)
    bollinger_rule(st, ind, regime)
    ema_rule(st, ind)
    momentum_rule(st, ind)
    volume_rule(st, ind.volume_ratio)
    context_rules(st, futures, catalyst)
    resolve_contradiction(st)

    threshold = decision_threshold(risk_tolerance, regime, ind.volatility20)
    signal = decide(st, threshold)
    if signal == "HOLD":
        st.note("Insufficient directional edge after confluence check - wait for confirmation")

    return ScoreResult(
        signal=signal,
        confidence=confidence(signal, st),
        regime=regime,
        trend_bias=bias,
        threshold=threshold,
        buy_score=st.buy_score,
        sell_score=st.sell_score,
        edge=st.edge,
        state=st,
    )

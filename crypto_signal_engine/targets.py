from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import TARGET_PCTS
from .models import fixed
from .scoring import clamp

@dataclass(frozen=True)
class TradePlan:
    entry_low: float
    entry_high: float
    take_profit1: float
    take_profit1_pct: float
    take_profit2: float
    take_profit2_pct: float
    stop_loss: float
    stop_loss_pct: float
    risk_reward: float

def entry_padding(atr_pct: Optional[float]) -> float:
    return clamp(atr_pct * 0.3 if atr_pct is not None else 0.002, 0.0015, 0.008)

def dynamic_stop_pct(base_sl: float, atr_pct: Optional[float]) -> float:
    """Stop widens with ATR but stays within [0.85x, 1.9x] of the horizon's base stop."""
    raw = max(base_sl, atr_pct * 1.1) if atr_pct is not None else base_sl
    return clamp(raw, base_sl * 0.85, base_sl * 1.9)

def risk_reward(price: float, tp2: float, sl: float) -> float:
    risk = abs(price - sl)
    if risk == 0:
        return 0.0
    return fixed(abs(tp2 - price) / risk, 2)

def build_targets(signal: str, price: float, atr14: Optional[float], signal_type: str) -> TradePlan:
    """Entry band, TP1/TP2 and stop for the chosen direction and horizon.

    HOLD is priced like a long but reports risk/reward 0.
    """
    tp1_pct, tp2_pct, sl_pct = TARGET_PCTS.get(signal_type, TARGET_PCTS["swing"])
    d = -1 if signal == "SELL" else 1
    atr_pct = atr14 / price if (atr14 is not None and price) else None
    pad = entry_padding(atr_pct)
    stop_pct = dynamic_stop_pct(sl_pct, atr_pct)

    tp1 = fixed(price * (1 + d * tp1_pct), 2)
    tp2 = fixed(price * (1 + d * tp2_pct), 2)
    sl = fixed(price * (1 - d * stop_pct), 2)

    return TradePlan(
        entry_low=fixed(price * (1 - pad), 2),
        entry_high=fixed(price * (1 + pad), 2),
        take_profit1=tp1,
        take_profit1_pct=fixed(d * tp1_pct * 100, 2),
        take_profit2=tp2,
        take_profit2_pct=fixed(d * tp2_pct * 100, 2),
        stop_loss=sl,
        stop_loss_pct=fixed(-d * stop_pct * 100, 2),
        risk_reward=risk_reward(price, tp2, sl) if signal != "HOLD" else 0.0,
    )

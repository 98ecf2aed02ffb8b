from __future__ import annotations

import argparse
import json
import logging
from typing import Any

from .config import SUPPORTED_RISK_TOLERANCE, SUPPORTED_SIGNAL_TYPES, SUPPORTED_TIMEFRAMES, EngineConfig, normalize_trading_symbol
from .recommender import analyze_symbol
from .sources import ProviderUnavailable, fetch_ohlcv, search_coins

def _p(obj: Any) -> None:
    print(json.dumps(obj, ensure_ascii=False, indent=2, default=str))

def cmd_signal(args: argparse.Namespace) -> None:
    cfg = EngineConfig()
    sig = analyze_symbol(
        args.symbol,
        args.timeframe,
        args.signal_type,
        args.risk,
        gecko_id=args.gecko_id,
        cfg=cfg,
    )
    _p(sig.to_dict())

def cmd_candles(args: argparse.Namespace) -> None:
    cfg = EngineConfig()
    symbol = normalize_trading_symbol(args.symbol)
    fetch = fetch_ohlcv(symbol, args.timeframe, args.limit, cfg, gecko_id=args.gecko_id)
    _p({
        "symbol": symbol,
        "timeframe": args.timeframe,
        "source": fetch.source,
        "attempts": list(fetch.attempts),
        "n": len(fetch.candles),
        "candles": [c.to_dict() for c in fetch.candles[-int(args.tail):]] if args.tail > 0 else [],
    })

def cmd_search(args: argparse.Namespace) -> None:
    try:
        coins = search_coins(args.query, args.limit, EngineConfig())
    except ProviderUnavailable as e:
        _p({"ok": False, "error": "Coin search failed", "details": str(e)})
        return
    _p({"ok": True, "coins": coins})

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="crypto_signal_engine", description="BUY/SELL/HOLD signal from OHLCV technicals.")
    p.add_argument("-v", "--verbose", action="store_true", help="Log provider fallbacks to stderr")

    sub = p.add_subparsers(dest="cmd", required=True)

    p_sig = sub.add_parser("signal", help="Analyze one symbol and print the signal payload")
    p_sig.add_argument("--symbol", default="BTCUSDT")
    p_sig.add_argument("--timeframe", default="4h", help=f"One of {', '.join(SUPPORTED_TIMEFRAMES)}")
    p_sig.add_argument("--signal-type", default="swing", help=f"One of {', '.join(SUPPORTED_SIGNAL_TYPES)}")
    p_sig.add_argument("--risk", default="moderate", help=f"One of {', '.join(SUPPORTED_RISK_TOLERANCE)}")
    p_sig.add_argument("--gecko-id", default=None, help="CoinGecko id override for the aggregator fallback")
    p_sig.set_defaults(func=cmd_signal)

    p_c = sub.add_parser("candles", help="Fetch candles through the fallback chain")
    p_c.add_argument("--symbol", default="BTCUSDT")
    p_c.add_argument("--timeframe", default="4h", choices=SUPPORTED_TIMEFRAMES)
    p_c.add_argument("--limit", type=int, default=120)
    p_c.add_argument("--tail", type=int, default=5, help="How many of the newest candles to print")
    p_c.add_argument("--gecko-id", default=None)
    p_c.set_defaults(func=cmd_candles)

    p_s = sub.add_parser("search", help="Search coins on CoinGecko")
    p_s.add_argument("--query", required=True)
    p_s.add_argument("--limit", type=int, default=10)
    p_s.set_defaults(func=cmd_search)

    return p

def main() -> None:
    p = build_parser()
    args = p.parse_args()
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    args.func(args)

if __name__ == "__main__":
    main()

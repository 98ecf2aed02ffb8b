from __future__ import annotations

import logging
import os
import threading
import time
from typing import Any, Dict, Tuple

from flask import Flask, jsonify, request
from flask_cors import CORS

from crypto_signal_engine.config import EngineConfig
from crypto_signal_engine.recommender import analyze_symbol
from crypto_signal_engine.sources import ProviderUnavailable, search_coins

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")

CFG = EngineConfig()
SIGNAL_CACHE_CONTROL = "s-maxage=60, stale-while-revalidate=300"
SEARCH_CACHE_CONTROL = "s-maxage=120, stale-while-revalidate=300"

# (symbol, timeframe, signalType, riskTolerance, geckoId, symbolName) -> (ts, payload)
CacheKey = Tuple[str, str, str, str, str, str]
_signal_cache: Dict[CacheKey, Tuple[float, Dict[str, Any]]] = {}
_signal_cache_lock = threading.Lock()

app = Flask(__name__)
CORS(app)

def _params() -> Dict[str, Any]:
    if request.method == "POST":
        return request.get_json(silent=True) or {}
    return request.args

def _cache_get(key: CacheKey) -> Dict[str, Any] | None:
    if CFG.cache_ttl_sec <= 0:
        return None
    with _signal_cache_lock:
        hit = _signal_cache.get(key)
        if hit and time.time() - hit[0] < CFG.cache_ttl_sec:
            return hit[1]
    return None

def _cache_put(key: CacheKey, payload: Dict[str, Any]) -> None:
    if CFG.cache_ttl_sec <= 0:
        return
    now = time.time()
    with _signal_cache_lock:
        for k in [k for k, (ts, _) in _signal_cache.items() if now - ts >= CFG.cache_ttl_sec]:
            del _signal_cache[k]
        _signal_cache[key] = (now, payload)

@app.get("/health")
def health():
    return jsonify({"status": "ok"})

@app.route("/api/signal", methods=["GET", "POST"])
def api_signal():
    """Signal payload for one symbol. Always 200 with a complete payload (degraded if needed)."""
    params = _params()
    symbol = params.get("symbol") or params.get("symbolBase") or "BTCUSDT"
    timeframe = params.get("timeframe") or None
    signal_type = params.get("signalType") or None
    risk = params.get("riskTolerance") or None
    gecko_id = params.get("geckoId") or None
    symbol_name = params.get("symbolName") or None
    key = (str(symbol).upper(), str(timeframe), str(signal_type), str(risk), str(gecko_id), str(symbol_name))

    payload = _cache_get(key)
    if payload is None:
        sig = analyze_symbol(
            symbol,
            timeframe,
            signal_type,
            risk,
            gecko_id=gecko_id,
            symbol_name=symbol_name,
            cfg=CFG,
        )
        payload = sig.to_dict()
        if not sig.degraded:
            _cache_put(key, payload)

    resp = jsonify(payload)
    resp.headers["Cache-Control"] = SIGNAL_CACHE_CONTROL
    return resp

@app.get("/api/coins/search")
def api_coins_search():
    keyword = str(request.args.get("q") or request.args.get("query") or "").strip()
    try:
        limit = int(request.args.get("limit", 10))
    except ValueError:
        limit = 10
    limit = max(1, min(20, limit))

    if not keyword:
        return jsonify({"coins": []})

    try:
        coins = search_coins(keyword, limit, CFG)
    except ProviderUnavailable as e:
        logging.warning("coin search failed for %r: %s", keyword, e)
        return jsonify({"error": "Coin search failed", "details": str(e)}), 500

    resp = jsonify({"coins": coins})
    resp.headers["Cache-Control"] = SEARCH_CACHE_CONTROL
    return resp

if __name__ == "__main__":
    host = os.getenv("CSE_HOST", "0.0.0.0")
    port = int(os.getenv("CSE_PORT", "5001"))
    app.run(host=host, port=port)

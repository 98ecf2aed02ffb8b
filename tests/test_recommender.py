from unittest.mock import patch

import pytest
import requests

from conftest import HOUR_MS, make_candles, mock_response
from crypto_signal_engine import recommender
from crypto_signal_engine.config import EngineConfig
from crypto_signal_engine.models import CatalystWatch, FuturesContext
from crypto_signal_engine.recommender import (
    SOURCE_WARNINGS,
    analyze_symbol,
    empty_signal,
    fallback_signal,
    generate_signal,
)

CFG = EngineConfig(
    binance_base="https://binance.test",
    coingecko_base="https://gecko.test",
    candle_limit=120,
)
NOW = 1_700_000_123_456
GET = "crypto_signal_engine.sources.requests.get"


@pytest.fixture
def network_down():
    with patch(GET, side_effect=requests.ConnectionError("network down")) as get:
        yield get


def _klines(closes):
    return [
        [1_700_000_000_000 + i * HOUR_MS, str(c), str(c * 1.01), str(c * 0.99), str(c), "1000"]
        for i, c in enumerate(closes)
    ]


class TestGenerateSignal:
    def test_rising_series(self, rising_candles):
        sig = generate_signal(rising_candles, "swing", "moderate")
        assert sig.regime == "uptrend"
        assert sig.signal in ("BUY", "HOLD")
        assert sig.indicators["rsi"] == 100.0
        assert sig.reasons[0].startswith("Market regime: uptrend")
        assert sig.current_price == 399.0

    def test_flat_series(self, flat_candles):
        sig = generate_signal(flat_candles, "swing", "moderate")
        assert sig.regime == "range"
        assert sig.signal == "HOLD"
        assert sig.confidence == 48.5
        assert sig.risk_reward == 0.0
        assert (sig.entry_low, sig.entry_high) == (99.85, 100.15)
        assert sig.reasons[-1] == "Insufficient directional edge after confluence check - wait for confirmation"

    def test_short_series_holds(self):
        sig = generate_signal(make_candles([100.0 + i for i in range(10)]), "swing", "moderate")
        assert sig.signal == "HOLD"
        assert sig.confidence == 42.0
        assert sig.indicators["rsi"] is None
        assert sig.indicators["macd"] == {"line": None, "signal": None, "histogram": None}

    def test_single_candle(self):
        sig = generate_signal(make_candles([50.0]), "scalp", "aggressive")
        assert sig.signal == "HOLD"
        assert sig.current_price == 50.0

    def test_empty_input(self):
        with pytest.raises(ValueError):
            generate_signal([], "swing", "moderate")

    def test_confidence_in_bounds(self, rising_candles):
        for n in (30, 60, 120, 300):
            sig = generate_signal(rising_candles[:n], "swing", "conservative")
            lo, hi = (40, 65) if sig.signal == "HOLD" else (55, 95)
            assert lo <= sig.confidence <= hi

    def test_context_reasons(self, flat_candles):
        sig = generate_signal(
            flat_candles, "swing", "moderate",
            futures=FuturesContext(funding_rate=0.001, source="binance"),
        )
        assert any(r.startswith("Funding rate elevated") for r in sig.reasons)
        assert sig.to_dict()["futuresContext"]["source"] == "binance"


class TestAnalyzeSymbol:
    def test_live_path(self):
        closes = [100.0 + i for i in range(120)]
        with patch(GET, return_value=mock_response(_klines(closes))):
            sig = analyze_symbol("BTCUSDT", "1h", "swing", "moderate", cfg=CFG)
        assert sig.data_source == "live"
        assert sig.degraded is False
        assert sig.warnings == []
        assert sig.symbol_name == "Bitcoin"
        assert sig.gecko_id == "bitcoin"
        assert "error" not in sig.to_dict()

    def test_network_down_serves_demo(self, network_down):
        sig = analyze_symbol("eth", None, None, None, cfg=CFG, now_ms=NOW)
        assert sig.symbol == "ETHUSDT"
        assert sig.symbol_name == "Ethereum"
        assert (sig.timeframe, sig.signal_type, sig.risk_tolerance) == ("4h", "swing", "moderate")
        assert sig.data_source == "synthetic"
        assert sig.degraded is True
        assert sig.warnings == [SOURCE_WARNINGS["synthetic"]]
        assert sig.signal in ("BUY", "SELL", "HOLD")

    def test_malformed_aggregator_payload_keeps_requested_symbol(self):
        def get(url, params=None, timeout=None, stream=False):
            if "binance.test" in url:
                return mock_response({}, status=503)
            return mock_response({"prices": 5})

        with patch(GET, side_effect=get):
            sig = analyze_symbol("ETHUSDT", "1h", cfg=CFG, now_ms=NOW)
        assert (sig.symbol, sig.timeframe) == ("ETHUSDT", "1h")
        assert sig.data_source == "synthetic"
        assert sig.error is None
        assert sig.warnings == [SOURCE_WARNINGS["synthetic"]]

    def test_invalid_inputs_normalized(self, network_down):
        sig = analyze_symbol("sol", "2h", "daytrade", "reckless", cfg=CFG, now_ms=NOW)
        assert (sig.timeframe, sig.signal_type, sig.risk_tolerance) == ("4h", "swing", "moderate")
        assert sig.warnings[:3] == [
            "Invalid timeframe normalized to 4h",
            "Invalid signalType normalized to swing",
            "Invalid riskTolerance normalized to moderate",
        ]

    def test_unknown_symbol_name(self, network_down):
        sig = analyze_symbol("pepe", cfg=CFG, now_ms=NOW)
        assert sig.symbol == "PEPEUSDT"
        assert sig.symbol_name == "PEPE"
        assert sig.gecko_id is None

    def test_deterministic_when_offline(self, network_down):
        a = analyze_symbol("BTCUSDT", "1h", cfg=CFG, now_ms=NOW).to_dict()
        b = analyze_symbol("BTCUSDT", "1h", cfg=CFG, now_ms=NOW).to_dict()
        a.pop("timestamp")
        b.pop("timestamp")
        assert a == b

    def test_context_providers(self, network_down):
        sig = analyze_symbol(
            "BTCUSDT", cfg=CFG, now_ms=NOW,
            futures_provider=lambda sym, tf: FuturesContext(funding_rate=0.001, source="binance"),
            catalyst_provider=lambda sym: CatalystWatch(combined_score=0.5, sentiment_label="Bullish"),
        )
        assert any(r.startswith("Funding rate elevated") for r in sig.reasons)
        assert any(r.startswith("Catalyst sentiment Bullish") for r in sig.reasons)
        assert sig.catalyst_watch.combined_score == 0.5

    def test_failing_context_provider_is_neutral(self, network_down):
        def boom(sym, tf):
            raise RuntimeError("futures api down")

        sig = analyze_symbol("BTCUSDT", cfg=CFG, now_ms=NOW, futures_provider=boom)
        assert sig.futures_context == FuturesContext()
        assert "Futures context unavailable, served neutral values" in sig.warnings
        assert sig.degraded is True

    def test_scoring_failure_returns_fallback(self, network_down):
        real = recommender.generate_signal

        def flaky(candles, signal_type, risk_tolerance, **kw):
            if signal_type == "position":
                raise RuntimeError("boom")
            return real(candles, signal_type, risk_tolerance, **kw)

        with patch("crypto_signal_engine.recommender.generate_signal", side_effect=flaky):
            sig = analyze_symbol("ETHUSDT", "1h", "position", cfg=CFG, now_ms=NOW)
        assert sig.symbol == "BTCUSDT"
        assert (sig.timeframe, sig.signal_type, sig.risk_tolerance) == ("4h", "swing", "moderate")
        assert sig.data_source == "synthetic"
        assert sig.error == "boom"
        assert sig.warnings == ["Signal generation failed, fallback payload returned"]
        assert sig.to_dict()["error"] == "boom"

    def test_total_failure_returns_empty_payload(self, network_down):
        with patch("crypto_signal_engine.recommender.generate_signal", side_effect=RuntimeError("boom")):
            sig = analyze_symbol("ETHUSDT", cfg=CFG, now_ms=NOW)
        assert sig.signal == "HOLD"
        assert sig.confidence == 0.0
        assert sig.data_source == "fallback"
        assert sig.current_price is None
        assert "boom" in sig.error

    def test_no_candles_at_all(self, network_down):
        cfg = EngineConfig(binance_base="https://binance.test", coingecko_base="https://gecko.test", candle_limit=0)
        sig = analyze_symbol("BTCUSDT", cfg=cfg, now_ms=NOW)
        assert sig.data_source == "fallback"
        assert sig.degraded is True


class TestPayloads:
    def test_empty_signal_schema(self):
        d = empty_signal().to_dict()
        assert d["signal"] == "HOLD"
        assert d["entryRange"] == {"low": None, "high": None}
        assert d["indicators"]["bollingerBands"] == {"upper": None, "middle": None, "lower": None}
        assert d["futuresContext"]["fundingRate"]["current"] is None
        assert d["catalystWatch"]["sentimentLabel"] == "Neutral"
        assert "error" not in d

    def test_fallback_signal(self):
        sig = fallback_signal("upstream broke", CFG)
        assert sig.symbol == "BTCUSDT"
        assert sig.degraded is True
        assert sig.error == "upstream broke"
        assert sig.current_price is not None

    def test_payload_keys(self, flat_candles):
        d = generate_signal(flat_candles, "swing", "moderate").to_dict()
        assert set(d) >= {
            "signal", "confidence", "currentPrice", "entryRange", "takeProfit1", "takeProfit1Pct",
            "takeProfit2", "takeProfit2Pct", "stopLoss", "stopLossPct", "riskReward", "reasons",
            "indicators", "regime", "timestamp", "dataSource", "degraded", "warnings",
        }
        assert d["timestamp"].endswith("Z")

import json
from unittest.mock import patch

import pytest
import requests

from crypto_signal_engine.cli import build_parser


@pytest.fixture
def network_down():
    with patch("crypto_signal_engine.sources.requests.get", side_effect=requests.ConnectionError("down")):
        yield


def _run(argv, capsys):
    args = build_parser().parse_args(argv)
    args.func(args)
    return json.loads(capsys.readouterr().out)


def test_candles_command(network_down, capsys):
    out = _run(["candles", "--symbol", "eth", "--timeframe", "1h", "--limit", "30", "--tail", "3"], capsys)
    assert out["symbol"] == "ETHUSDT"
    assert out["source"] == "synthetic"
    assert out["n"] == 30
    assert len(out["candles"]) == 3
    assert len(out["attempts"]) == 2


def test_signal_command(network_down, capsys):
    out = _run(["signal", "--symbol", "btc", "--signal-type", "scalp"], capsys)
    assert out["symbol"] == "BTCUSDT"
    assert out["signalType"] == "scalp"
    assert out["signal"] in ("BUY", "SELL", "HOLD")


def test_search_command_failure(network_down, capsys):
    out = _run(["search", "--query", "btc"], capsys)
    assert out["ok"] is False
    assert out["error"] == "Coin search failed"


def test_subcommand_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_candles_zero_limit(network_down, capsys):
    out = _run(["candles", "--symbol", "btc", "--limit", "0"], capsys)
    assert out["n"] == 0
    assert out["candles"] == []
    assert out["source"] == "synthetic"

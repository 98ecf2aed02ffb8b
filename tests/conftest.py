import json
from typing import List, Optional, Sequence
from unittest.mock import MagicMock

import pytest

from crypto_signal_engine.models import Candle

HOUR_MS = 3_600_000


def make_candles(
    closes: Sequence[float],
    volumes: Optional[Sequence[float]] = None,
    wick: float = 0.0,
    start: int = 1_700_000_000_000,
    step: int = HOUR_MS,
) -> List[Candle]:
    out = []
    for i, c in enumerate(closes):
        out.append(Candle(
            timestamp=start + i * step,
            open=float(c),
            high=float(c) * (1 + wick),
            low=float(c) * (1 - wick),
            close=float(c),
            volume=float(volumes[i]) if volumes is not None else 1000.0,
        ))
    return out


def mock_response(payload, status: int = 200, raw: Optional[bytes] = None) -> MagicMock:
    """Streamed `requests` response; `raw` overrides the JSON-encoded body."""
    body = raw if raw is not None else json.dumps(payload).encode()
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.iter_content.return_value = [body[i:i + 4] for i in range(0, len(body), 4)]
    return resp


@pytest.fixture
def rising_candles() -> List[Candle]:
    return make_candles([100.0 + i for i in range(300)])


@pytest.fixture
def flat_candles() -> List[Candle]:
    return make_candles([100.0] * 300)

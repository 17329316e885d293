import pandas as pd
import pytest

from strategy_backtest.data.timeseries import TimeSeriesStore


def make_frame(closes, opens=None, start="2020-01-01"):
    """종가 목록으로 일봉 OHLCV DataFrame 생성. 시가를 안 주면 종가 + 0.25."""
    closes = [float(c) for c in closes]
    if opens is None:
        opens = [c + 0.25 for c in closes]
    dates = pd.bdate_range(start=start, periods=len(closes))
    return pd.DataFrame({
        "date": dates,
        "open": opens,
        "high": [max(o, c) + 1.0 for o, c in zip(opens, closes)],
        "low": [min(o, c) - 1.0 for o, c in zip(opens, closes)],
        "close": closes,
        "volume": [1_000.0] * len(closes),
    })


@pytest.fixture
def frame_factory():
    return make_frame


@pytest.fixture
def store_factory():
    def _make(**closes_by_symbol):
        return TimeSeriesStore.from_frames(
            {symbol: make_frame(closes) for symbol, closes in closes_by_symbol.items()}
        )
    return _make


@pytest.fixture
def sample_store():
    from datetime import date

    from strategy_backtest.data.sample_data import generate_sample_data

    start, end = date(2016, 1, 1), date(2018, 12, 31)
    return TimeSeriesStore.from_frames({
        "AAA": generate_sample_data("AAA", start, end, initial_price=100.0),
        "BBB": generate_sample_data("BBB", start, end, initial_price=50.0),
    })

from datetime import date

import pandas as pd
import pytest

from strategy_backtest.core.data_provider import DataProvider
from strategy_backtest.core.errors import DataUnavailable
from strategy_backtest.data import clickhouse_provider, yahoo_provider
from strategy_backtest.data.clickhouse_provider import ClickHouseDataProvider
from strategy_backtest.data.sample_data import SampleDataProvider, generate_sample_data
from strategy_backtest.data.yahoo_provider import YahooDataProvider
from strategy_backtest.utils.config import DatabaseConfig

START = date(2020, 1, 1)
END = date(2020, 1, 10)


def yahoo_history(n=3):
    index = pd.date_range("2020-01-02", periods=n, freq="D", tz="America/New_York", name="Date")
    return pd.DataFrame(
        {
            "Open": [10.0 + i for i in range(n)],
            "High": [11.0 + i for i in range(n)],
            "Low": [9.0 + i for i in range(n)],
            "Close": [10.5 + i for i in range(n)],
            "Volume": [1000 + i for i in range(n)],
        },
        index=index,
    )


class FakeTicker:
    calls = []
    history_result = None
    error = None

    def __init__(self, ticker):
        self.ticker = ticker

    def history(self, **kwargs):
        FakeTicker.calls.append((self.ticker, kwargs))
        if FakeTicker.error is not None:
            raise FakeTicker.error
        return FakeTicker.history_result


@pytest.fixture
def fake_yf(monkeypatch):
    FakeTicker.calls = []
    FakeTicker.history_result = yahoo_history()
    FakeTicker.error = None
    monkeypatch.setattr(yahoo_provider.yf, "Ticker", FakeTicker)
    monkeypatch.setattr(yahoo_provider.time, "sleep", lambda _: None)
    return FakeTicker


class TestYahoo:

    def test_fetch_standardizes_columns(self, fake_yf):
        provider = YahooDataProvider(adjust=True)
        bars = provider.fetch("SPY", START, END)

        assert len(bars) == 3
        assert bars[0].timestamp == pd.Timestamp("2020-01-02")
        assert bars[0].timestamp.tz is None
        assert bars[0].open == 10.0
        assert bars[-1].close == 12.5

        ticker, kwargs = fake_yf.calls[0]
        assert ticker == "SPY"
        assert kwargs["auto_adjust"] is True
        assert kwargs["end"] == date(2020, 1, 11)

    def test_results_are_cached(self, fake_yf):
        provider = YahooDataProvider()
        provider.get_ohlcv("SPY", START, END)
        provider.get_ohlcv("SPY", START, END)

        assert len(fake_yf.calls) == 1
        assert provider.get_tickers() == ["SPY"]

    def test_empty_history(self, fake_yf):
        fake_yf.history_result = pd.DataFrame()
        with pytest.raises(DataUnavailable) as exc:
            YahooDataProvider().fetch("SPY", START, END)
        assert exc.value.symbol == "SPY"

    def test_retries_then_gives_up(self, fake_yf):
        fake_yf.error = ConnectionError("timeout")
        provider = YahooDataProvider(max_retries=3, retry_delay=0)

        with pytest.raises(DataUnavailable):
            provider.fetch("SPY", START, END)
        assert len(fake_yf.calls) == 3


class FakeResult:
    def __init__(self, rows):
        self.result_rows = rows


class FakeClient:

    def __init__(self, ohlcv=None):
        self.queries = []
        self.closed = False
        self.ohlcv = ohlcv if ohlcv is not None else pd.DataFrame(
            {
                "date": [date(2020, 1, 2), date(2020, 1, 3)],
                "open": [10.0, 10.5],
                "high": [11.0, 12.0],
                "low": [9.0, 10.0],
                "close": [10.5, 11.5],
                "volume": [1000, 2000],
            }
        )

    def query_df(self, query, parameters=None):
        self.queries.append((query, parameters))
        return self.ohlcv

    def query(self, query, parameters=None):
        self.queries.append((query, parameters))
        if "DISTINCT ticker" in query:
            return FakeResult([("AAA",), ("SPY",)])
        if parameters and parameters.get("ticker") == "NONE":
            return FakeResult([(date(1970, 1, 1), date(1970, 1, 1), 0)])
        return FakeResult([(date(2010, 1, 4), date(2019, 6, 14), 2380)])

    def close(self):
        self.closed = True


class TestClickHouse:

    def test_get_ohlcv(self):
        client = FakeClient()
        provider = ClickHouseDataProvider(client, use_adjusted_close=True)
        df = provider.get_ohlcv("SPY", START, END)

        assert list(df.columns) == ["date", "open", "high", "low", "close", "volume"]
        assert len(df) == 2
        assert pd.api.types.is_datetime64_any_dtype(df["date"])
        query, params = client.queries[0]
        assert "adjusted_close AS close" in query
        assert "FROM stock_ohlcv" in query
        assert params == {"ticker": "SPY", "start_date": START, "end_date": END}

    def test_raw_close_and_table(self):
        client = FakeClient()
        ClickHouseDataProvider(client, table="bars", use_adjusted_close=False).get_ohlcv("SPY", START, END)
        query = client.queries[0][0]
        assert "adjusted_close" not in query
        assert "FROM bars" in query

    def test_empty_result(self):
        empty = pd.DataFrame(columns=["date", "open", "high", "low", "close", "volume"])
        provider = ClickHouseDataProvider(FakeClient(ohlcv=empty))

        assert provider.get_ohlcv("SPY", START, END).empty
        with pytest.raises(DataUnavailable):
            provider.fetch("SPY", START, END)

    def test_metadata(self):
        client = FakeClient()
        provider = ClickHouseDataProvider(client)

        assert provider.get_tickers() == ["AAA", "SPY"]
        assert provider.get_date_range("SPY") == (date(2010, 1, 4), date(2019, 6, 14))
        assert provider.get_date_range("NONE") is None
        provider.close()
        assert client.closed

    def test_fetch_bars(self):
        bars = ClickHouseDataProvider(FakeClient()).fetch("SPY", START, END)
        assert [b.close for b in bars] == [10.5, 11.5]

    def test_from_config(self, monkeypatch):
        seen = {}

        def fake_get_client(**kwargs):
            seen.update(kwargs)
            return FakeClient()

        monkeypatch.setattr(clickhouse_provider.clickhouse_connect, "get_client", fake_get_client)
        db = DatabaseConfig(host="db", port=9000, database="prices", user="reader",
                            password="pw", table="bars", use_adjusted_close=False)
        provider = ClickHouseDataProvider.from_config(db)

        assert seen == {"host": "db", "port": 9000, "database": "prices",
                        "username": "reader", "password": "pw"}
        assert provider.use_adjusted_close is False
        assert provider.table == "bars"


def test_sample_data_is_deterministic():
    first = generate_sample_data("AAA", START, date(2020, 6, 30))
    second = generate_sample_data("AAA", START, date(2020, 6, 30))
    other = generate_sample_data("BBB", START, date(2020, 6, 30))

    pd.testing.assert_frame_equal(first, second)
    assert not first["close"].equals(other["close"])
    assert (first["high"] >= first[["open", "close"]].max(axis=1)).all()
    assert (first["low"] <= first[["open", "close"]].min(axis=1)).all()


def test_sample_provider_fetch():
    provider = SampleDataProvider({"AAA": 50.0})
    bars = provider.fetch("AAA", START, END)

    assert len(bars) == len(pd.bdate_range(START, END))
    assert provider.get_tickers() == ["AAA"]


class BrokenProvider(DataProvider):

    def get_ohlcv(self, ticker, start_date, end_date):
        raise RuntimeError("connection refused")

    def get_tickers(self):
        return []


def test_fetch_wraps_provider_errors():
    with pytest.raises(DataUnavailable) as exc:
        BrokenProvider().fetch("SPY", START, END)
    assert "connection refused" in str(exc.value)

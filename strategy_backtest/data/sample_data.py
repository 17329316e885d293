"""
샘플 데이터 제공자.

[ 역할 ]
    네트워크 없이 백테스트를 돌려보기 위한 결정적(seed 고정) 랜덤 워크 OHLCV 생성.
"""

import zlib
from datetime import date

import numpy as np
import pandas as pd

from strategy_backtest.core.data_provider import DataProvider


def generate_sample_data(
    ticker: str,
    start_date: date,
    end_date: date,
    initial_price: float = 100.0,
    volatility: float = 0.012,
    drift: float = 0.0003,
) -> pd.DataFrame:
    """영업일 기준 샘플 주가 데이터 생성. 같은 ticker면 항상 같은 결과."""
    rng = np.random.default_rng(zlib.crc32(ticker.encode("utf-8")))

    dates = pd.bdate_range(start=start_date, end=end_date)
    n = len(dates)

    returns = rng.normal(drift, volatility, n)
    close = initial_price * np.cumprod(1 + returns)
    open_ = close * (1 + rng.normal(0, volatility / 3, n))
    high = np.maximum(open_, close) * (1 + np.abs(rng.normal(0, volatility / 2, n)))
    low = np.minimum(open_, close) * (1 - np.abs(rng.normal(0, volatility / 2, n)))
    volume = rng.lognormal(16, 0.5, n).astype(int)

    return pd.DataFrame({
        "date": dates,
        "open": open_.round(2),
        "high": high.round(2),
        "low": low.round(2),
        "close": close.round(2),
        "volume": volume,
    })


class SampleDataProvider(DataProvider):
    """generate_sample_data() 기반 데이터 제공자."""

    def __init__(self, initial_prices: dict[str, float] | None = None):
        self.initial_prices = dict(initial_prices or {})

    def get_ohlcv(self, ticker: str, start_date: date, end_date: date) -> pd.DataFrame:
        return generate_sample_data(
            ticker,
            start_date,
            end_date,
            initial_price=self.initial_prices.get(ticker, 100.0),
        )

    def get_tickers(self) -> list[str]:
        return sorted(self.initial_prices)

"""
주가 데이터 제공 추상 클래스 정의.

[ 역할 ]
    OHLCV(시가/고가/저가/종가/거래량) 데이터를 제공하는 인터페이스.
    데이터 소스(Yahoo, ClickHouse, 샘플 생성기)에 독립적으로 백테스트에 데이터 공급.

[ 구현체 ]
    - data/yahoo_provider.py::YahooDataProvider        (yfinance)
    - data/clickhouse_provider.py::ClickHouseDataProvider
    - data/sample_data.py::SampleDataProvider           (랜덤 워크, 테스트/데모용)

[ 호출하는 곳 ]
    - run_backtest.py::load_data()가 fetch()로 전 기간 데이터를 한 번에 로드
    - 로드 결과는 data/timeseries.py::TimeSeriesStore에 담겨 엔진으로 전달
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date

import pandas as pd

from strategy_backtest.core.errors import DataUnavailable

OHLCV_COLUMNS = ["date", "open", "high", "low", "close", "volume"]


@dataclass(frozen=True)
class Bar:
    """단일 봉(캔들) 데이터. 로드 후 변경 불가."""
    timestamp: pd.Timestamp
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def price(self, field: str) -> float:
        """open/high/low/close 중 하나를 반환."""
        return float(getattr(self, field))


class DataProvider(ABC):
    """주가 데이터 제공 추상 클래스.

    구현체는 get_ohlcv()와 get_tickers()만 구현하면 된다.
    fetch()는 get_ohlcv() 결과를 Bar 리스트로 변환하고, 비어 있으면 DataUnavailable.
    """

    @abstractmethod
    def get_ohlcv(self, ticker: str, start_date: date, end_date: date) -> pd.DataFrame:
        """[start_date, end_date] 양끝 포함 일봉. 컬럼은 OHLCV_COLUMNS, 없으면 빈 DataFrame."""
        ...

    @abstractmethod
    def get_tickers(self) -> list[str]:
        """제공 가능한 종목. 알 수 없으면 빈 리스트."""
        ...

    def fetch(self, ticker: str, start_date: date, end_date: date) -> list[Bar]:
        """기간 내 봉을 시간순으로 반환.

        Raises:
            DataUnavailable: 데이터가 없거나 조회 실패
        """
        try:
            df = self.get_ohlcv(ticker, start_date, end_date)
        except DataUnavailable:
            raise
        except Exception as e:
            raise DataUnavailable(ticker, str(e)) from e

        if df is None or df.empty:
            raise DataUnavailable(ticker, f"{start_date} ~ {end_date} 기간 데이터 없음")

        df = df.sort_values("date")
        return [
            Bar(
                timestamp=pd.Timestamp(row.date),
                open=float(row.open),
                high=float(row.high),
                low=float(row.low),
                close=float(row.close),
                volume=float(row.volume),
            )
            for row in df.itertuples(index=False)
        ]

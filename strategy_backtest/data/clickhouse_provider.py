"""
ClickHouse 기반 DataProvider 구현.

[ 역할 ]
    사전에 적재된 일봉 테이블에서 백테스트 기간의 OHLCV를 읽어 온다.
    close 컬럼은 기본적으로 수정주가(adjusted_close)를 사용.

[ 테이블 스키마 ]
    {table}(ticker String, date Date, open, high, low, close, adjusted_close Float64, volume UInt64)

[ 호출하는 곳 ]
    - run_backtest.py::make_provider() (--source clickhouse)
"""

import logging
from datetime import date
from typing import Optional

import clickhouse_connect
import pandas as pd
from clickhouse_connect.driver import Client

from strategy_backtest.core.data_provider import OHLCV_COLUMNS, DataProvider
from strategy_backtest.utils.config import DatabaseConfig

logger = logging.getLogger("strategy_backtest.data")

DEFAULT_TABLE = "stock_ohlcv"

_OHLCV_SQL = """
    SELECT date, open, high, low, {close} AS close, volume
    FROM {table}
    WHERE ticker = %(ticker)s AND date BETWEEN %(start_date)s AND %(end_date)s
    ORDER BY date
"""
_TICKERS_SQL = "SELECT DISTINCT ticker FROM {table} ORDER BY ticker"
_DATE_RANGE_SQL = "SELECT min(date), max(date), count() FROM {table} WHERE ticker = %(ticker)s"


class ClickHouseDataProvider(DataProvider):
    """ClickHouse 일봉 테이블 데이터 제공자.

    사용 예:
        provider = ClickHouseDataProvider.from_config(config.database)
        bars = provider.fetch("SPY", date(2010, 1, 1), date(2019, 6, 14))
    """

    def __init__(self, client: Client, table: str = DEFAULT_TABLE, use_adjusted_close: bool = True):
        self.client = client
        self.table = table
        self.use_adjusted_close = use_adjusted_close

    @classmethod
    def from_config(cls, db: DatabaseConfig) -> "ClickHouseDataProvider":
        """DatabaseConfig의 접속 정보로 클라이언트를 만들어 생성."""
        client = clickhouse_connect.get_client(
            host=db.host,
            port=db.port,
            database=db.database,
            username=db.user,
            password=db.password,
        )
        logger.info(f"Connected to ClickHouse {db.host}:{db.port}/{db.database}")
        return cls(client, table=db.table, use_adjusted_close=db.use_adjusted_close)

    def get_ohlcv(self, ticker: str, start_date: date, end_date: date) -> pd.DataFrame:
        close = "adjusted_close" if self.use_adjusted_close else "close"
        df = self.client.query_df(
            _OHLCV_SQL.format(close=close, table=self.table),
            parameters={"ticker": ticker, "start_date": start_date, "end_date": end_date},
        )
        if df is None or df.empty:
            logger.warning(f"No rows in {self.table} for {ticker} ({start_date} ~ {end_date})")
            return pd.DataFrame(columns=OHLCV_COLUMNS)

        df = df[OHLCV_COLUMNS].copy()
        df["date"] = pd.to_datetime(df["date"])
        return df

    def get_tickers(self) -> list[str]:
        result = self.client.query(_TICKERS_SQL.format(table=self.table))
        return [row[0] for row in result.result_rows]

    def get_date_range(self, ticker: str) -> Optional[tuple[date, date]]:
        """저장된 첫 날짜와 마지막 날짜. 행이 없으면 None."""
        result = self.client.query(_DATE_RANGE_SQL.format(table=self.table), parameters={"ticker": ticker})
        if not result.result_rows:
            return None
        first, last, count = result.result_rows[0]
        if not count:
            return None
        return first, last

    def close(self):
        self.client.close()

"""
Yahoo Finance 기반 DataProvider 구현.

[ 역할 ]
    yfinance로 일봉 OHLCV를 내려받아 표준 컬럼(date, open, high, low, close, volume)으로 변환.
    adjust=True면 배당/분할 조정 가격 사용.

[ 호출하는 곳 ]
    - run_backtest.py (--source yahoo 옵션 사용 시)
"""
import logging
import time
from datetime import date, timedelta

import pandas as pd
import yfinance as yf

from strategy_backtest.core.data_provider import OHLCV_COLUMNS, DataProvider
from strategy_backtest.core.errors import DataUnavailable

logger = logging.getLogger("strategy_backtest.data")


class YahooDataProvider(DataProvider):
    """yfinance 데이터 제공자. 같은 요청은 캐시에서 반환."""

    def __init__(self, adjust: bool = True, max_retries: int = 3, retry_delay: int = 5):
        self.adjust = adjust
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._cache: dict[tuple[str, date, date], pd.DataFrame] = {}

    def get_ohlcv(self, ticker: str, start_date: date, end_date: date) -> pd.DataFrame:
        """OHLCV 데이터 조회.

        Raises:
            DataUnavailable: 데이터가 없거나 재시도 후에도 실패
        """
        key = (ticker, start_date, end_date)
        if key not in self._cache:
            self._cache[key] = self._download(ticker, start_date, end_date)
        return self._cache[key].copy()

    def get_tickers(self) -> list[str]:
        """지금까지 조회한 종목 목록."""
        return sorted({key[0] for key in self._cache})

    def _download(self, ticker: str, start_date: date, end_date: date) -> pd.DataFrame:
        last_error = ""
        for attempt in range(self.max_retries):
            try:
                logger.info(
                    f"Fetching {ticker} from {start_date} to {end_date} "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                raw = yf.Ticker(ticker).history(
                    start=start_date,
                    end=end_date + timedelta(days=1),  # end_date 포함
                    auto_adjust=self.adjust,
                    actions=False,
                )
            except Exception as e:
                last_error = str(e)
                logger.error(f"Error fetching {ticker} (attempt {attempt + 1}/{self.max_retries}): {e}")
                if attempt < self.max_retries - 1:
                    logger.info(f"Retrying in {self.retry_delay} seconds...")
                    time.sleep(self.retry_delay)
                continue

            if raw is None or raw.empty:
                raise DataUnavailable(ticker, f"{start_date} ~ {end_date} 기간 데이터 없음")

            df = standardize(raw)
            if not validate_data(df, ticker):
                raise DataUnavailable(ticker, "데이터 검증 실패")
            logger.info(f"Successfully fetched {len(df)} rows for {ticker}")
            return df

        raise DataUnavailable(ticker, f"최대 재시도 초과: {last_error}")


def standardize(raw: pd.DataFrame) -> pd.DataFrame:
    """yfinance 결과를 표준 컬럼으로 변환. 날짜의 timezone은 제거."""
    df = raw.reset_index().rename(columns={
        "Date": "date",
        "Datetime": "date",
        "Open": "open",
        "High": "high",
        "Low": "low",
        "Close": "close",
        "Volume": "volume",
    })
    df = df[OHLCV_COLUMNS].copy()
    dates = pd.to_datetime(df["date"])
    if dates.dt.tz is not None:
        dates = dates.dt.tz_localize(None)
    df["date"] = dates.dt.normalize()
    return df


def validate_data(df: pd.DataFrame, ticker: str) -> bool:
    """수집한 데이터 검증. 필수 컬럼이 없거나 가격이 모두 결측이면 False."""
    if df is None or df.empty:
        logger.warning(f"Empty DataFrame for {ticker}")
        return False

    missing_columns = set(OHLCV_COLUMNS) - set(df.columns)
    if missing_columns:
        logger.error(f"Missing columns for {ticker}: {missing_columns}")
        return False

    price_columns = ["open", "high", "low", "close"]
    if df[price_columns].isnull().all().any():
        logger.error(f"All-NULL price column for {ticker}")
        return False

    null_counts = df[price_columns].isnull().sum()
    if null_counts.any():
        logger.warning(f"NULL values found in {ticker}: {null_counts[null_counts > 0].to_dict()}")

    if (df["high"] < df["low"]).any():
        invalid_count = int((df["high"] < df["low"]).sum())
        logger.warning(f"Invalid OHLC relationship (high < low) for {ticker}: {invalid_count} rows")

    return True

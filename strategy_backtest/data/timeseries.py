"""
시계열 저장소 모듈.

[ 역할 ]
    종목별 OHLCV 봉을 타임스탬프 인덱스로 보관. 로드 후에는 읽기 전용.
    엔진은 frame()으로 사본을 받아 지표/시그널을 계산하고, timeline()으로 봉 루프를 돈다.

[ 검증 ]
    - 타임스탬프는 종목 내에서 엄격히 증가 (중복 불가, 누락은 허용)
    - open/high/low/close 결측 불가

[ 호출하는 곳 ]
    - run_backtest.py::load_data()에서 DataProvider.fetch() 결과로 생성
    - backtest/engine.py::BacktestEngine.run()
"""

from typing import Iterable, Mapping, Optional

import pandas as pd

from strategy_backtest.core.data_provider import Bar

PRICE_COLUMNS = ["open", "high", "low", "close"]


class TimeSeriesStore:
    """종목별 OHLCV 저장소.

    사용 예:
        store = TimeSeriesStore.from_frames({"SPY": spy_df})
        df = store.frame("SPY")          # DatetimeIndex, [open, high, low, close, volume]
        for ts in store.timeline(): ...
    """

    def __init__(self, frames: Mapping[str, pd.DataFrame]):
        self._frames: dict[str, pd.DataFrame] = {}
        for symbol, df in frames.items():
            self._frames[symbol] = self._normalize(symbol, df)

    @classmethod
    def from_frames(cls, frames: Mapping[str, pd.DataFrame]) -> "TimeSeriesStore":
        """{symbol: DataFrame(date, open, high, low, close, volume)}에서 생성."""
        return cls(frames)

    @classmethod
    def from_bars(cls, bars: Mapping[str, Iterable[Bar]]) -> "TimeSeriesStore":
        """{symbol: [Bar, ...]}에서 생성."""
        frames = {}
        for symbol, items in bars.items():
            frames[symbol] = pd.DataFrame(
                [
                    {
                        "date": b.timestamp,
                        "open": b.open,
                        "high": b.high,
                        "low": b.low,
                        "close": b.close,
                        "volume": b.volume,
                    }
                    for b in items
                ]
            )
        return cls(frames)

    @staticmethod
    def _normalize(symbol: str, df: pd.DataFrame) -> pd.DataFrame:
        if df is None or df.empty:
            raise ValueError(f"{symbol}: 데이터 없음")
        df = df.copy()
        if "date" in df.columns:
            df["date"] = pd.to_datetime(df["date"])
            df = df.set_index("date")
        else:
            df.index = pd.to_datetime(df.index)
            df.index.name = "date"

        missing = set(PRICE_COLUMNS) - set(df.columns)
        if missing:
            raise ValueError(f"{symbol}: 필수 컬럼 누락 {sorted(missing)}")
        if "volume" not in df.columns:
            df["volume"] = 0.0

        df = df[PRICE_COLUMNS + ["volume"]].astype(float).sort_index()

        if df.index.has_duplicates:
            dupes = df.index[df.index.duplicated()].unique()
            raise ValueError(f"{symbol}: 중복 타임스탬프 {list(dupes[:3])}")
        if df[PRICE_COLUMNS].isnull().any().any():
            raise ValueError(f"{symbol}: 가격 결측값 존재")

        return df

    @property
    def symbols(self) -> list[str]:
        return list(self._frames.keys())

    def __contains__(self, symbol: str) -> bool:
        return symbol in self._frames

    def __len__(self) -> int:
        return len(self._frames)

    def frame(self, symbol: str) -> pd.DataFrame:
        """종목 OHLCV 사본 (원본은 변경되지 않는다)."""
        if symbol not in self._frames:
            raise KeyError(f"저장소에 없는 종목: {symbol}")
        return self._frames[symbol].copy()

    def bars(self, symbol: str) -> list[Bar]:
        df = self._frames[symbol]
        return [
            Bar(
                timestamp=ts,
                open=row.open,
                high=row.high,
                low=row.low,
                close=row.close,
                volume=row.volume,
            )
            for ts, row in zip(df.index, df.itertuples(index=False))
        ]

    def timeline(self, symbols: Optional[Iterable[str]] = None) -> pd.DatetimeIndex:
        """종목 타임스탬프의 합집합 (오름차순). symbols가 None이면 전체 종목."""
        index = pd.DatetimeIndex([], name="date")
        for symbol in (self.symbols if symbols is None else symbols):
            index = index.union(self._frames[symbol].index)
        return index.sort_values()

    def last_timestamp(self, symbol: str) -> pd.Timestamp:
        return self._frames[symbol].index[-1]

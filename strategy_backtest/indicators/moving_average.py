"""
이동평균 지표.

    SMA(n) = 최근 n개 값의 산술평균. n개가 모이기 전에는 NaN (미래 데이터 누출 없음).
"""

import pandas as pd

from strategy_backtest.core.indicator import Indicator
from strategy_backtest.indicators import register


def compute_sma(series: pd.Series, window: int) -> pd.Series:
    """단순 이동평균. 초기 window-1개는 NaN."""
    return series.rolling(window=window, min_periods=window).mean()


@register("SMA")
class SMA(Indicator):
    """단순 이동평균. column 파라미터로 종가 외의 컬럼(다른 지표 포함)도 평균 가능."""

    DEFAULT_PARAMS = {
        "n": 10,
        "column": "close",
    }

    @property
    def n(self) -> int:
        return int(self.params["n"])

    @property
    def warmup(self) -> int:
        return self.n

    @property
    def columns(self) -> list[str]:
        return [str(self.params["column"])]

    def _calculate(self, frame: pd.DataFrame) -> pd.Series:
        return compute_sma(frame[self.columns[0]], self.n)

"""
오실레이터 지표.

[ 포함 지표 ]
    RSI(n)              - Wilder 방식 상대강도지수 (0~100)
    RSIAverage(n1, n2)  - 기간이 다른 두 RSI의 평균. 단기 과매수/과매도 판단용
    DVO(navg, lookback) - David Varadi Oscillator.
                          종가 / 고저 중간값 비율을 navg 이동평균한 뒤,
                          lookback 구간 내 백분위 순위(0~100)로 변환

[ 워밍업 ]
    RSI:        n + 1        (차분 n개 필요)
    RSIAverage: max(n1, n2) + 1
    DVO:        navg + lookback - 1
"""

import numpy as np
import pandas as pd

from strategy_backtest.core.indicator import Indicator
from strategy_backtest.indicators import register
from strategy_backtest.indicators.moving_average import compute_sma


def wilder_smooth(values: pd.Series, window: int) -> pd.Series:
    """Wilder 평활. 첫 값은 처음 window개 값의 단순평균, 이후 prev + (x - prev) / window.

    앞쪽 NaN은 건너뛰고 첫 유효값부터 센다. 유효값이 window개 미만이면 전부 NaN.
    """
    values = values.astype(float)
    seeded = pd.Series(np.nan, index=values.index)
    valid = np.flatnonzero(values.notna().to_numpy())
    if len(valid) < window:
        return seeded

    first = valid[0]
    seed_at = first + window - 1
    seeded.iloc[seed_at] = values.iloc[first:seed_at + 1].mean()
    seeded.iloc[seed_at + 1:] = values.iloc[seed_at + 1:]
    return seeded.ewm(alpha=1.0 / window, adjust=False).mean()


def compute_rsi(close: pd.Series, window: int = 14) -> pd.Series:
    """Wilder RSI. 평균 상승/하락폭은 첫 window개 차분의 단순평균에서 시작.

    상승/하락이 모두 0인 구간(가격 불변)은 50으로 둔다.
    """
    delta = close.diff()
    gain = delta.clip(lower=0.0)
    loss = -delta.clip(upper=0.0)
    avg_gain = wilder_smooth(gain, window)
    avg_loss = wilder_smooth(loss, window)

    total = avg_gain + avg_loss
    rsi = 100.0 * avg_gain / total
    rsi = rsi.where(total != 0, 50.0)
    return rsi.where(avg_gain.notna())


def percent_rank(series: pd.Series, window: int, exact_multiplier: float = 1.0) -> pd.Series:
    """이동 백분위 순위 (0~1).

    윈도우 내에서 현재값보다 작은 값의 개수 + 같은 값의 개수 * exact_multiplier를
    window로 나눈다. 현재값 자신도 윈도우에 포함된다.
    """
    def _rank(values: np.ndarray) -> float:
        current = values[-1]
        below = np.count_nonzero(values < current)
        equal = np.count_nonzero(values == current)
        return (below + exact_multiplier * equal) / window

    return series.rolling(window=window, min_periods=window).apply(_rank, raw=True)


@register("RSI")
class RSI(Indicator):
    DEFAULT_PARAMS = {
        "n": 14,
        "column": "close",
    }

    @property
    def warmup(self) -> int:
        return int(self.params["n"]) + 1

    @property
    def columns(self) -> list[str]:
        return [str(self.params["column"])]

    def _calculate(self, frame: pd.DataFrame) -> pd.Series:
        return compute_rsi(frame[self.columns[0]], int(self.params["n"]))


@register("RSIAverage")
class RSIAverage(Indicator):
    """(RSI(n1) + RSI(n2)) / 2."""

    DEFAULT_PARAMS = {
        "n1": 3,
        "n2": 4,
    }

    @property
    def warmup(self) -> int:
        return max(int(self.params["n1"]), int(self.params["n2"])) + 1

    def _calculate(self, frame: pd.DataFrame) -> pd.Series:
        rsi_1 = compute_rsi(frame["close"], int(self.params["n1"]))
        rsi_2 = compute_rsi(frame["close"], int(self.params["n2"]))
        return (rsi_1 + rsi_2) / 2


@register("DVO")
class DVO(Indicator):
    """종가/고저중간값 비율의 이동평균을 백분위 순위로 변환한 오실레이터 (0~100)."""

    DEFAULT_PARAMS = {
        "navg": 2,
        "percentlookback": 126,
    }

    @property
    def navg(self) -> int:
        return int(self.params["navg"])

    @property
    def lookback(self) -> int:
        return int(self.params["percentlookback"])

    @property
    def warmup(self) -> int:
        return self.navg + self.lookback - 1

    @property
    def columns(self) -> list[str]:
        return ["high", "low", "close"]

    def _calculate(self, frame: pd.DataFrame) -> pd.Series:
        midpoint = (frame["high"] + frame["low"]) / 2
        ratio = frame["close"] / midpoint
        avg_ratio = compute_sma(ratio, self.navg)
        return percent_rank(avg_ratio, self.lookback) * 100

"""
지표 추상 클래스 정의.

[ 역할 ]
    OHLCV(+ 앞서 계산된 지표) DataFrame을 받아 같은 인덱스의 Series를 반환하는 인터페이스.
    입력 윈도우가 같으면 결과도 같다 (상태 없음).

[ 구현체 ]
    - indicators/moving_average.py::SMA
    - indicators/oscillators.py::RSI, RSIAverage, DVO

[ 호출하는 곳 ]
    - backtest/engine.py::compute_signal_frame()에서 선언 순서대로 compute() 호출

[ 워밍업 ]
    warmup개 미만의 봉에서는 값이 정의되지 않는다 (0이 아니라 NaN).
    전체 길이가 warmup보다 짧으면 InsufficientHistory.
"""

from abc import ABC, abstractmethod
from typing import Any

import numpy as np
import pandas as pd

from strategy_backtest.core.errors import (
    ConfigurationError,
    InsufficientHistory,
    UnknownSignalColumn,
)


class Indicator(ABC):
    """지표 추상 클래스.

    새 지표는 DEFAULT_PARAMS, warmup, _calculate()를 정의하고
    indicators/ 패키지에서 @register("이름")으로 등록한다.
    """

    DEFAULT_PARAMS: dict[str, Any] = {}

    def __init__(self, params: dict[str, Any] | None = None):
        unknown = set(params or {}) - set(self.DEFAULT_PARAMS)
        if unknown:
            raise ConfigurationError(
                f"{type(self).__name__}: 알 수 없는 파라미터 {sorted(unknown)}"
            )
        self.params = {**self.DEFAULT_PARAMS, **(params or {})}
        self.validate()

    def validate(self) -> None:
        """파라미터 검증. 정수 기간 파라미터는 1 이상이어야 한다."""
        for key, value in self.params.items():
            if isinstance(self.DEFAULT_PARAMS.get(key), int) and not isinstance(value, bool):
                if int(value) != value or int(value) < 1:
                    raise ConfigurationError(
                        f"{type(self).__name__}: {key}는 1 이상의 정수여야 함 ({value})"
                    )

    @property
    @abstractmethod
    def warmup(self) -> int:
        """정의된 값을 내기 위한 최소 봉 수."""
        ...

    @property
    def columns(self) -> list[str]:
        """입력으로 필요한 컬럼."""
        return ["close"]

    @abstractmethod
    def _calculate(self, frame: pd.DataFrame) -> pd.Series:
        ...

    def compute(self, frame: pd.DataFrame) -> pd.Series:
        """지표 계산. 워밍업 구간은 NaN으로 강제한다.

        Raises:
            UnknownSignalColumn: 입력 컬럼이 frame에 없음
            InsufficientHistory: len(frame) < warmup
        """
        for column in self.columns:
            if column not in frame.columns:
                raise UnknownSignalColumn(column, type(self).__name__)

        if len(frame) < self.warmup:
            raise InsufficientHistory(repr(self), self.warmup, len(frame))

        out = self._calculate(frame).astype(float)
        if self.warmup > 1:
            out.iloc[: self.warmup - 1] = np.nan
        return out

    def __repr__(self) -> str:
        args = ", ".join(f"{k}={v}" for k, v in self.params.items())
        return f"{type(self).__name__}({args})"

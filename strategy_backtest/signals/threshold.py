"""
임계값 시그널.

    Threshold(column, threshold, relation, cross)
      cross=False → 조건이 성립하는 모든 봉에서 True
      cross=True  → 조건이 새로 성립한 봉에서만 True (Crossover와 같은 규칙)

    예) DVO < 20 (레벨):        Threshold("DVO_2_126", 20, "lt")
        DVO > 80 상향 돌파 시점: Threshold("DVO_2_126", 80, "gt", cross=True)
"""

import math

import pandas as pd

from strategy_backtest.core.errors import ConfigurationError
from strategy_backtest.core.signal import RELATIONS, Signal, resolve_relation, transition
from strategy_backtest.signals import register


@register("threshold")
class Threshold(Signal):

    def __init__(
        self,
        column: str,
        threshold: float,
        relation: str = "gt",
        cross: bool = False,
    ):
        if not math.isfinite(float(threshold)):
            raise ConfigurationError(f"임계값이 유한하지 않음: {threshold}")
        self.column = str(column)
        self.threshold = float(threshold)
        self.relation = resolve_relation(relation)
        self.cross = bool(cross)

    @property
    def columns(self) -> list[str]:
        return [self.column]

    def _evaluate(self, frame: pd.DataFrame) -> pd.Series:
        values = frame[self.column]
        defined = values.notna()
        state = RELATIONS[self.relation](values, self.threshold) & defined
        if self.cross:
            return transition(state, defined)
        return state

    def __repr__(self) -> str:
        mode = "cross" if self.cross else "level"
        return f"Threshold({self.column} {self.relation} {self.threshold}, {mode})"

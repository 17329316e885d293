"""
두 컬럼 비교 시그널.

    Comparison - A rel B 가 성립하는 모든 봉에서 True (레벨)
    Crossover  - A rel B 가 새로 성립한 봉에서만 True (전환)

    예) SMA50 > SMA200 필터:     Comparison(["SMA50", "SMA200"], "gt")
        SMA50이 SMA200 하향 돌파: Crossover(["SMA50", "SMA200"], "lt")
"""

import pandas as pd

from strategy_backtest.core.errors import ConfigurationError
from strategy_backtest.core.signal import RELATIONS, Signal, resolve_relation, transition
from strategy_backtest.signals import register


@register("comparison")
class Comparison(Signal):

    def __init__(self, columns: list[str], relation: str = "gt"):
        if len(columns) != 2:
            raise ConfigurationError(f"비교 시그널은 컬럼 2개 필요 ({columns})")
        self._columns = [str(c) for c in columns]
        self.relation = resolve_relation(relation)

    @property
    def columns(self) -> list[str]:
        return self._columns

    def _state(self, frame: pd.DataFrame) -> tuple[pd.Series, pd.Series]:
        a = frame[self._columns[0]]
        b = frame[self._columns[1]]
        defined = a.notna() & b.notna()
        state = RELATIONS[self.relation](a, b) & defined
        return state, defined

    def _evaluate(self, frame: pd.DataFrame) -> pd.Series:
        state, _ = self._state(frame)
        return state

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._columns[0]} {self.relation} {self._columns[1]})"


@register("crossover")
class Crossover(Comparison):
    """관계가 False → True로 바뀌는 봉에서만 True."""

    def _evaluate(self, frame: pd.DataFrame) -> pd.Series:
        state, defined = self._state(frame)
        return transition(state, defined)

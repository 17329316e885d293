"""
시그널 추상 클래스 정의.

[ 역할 ]
    지표 컬럼(또는 앞서 계산된 시그널 컬럼)으로부터 봉마다 하나의 bool 값을 만든다.

[ 구현체 ]
    - signals/comparison.py::Comparison, Crossover
    - signals/threshold.py::Threshold
    - signals/formula.py::Formula

[ 전환(cross) 규칙 ]
    관계가 직전 봉에서 False였고 현재 봉에서 True일 때만 True.
    직전 봉 값이 정의되지 않았으면(첫 봉, 워밍업 구간) 전환으로 보지 않는다.
"""

import operator
from abc import ABC, abstractmethod

import pandas as pd

from strategy_backtest.core.errors import ConfigurationError, UnknownSignalColumn

RELATIONS = {
    "gt": operator.gt,
    "lt": operator.lt,
    "gte": operator.ge,
    "lte": operator.le,
    "eq": operator.eq,
}

# config.yaml에서 기호로 써도 되도록
RELATION_ALIASES = {
    ">": "gt",
    "<": "lt",
    ">=": "gte",
    "<=": "lte",
    "==": "eq",
}


def resolve_relation(relation: str) -> str:
    name = RELATION_ALIASES.get(relation, relation)
    if name not in RELATIONS:
        raise ConfigurationError(
            f"알 수 없는 관계: '{relation}'. 사용 가능: {', '.join(RELATIONS)}"
        )
    return name


def transition(state: pd.Series, defined: pd.Series) -> pd.Series:
    """False → True 전환 봉에서만 True.

    Args:
        state: 봉별 관계 성립 여부 (bool)
        defined: 봉별 입력 정의 여부 (bool)
    """
    state = state.astype(bool) & defined
    prev_state = state.shift(1, fill_value=False).astype(bool)
    prev_defined = defined.shift(1, fill_value=False).astype(bool)
    return state & prev_defined & ~prev_state


class Signal(ABC):
    """시그널 추상 클래스."""

    @property
    @abstractmethod
    def columns(self) -> list[str]:
        """참조하는 컬럼 이름 (구성 시점 검증용)."""
        ...

    @abstractmethod
    def _evaluate(self, frame: pd.DataFrame) -> pd.Series:
        ...

    def evaluate(self, frame: pd.DataFrame) -> pd.Series:
        """봉별 bool Series 반환.

        Raises:
            UnknownSignalColumn: 참조 컬럼이 frame에 없음
        """
        for column in self.columns:
            if column not in frame.columns:
                raise UnknownSignalColumn(column, type(self).__name__)
        return self._evaluate(frame).astype(bool)

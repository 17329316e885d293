"""
실행 컨텍스트.

[ 역할 ]
    백테스트 1회 실행이 소유하는 상태를 한곳에 모은다.
    전역 객체 없이 엔진 내부 함수들에 명시적으로 전달되며, 실행 간 공유하지 않는다.
"""

import itertools
from dataclasses import dataclass, field

import pandas as pd

from strategy_backtest.backtest.execution import ExecutionSimulator
from strategy_backtest.core.strategy import Strategy
from strategy_backtest.data.portfolio import Ledger
from strategy_backtest.data.timeseries import TimeSeriesStore
from strategy_backtest.rules.rule_engine import RuleEngine


@dataclass
class RunContext:
    strategy: Strategy
    store: TimeSeriesStore
    ledger: Ledger
    simulator: ExecutionSimulator
    rule_engine: RuleEngine
    signal_frames: dict[str, pd.DataFrame] = field(default_factory=dict)
    _intent_ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    def next_intent_id(self) -> int:
        return next(self._intent_ids)

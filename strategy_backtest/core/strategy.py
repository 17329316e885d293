"""
전략 정의.

[ 역할 ]
    지표 → 시그널 → 룰을 선언 순서대로 담는 구성 객체.
    추가 시점마다 참조 컬럼을 검증하므로, 잘못된 구성은 시뮬레이션 전에 실패한다.

[ 구성 방법 ]
    1) 코드로:   strategies/ 아래 프리셋 (예: strategies/sma_dvo.py)
    2) 설정으로: config.yaml의 strategy.indicators / signals / rules → Strategy.from_config()

[ 사용 예 ]
    strategy = (
        Strategy("firststrat")
        .add_indicator("SMA50", SMA({"n": 50}))
        .add_indicator("SMA200", SMA({"n": 200}))
        .add_signal("longfilter", Comparison(["SMA50", "SMA200"], "gt"))
        .add_rule(Rule("enter", "longfilter", RuleType.ENTRY, sizing=FixedQuantity(100)))
    )

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run_backtest()
"""

from dataclasses import dataclass
from typing import Any, Optional

from strategy_backtest.core.errors import ConfigurationError, UnknownSignalColumn
from strategy_backtest.core.indicator import Indicator
from strategy_backtest.core.signal import Signal
from strategy_backtest.rules.rule_engine import Rule

BASE_COLUMNS = ("open", "high", "low", "close", "volume")


@dataclass(frozen=True)
class IndicatorSpec:
    label: str
    indicator: Indicator


@dataclass(frozen=True)
class SignalSpec:
    label: str
    signal: Signal


class Strategy:
    """지표/시그널/룰 묶음. 실행 중에는 변경하지 않는다."""

    def __init__(
        self,
        name: str,
        symbols: Optional[list[str]] = None,
        params: Optional[dict[str, Any]] = None,
    ):
        self.name = name
        self.symbols = list(symbols or [])
        self.params = dict(params or {})
        self.indicators: list[IndicatorSpec] = []
        self.signals: list[SignalSpec] = []
        self.rules: list[Rule] = []

    @property
    def known_columns(self) -> list[str]:
        """현재까지 참조 가능한 컬럼 (OHLCV + 지표 + 시그널)."""
        return (
            list(BASE_COLUMNS)
            + [s.label for s in self.indicators]
            + [s.label for s in self.signals]
        )

    def _check_label(self, label: str) -> None:
        if not label:
            raise ConfigurationError("label이 비어 있음")
        if label in self.known_columns:
            raise ConfigurationError(f"중복된 컬럼 이름: '{label}'")

    def add_indicator(self, label: str, indicator: Indicator) -> "Strategy":
        self._check_label(label)
        known = self.known_columns
        for column in indicator.columns:
            if column not in known:
                raise UnknownSignalColumn(column, f"indicator {label}")
        self.indicators.append(IndicatorSpec(label, indicator))
        return self

    def add_signal(self, label: str, signal: Signal) -> "Strategy":
        self._check_label(label)
        known = self.known_columns
        for column in signal.columns:
            if column not in known:
                raise UnknownSignalColumn(column, f"signal {label}")
        self.signals.append(SignalSpec(label, signal))
        return self

    def add_rule(self, rule: Rule) -> "Strategy":
        if rule.signal not in [s.label for s in self.signals]:
            raise UnknownSignalColumn(rule.signal, f"rule {rule.name}")
        if rule.name in [r.name for r in self.rules]:
            raise ConfigurationError(f"중복된 룰 이름: '{rule.name}'")
        self.rules.append(rule)
        return self

    @classmethod
    def from_config(
        cls,
        name: str,
        indicators: list[dict[str, Any]],
        signals: list[dict[str, Any]],
        rules: list[dict[str, Any]],
        symbols: Optional[list[str]] = None,
    ) -> "Strategy":
        """설정 딕셔너리 목록에서 전략 구성.

        indicators: [{label, type, params}]
        signals:    [{label, type, params}]
        rules:      [{name, signal, type, orderqty, ordertype, prefer, replace, ...}]
        """
        from strategy_backtest.indicators import create_indicator
        from strategy_backtest.signals import create_signal

        strategy = cls(name, symbols=symbols)
        for item in indicators:
            label, kind = _require(item, "label", "type")
            strategy.add_indicator(label, create_indicator(kind, item.get("params")))
        for item in signals:
            label, kind = _require(item, "label", "type")
            strategy.add_signal(label, create_signal(kind, item.get("params")))
        for item in rules:
            strategy.add_rule(Rule.from_dict(item))
        return strategy

    def describe(self) -> str:
        lines = [f"전략: {self.name}"]
        lines += [f"  지표   {s.label:<16} {s.indicator!r}" for s in self.indicators]
        lines += [f"  시그널 {s.label:<16} {s.signal!r}" for s in self.signals]
        lines += [
            f"  룰     {r.name:<16} {r.rule_type.value} on {r.signal} "
            f"({r.sizing!r}, {r.order_type.value}, prefer={r.prefer.value}, replace={r.replace})"
            for r in self.rules
        ]
        return "\n".join(lines)


def _require(item: dict[str, Any], *keys: str) -> list[Any]:
    missing = [k for k in keys if k not in item]
    if missing:
        raise ConfigurationError(f"설정 항목에 {missing} 필요: {item}")
    return [str(item[k]) for k in keys]

"""
룰 엔진 (주문 생성기).

[ 역할 ]
    봉 t의 시그널 값과 현재 포지션을 보고 주문 의도(OrderIntent)를 만든다.
    주문은 봉 t+1 이후에 체결된다 (backtest/execution.py).

[ 종목별 상태 ]
    FLAT  ──진입 룰──▶ LONG / SHORT
    LONG  ──청산 룰──▶ FLAT      (AllQuantity: 체결 시점의 포지션 전량)
    LONG  ──진입 룰──▶ LONG      (수량 정책이 dynamic일 때만 추가 진입)

[ 같은 봉에서 여러 룰이 발동할 때 ]
    - 청산 룰을 진입 룰보다 먼저 평가 (포지션/자금을 먼저 비움)
    - 같은 종류끼리는 선언 순서
    - replace=True 룰이 발동하면 같은 종목의 미체결 주문을 모두 취소
      (취소 자체는 ExecutionSimulator.submit()이 수행)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine._simulate_bar()
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence

import pandas as pd

from strategy_backtest.core.errors import ConfigurationError, InvalidSizing
from strategy_backtest.core.order import OrderIntent, OrderType, PriceField, RuleType, Side
from strategy_backtest.rules.sizing import AllQuantity, SizingPolicy, create_sizing

logger = logging.getLogger("strategy_backtest.rules")


@dataclass(frozen=True)
class Rule:
    """진입/청산 룰.

    threshold는 지정가/스탑-지정가 주문의 가격 오프셋.
    tmult=True면 비율(종가 * (1 + threshold)), False면 절대값(종가 + threshold).
    """
    name: str
    signal: str
    rule_type: RuleType
    side: Side = Side.LONG
    sizing: SizingPolicy = field(default_factory=AllQuantity)
    order_type: OrderType = OrderType.MARKET
    prefer: PriceField = PriceField.OPEN
    sig_value: bool = True
    replace: bool = False
    threshold: Optional[float] = None
    tmult: bool = False

    def __post_init__(self):
        if self.rule_type == RuleType.ENTRY and isinstance(self.sizing, AllQuantity):
            raise InvalidSizing(f"룰 '{self.name}': 진입 룰에는 전량(all) 수량을 쓸 수 없음")
        if self.order_type != OrderType.MARKET:
            if (
                not isinstance(self.threshold, (int, float))
                or isinstance(self.threshold, bool)
                or not math.isfinite(self.threshold)
            ):
                raise ConfigurationError(
                    f"룰 '{self.name}': {self.order_type.value} 주문에는 유한한 숫자 threshold 필요 ({self.threshold!r})"
                )

    def order_price(self, close: float) -> Optional[float]:
        """봉 t 종가 기준 지정가/스탑 가격. 시장가는 None."""
        if self.order_type == OrderType.MARKET:
            return None
        if self.tmult:
            return close * (1 + self.threshold)
        return close + self.threshold

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Rule":
        """config.yaml의 rules 항목에서 생성.

            - name: exit_filter
              signal: filterexit
              type: exit
              orderqty: all
              ordertype: market
              prefer: open
              replace: false
        """
        try:
            rule_type = RuleType(str(data["type"]).lower())
            default_qty = "all" if rule_type == RuleType.EXIT else None
            orderqty = data.get("orderqty", default_qty)
            if orderqty is None:
                raise ConfigurationError(f"진입 룰 '{data.get('name')}'에 orderqty 필요")
            return cls(
                name=str(data.get("name") or f"{rule_type.value}_{data['signal']}"),
                signal=str(data["signal"]),
                rule_type=rule_type,
                side=Side(str(data.get("side", "long")).lower()),
                sizing=create_sizing(orderqty),
                order_type=OrderType(str(data.get("ordertype", "market")).lower()),
                prefer=PriceField(str(data.get("prefer", "open")).lower()),
                sig_value=bool(data.get("sigval", True)),
                replace=bool(data.get("replace", False)),
                threshold=None if data.get("threshold") is None else float(data["threshold"]),
                tmult=bool(data.get("tmult", False)),
            )
        except KeyError as e:
            raise ConfigurationError(f"룰 설정에 {e} 항목 필요: {data}") from e
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"룰 설정 오류: {e} ({data})") from e


class RuleEngine:
    """룰 평가기. 청산 룰 → 진입 룰 순으로 정렬해 보관."""

    def __init__(self, rules: Sequence[Rule]):
        self.rules: list[Rule] = sorted(
            rules, key=lambda r: 0 if r.rule_type == RuleType.EXIT else 1
        )

    @property
    def signal_columns(self) -> list[str]:
        return list(dict.fromkeys(r.signal for r in self.rules))

    def evaluate(
        self,
        symbol: str,
        timestamp: pd.Timestamp,
        signals: Mapping[str, bool],
        position: float,
        close: float,
        pending: Sequence[OrderIntent],
        next_id: Callable[[], int],
    ) -> list[OrderIntent]:
        """봉 하나에 대해 발동한 룰의 주문 의도를 반환.

        Args:
            symbol: 종목
            timestamp: 현재 봉 시각 (주문 생성 시각)
            signals: {시그널 이름: 현재 봉 값}
            position: 현재 봉 체결 반영 후 포지션 (부호 있음)
            close: 현재 봉 종가 (지정가 산출용)
            pending: 이 종목의 미체결 주문
            next_id: 주문 번호 발급 함수
        """
        pending = list(pending)
        intents: list[OrderIntent] = []

        for rule in self.rules:
            if bool(signals.get(rule.signal, False)) != rule.sig_value:
                continue
            if not self._can_fire(rule, position, pending):
                continue

            intent = OrderIntent(
                intent_id=next_id(),
                symbol=symbol,
                side=rule.side,
                rule_type=rule.rule_type,
                sizing=rule.sizing,
                created_at=timestamp,
                order_type=rule.order_type,
                prefer=rule.prefer,
                price=rule.order_price(close),
                replace=rule.replace,
                rule=rule.name,
            )
            if rule.replace:
                pending = []
            pending.append(intent)
            intents.append(intent)
            logger.debug(f"[{timestamp}] {symbol} 룰 발동: {rule.name} ({rule.rule_type.value})")

        return intents

    @staticmethod
    def _can_fire(rule: Rule, position: float, pending: Sequence[OrderIntent]) -> bool:
        held = position if rule.side == Side.LONG else -position
        same = [
            p for p in pending
            if p.side == rule.side and p.rule_type == rule.rule_type
        ]

        if rule.rule_type == RuleType.EXIT:
            # 같은 룰의 청산 주문이 대기 중이면 중복 생성하지 않는다. 다른 청산 룰과는 공존
            return held > 0 and not any(p.rule == rule.name for p in same)

        if held < 0:
            # 반대 방향 포지션 보유 중에는 진입하지 않는다
            return False
        if held > 0 or same:
            return rule.sizing.dynamic
        return True

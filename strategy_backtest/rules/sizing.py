"""
주문 수량 결정 정책.

[ 정책 ]
    FixedQuantity(n)                 - 항상 n주
    AllQuantity()                    - 현재 포지션 전량 (청산용, orderqty = "all")
    MaxDollarExposure(trade, max)    - 1회 최대 trade 달러, 종목 노출 최대 max 달러
                                       qty = floor(min(trade, max - 노출) / 기준가)
                                       이미 max 이상이면 0

[ 기준가 ]
    체결 시뮬레이터가 다음 봉 체결 가격을 기준가로 넘긴다.
    포지션도 체결 직전 값이므로 추가 매수(add-on)는 누적 노출이 max를 넘지 않는다.

[ 호출하는 곳 ]
    - backtest/execution.py::ExecutionSimulator._fill()
    - rules/rule_engine.py (dynamic 여부로 추가 진입 허용 판단)
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from strategy_backtest.core.errors import ConfigurationError, InvalidSizing
from strategy_backtest.core.order import Side


@dataclass(frozen=True)
class SizingContext:
    """수량 계산 입력."""
    position: float      # 현재 포지션 (부호 있음)
    price: float         # 기준가 (다음 봉 체결 가격)
    side: Side


def check_quantity(quantity: float, source: str = "") -> float:
    """수량이 0 이상의 유한값인지 확인."""
    if not math.isfinite(quantity) or quantity < 0:
        raise InvalidSizing(f"잘못된 주문 수량 {quantity}" + (f" ({source})" if source else ""))
    return quantity


class SizingPolicy(ABC):
    """주문 수량 정책."""

    # True면 이미 포지션이 있어도 같은 방향 진입(추가 매수)을 허용
    dynamic: bool = False

    @abstractmethod
    def quantity(self, ctx: SizingContext) -> float:
        """주문 수량 (부호 없음)."""
        ...


class FixedQuantity(SizingPolicy):

    def __init__(self, quantity: float):
        self._quantity = check_quantity(float(quantity), "FixedQuantity")

    def quantity(self, ctx: SizingContext) -> float:
        return self._quantity

    def __repr__(self) -> str:
        return f"FixedQuantity({self._quantity:g})"


class AllQuantity(SizingPolicy):

    def quantity(self, ctx: SizingContext) -> float:
        held = ctx.position if ctx.side == Side.LONG else -ctx.position
        return max(held, 0.0)

    def __repr__(self) -> str:
        return "AllQuantity()"


class MaxDollarExposure(SizingPolicy):
    """노출 상한이 있는 달러 기준 수량."""

    dynamic = True

    def __init__(self, trade_size: float, max_size: float | None = None):
        trade_size = float(trade_size)
        max_size = trade_size if max_size is None else float(max_size)
        for name, value in (("trade_size", trade_size), ("max_size", max_size)):
            if not math.isfinite(value) or value <= 0:
                raise InvalidSizing(f"MaxDollarExposure: {name}는 양의 유한값이어야 함 ({value})")
        self.trade_size = trade_size
        self.max_size = max_size

    def quantity(self, ctx: SizingContext) -> float:
        if not math.isfinite(ctx.price) or ctx.price <= 0:
            raise InvalidSizing(f"MaxDollarExposure: 기준가 {ctx.price}로 수량 계산 불가")

        held = ctx.position if ctx.side == Side.LONG else -ctx.position
        exposure = max(held, 0.0) * ctx.price
        room = self.max_size - exposure
        if room <= 0:
            return 0
        return math.floor(min(self.trade_size, room) / ctx.price)

    def __repr__(self) -> str:
        return f"MaxDollarExposure(trade_size={self.trade_size:g}, max_size={self.max_size:g})"


def create_sizing(value: Any) -> SizingPolicy:
    """config.yaml의 orderqty 값으로 정책 생성.

        "all"                                        → AllQuantity
        100                                          → FixedQuantity(100)
        {type: max_dollar, trade_size: .., max_size: ..} → MaxDollarExposure
    """
    if isinstance(value, SizingPolicy):
        return value
    if isinstance(value, str):
        if value.lower() == "all":
            return AllQuantity()
        raise ConfigurationError(f"알 수 없는 수량 지정: '{value}'")
    if isinstance(value, bool):
        raise InvalidSizing(f"잘못된 주문 수량 {value}")
    if isinstance(value, (int, float)):
        return FixedQuantity(value)
    if isinstance(value, dict):
        kind = value.get("type", "max_dollar")
        if kind == "max_dollar":
            if "trade_size" not in value:
                raise ConfigurationError("max_dollar 정책에는 trade_size 필요")
            return MaxDollarExposure(value["trade_size"], value.get("max_size"))
        if kind == "fixed":
            return FixedQuantity(value.get("quantity", 0))
        if kind == "all":
            return AllQuantity()
        raise ConfigurationError(f"알 수 없는 수량 정책: '{kind}'")
    raise ConfigurationError(f"알 수 없는 수량 지정: {value!r}")

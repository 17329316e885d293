"""
체결 시뮬레이터.

[ 역할 ]
    봉 t에서 생성된 주문 의도를 봉 t+1 이후의 가격으로 체결하여 Ledger에 기록.

[ 체결 규칙 ]
    시장가      - 다음 봉의 prefer 가격(open/high/low/close)으로 전량 체결
    지정가      - 매수: low <= 지정가 → min(open, 지정가)
                  매도: high >= 지정가 → max(open, 지정가)
    스탑-지정가 - 매수는 high >= 가격, 매도는 low <= 가격이면 발동하고, 이후 같은 가격의 지정가로 동작.
                  발동한 봉에서는 봉 범위가 가격을 포함할 때만 그 가격으로 체결
                  (갭으로 가격을 건너뛰면 미체결, 다음 봉부터 지정가 규칙)
    조건 미충족 주문은 체결되거나 replace로 취소될 때까지 대기.

[ 비용 ]
    CostModel로 슬리피지/수수료/매도세를 적용 (기본값은 모두 0).
    매수는 가격 * (1 + slippage), 매도는 가격 * (1 - slippage)로 불리하게 체결.

[ 종료 처리 ]
    마지막 봉에서 생성된 주문은 NoNextBar로 기록 후 폐기 (치명적 아님).
    그 밖의 미체결 주문도 실행 종료 시 폐기.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional

import pandas as pd

from strategy_backtest.core.data_provider import Bar
from strategy_backtest.core.errors import BacktestError, NoNextBar
from strategy_backtest.core.order import OrderIntent, OrderType, RuleType, Side, Transaction
from strategy_backtest.data.portfolio import Ledger
from strategy_backtest.rules.sizing import SizingContext, check_quantity

logger = logging.getLogger("strategy_backtest.execution")


@dataclass(frozen=True)
class CostModel:
    """거래 비용 모델."""
    commission_rate: float = 0.0   # 매수/매도 수수료율
    tax_rate: float = 0.0          # 매도세율
    slippage_rate: float = 0.0     # 슬리피지율

    def execution_price(self, price: float, is_buy: bool) -> float:
        if is_buy:
            return price * (1 + self.slippage_rate)
        return price * (1 - self.slippage_rate)

    def fees(self, exec_price: float, quantity: float, is_buy: bool) -> float:
        notional = exec_price * abs(quantity)
        fees = notional * self.commission_rate
        if not is_buy:
            fees += notional * self.tax_rate
        return fees


def limit_price(is_buy: bool, level: float, bar: Bar) -> Optional[float]:
    """지정가 체결 가격. 매수는 level 이하, 매도는 level 이상에서만 체결."""
    if is_buy:
        return min(bar.open, level) if bar.low <= level else None
    return max(bar.open, level) if bar.high >= level else None


@dataclass(frozen=True)
class DroppedIntent:
    """체결되지 않고 폐기된 주문과 사유."""
    intent: OrderIntent
    reason: str
    error: Optional[BacktestError] = None


class ExecutionSimulator:
    """주문 대기열과 체결 로직.

    사용 예:
        sim = ExecutionSimulator(CostModel())
        sim.submit(intents)                      # 봉 t
        fills = sim.process_bar("SPY", bar, ledger)  # 봉 t+1
    """

    def __init__(self, cost_model: Optional[CostModel] = None):
        self.cost_model = cost_model or CostModel()
        self._pending: list[OrderIntent] = []
        self._triggered: set[int] = set()   # 스탑이 발동한 스탑-지정가 주문 id
        self.cancelled: list[DroppedIntent] = []
        self.dropped: list[DroppedIntent] = []

    @property
    def pending(self) -> list[OrderIntent]:
        return list(self._pending)

    def pending_for(self, symbol: str) -> list[OrderIntent]:
        return [i for i in self._pending if i.symbol == symbol]

    def submit(self, intents: Iterable[OrderIntent]) -> None:
        """주문 등록. replace=True 주문은 같은 종목의 기존 미체결 주문을 취소."""
        for intent in intents:
            if intent.replace:
                self.cancel(intent.symbol, reason=f"replaced by {intent.rule}")
            self._pending.append(intent)

    def cancel(self, symbol: str, reason: str = "cancelled") -> int:
        keep = []
        count = 0
        for intent in self._pending:
            if intent.symbol == symbol:
                self.cancelled.append(DroppedIntent(intent, reason))
                self._triggered.discard(intent.intent_id)
                count += 1
            else:
                keep.append(intent)
        self._pending = keep
        if count:
            logger.debug(f"{symbol}: 미체결 주문 {count}건 취소 ({reason})")
        return count

    def process_bar(self, symbol: str, bar: Bar, ledger: Ledger) -> list[Transaction]:
        """이 봉 가격으로 체결 가능한 대기 주문을 체결. 등록 순서대로 처리."""
        fills: list[Transaction] = []
        for intent in list(self._pending):
            if intent.symbol != symbol:
                continue
            # 생성된 봉과 같거나 이전 봉에서는 체결하지 않는다
            if bar.timestamp <= intent.created_at:
                continue

            price = self.trigger_price(intent, bar)
            if price is None:
                continue

            self._pending.remove(intent)
            self._triggered.discard(intent.intent_id)
            txn = self._fill(intent, bar, price, ledger)
            if txn is not None:
                fills.append(txn)
        return fills

    def trigger_price(self, intent: OrderIntent, bar: Bar) -> Optional[float]:
        """이 봉에서의 체결 가격. 조건 미충족이면 None."""
        if intent.order_type == OrderType.MARKET:
            return bar.price(intent.prefer.value)

        level = intent.price
        if intent.order_type == OrderType.LIMIT or intent.intent_id in self._triggered:
            return limit_price(intent.is_buy, level, bar)

        # STOP_LIMIT, 아직 발동 전
        touched = bar.high >= level if intent.is_buy else bar.low <= level
        if not touched:
            return None
        self._triggered.add(intent.intent_id)
        if bar.low <= level <= bar.high:
            return level
        return None

    def _fill(
        self,
        intent: OrderIntent,
        bar: Bar,
        price: float,
        ledger: Ledger,
    ) -> Optional[Transaction]:
        position = ledger.position_quantity(intent.symbol)
        ctx = SizingContext(position=position, price=price, side=intent.side)
        quantity = check_quantity(intent.sizing.quantity(ctx), intent.rule)

        if intent.rule_type == RuleType.EXIT:
            # 청산은 보유 수량을 넘지 않는다 (반대 포지션으로 뒤집지 않음)
            held = position if intent.side == Side.LONG else -position
            quantity = min(quantity, max(held, 0.0))

        if quantity == 0:
            self.cancelled.append(DroppedIntent(intent, "zero quantity"))
            logger.debug(f"[{bar.timestamp}] {intent.symbol} {intent.rule}: 수량 0, 주문 취소")
            return None

        is_buy = intent.is_buy
        exec_price = self.cost_model.execution_price(price, is_buy)
        fees = self.cost_model.fees(exec_price, quantity, is_buy)

        txn = ledger.record(
            symbol=intent.symbol,
            timestamp=bar.timestamp,
            quantity=quantity * intent.direction,
            price=exec_price,
            fees=fees,
            rule=intent.rule,
            intent_id=intent.intent_id,
        )
        action = "매수" if is_buy else "매도"
        logger.debug(
            f"[{bar.timestamp}] {action}: {intent.symbol} {quantity:g}주 @ {exec_price:,.2f} ({intent.rule})"
        )
        return txn

    def finalize(self, last_timestamps: Mapping[str, pd.Timestamp]) -> list[DroppedIntent]:
        """실행 종료. 남은 주문을 모두 폐기하고 폐기 목록을 반환."""
        dropped = []
        for intent in self._pending:
            last = last_timestamps.get(intent.symbol)
            if last is not None and intent.created_at >= last:
                error = NoNextBar(intent.symbol, intent.created_at)
                dropped.append(DroppedIntent(intent, str(error), error))
            else:
                dropped.append(DroppedIntent(intent, "unfilled at end of run"))
            logger.debug(f"주문 폐기: {intent.symbol} {intent.rule} ({dropped[-1].reason})")
        self._pending = []
        self._triggered.clear()
        self.dropped.extend(dropped)
        return dropped

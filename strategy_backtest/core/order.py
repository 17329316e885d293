"""
주문/체결 타입 정의.

[ 역할 ]
    룰 엔진이 만드는 주문 의도(OrderIntent)와 체결 시뮬레이터가 만드는 체결 기록(Transaction).

[ 흐름 ]
    rules/rule_engine.py::RuleEngine.evaluate()   → OrderIntent 생성 (봉 t)
    backtest/execution.py::ExecutionSimulator     → 봉 t+1 이후 가격으로 체결 → Transaction
    data/portfolio.py::Ledger.record()            → Transaction 추가, 포지션 갱신

[ 불변 조건 ]
    OrderIntent, Transaction 모두 생성 후 변경 불가 (frozen dataclass).
    봉 t에서 생성된 주문은 t보다 뒤의 봉에서만 체결된다.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

import pandas as pd

if TYPE_CHECKING:
    from strategy_backtest.rules.sizing import SizingPolicy


class Side(Enum):
    """포지션 방향."""
    LONG = "long"
    SHORT = "short"


class RuleType(Enum):
    """룰 종류. 같은 봉에서는 EXIT이 ENTRY보다 먼저 처리된다."""
    EXIT = "exit"
    ENTRY = "entry"


class OrderType(Enum):
    """주문 타입: 시장가, 지정가, 스탑-지정가."""
    MARKET = "market"
    LIMIT = "limit"
    STOP_LIMIT = "stoplimit"


class PriceField(Enum):
    """체결 기준 가격 (다음 봉의 시가/고가/저가/종가)."""
    OPEN = "open"
    HIGH = "high"
    LOW = "low"
    CLOSE = "close"


@dataclass(frozen=True)
class OrderIntent:
    """주문 의도. 체결 시뮬레이터가 한 번 소비한 뒤 폐기된다."""
    intent_id: int
    symbol: str
    side: Side
    rule_type: RuleType
    sizing: "SizingPolicy"
    created_at: pd.Timestamp
    order_type: OrderType = OrderType.MARKET
    prefer: PriceField = PriceField.OPEN
    price: Optional[float] = None   # 지정가/스탑 가격 (시장가는 None)
    replace: bool = False
    rule: str = ""

    @property
    def direction(self) -> int:
        """체결 수량 부호. 롱 진입/숏 청산은 +1 (매수), 롱 청산/숏 진입은 -1 (매도)."""
        buy = (self.side == Side.LONG) == (self.rule_type == RuleType.ENTRY)
        return 1 if buy else -1

    @property
    def is_buy(self) -> bool:
        return self.direction > 0


@dataclass(frozen=True)
class Transaction:
    """체결 기록. Ledger에 추가된 뒤 변경되지 않는다."""
    symbol: str
    timestamp: pd.Timestamp
    quantity: float          # 부호 있는 수량 (매수 +, 매도 -)
    price: float             # 체결 가격 (슬리피지 적용 후)
    fees: float = 0.0        # 수수료 + 세금
    realized_pnl: float = 0.0      # FIFO 기준 실현 손익 (수수료 제외)
    closed_quantity: float = 0.0   # 기존 포지션을 줄인 수량 (신규 진입이면 0)
    rule: str = ""
    intent_id: Optional[int] = None

    @property
    def net_pnl(self) -> float:
        """수수료 차감 후 실현 손익."""
        return self.realized_pnl - self.fees

    @property
    def side(self) -> str:
        return "buy" if self.quantity > 0 else "sell"

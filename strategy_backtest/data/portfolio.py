"""
포트폴리오 원장 모듈.

[ 역할 ]
    체결 기록(Transaction)을 추가 전용으로 보관하고, 종목별 포지션과 손익을 갱신.
    매 봉 종료 시 평가손익을 계산해 PortfolioSnapshot을 하나씩 쌓는다.

[ 주요 클래스 ]
    Position          - 종목별 FIFO 로트, 수량, 평균 단가
    PortfolioSnapshot - 봉별 실현/평가 손익과 자산
    AccountState      - 스냅샷을 합친 자산 곡선
    Ledger            - 전체 원장 (체결 기록 + 포지션 + 스냅샷)

[ 자산 계산 ]
    equity[t] = initial_equity + 누적 실현손익[t] (수수료 차감) + 평가손익[t]

[ 호출하는 곳 ]
    - backtest/execution.py::ExecutionSimulator._fill()에서 record()
    - backtest/engine.py에서 봉마다 mark()
    - backtest/metrics.py에서 transactions / equity_curve로 성과 계산
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence

import pandas as pd

from strategy_backtest.core.order import Transaction


@dataclass
class Lot:
    """미청산 로트. quantity는 부호 있음 (롱 +, 숏 -)."""
    quantity: float
    price: float


@dataclass
class Position:
    """종목 포지션. Transaction 추가로만 변경된다."""
    symbol: str
    lots: deque = field(default_factory=deque)
    realized_pnl: float = 0.0   # 수수료 제외 FIFO 실현손익 누적

    @property
    def quantity(self) -> float:
        return sum(lot.quantity for lot in self.lots)

    @property
    def avg_price(self) -> float:
        """미청산 로트의 가중평균 단가."""
        qty = self.quantity
        if qty == 0:
            return 0.0
        return sum(lot.quantity * lot.price for lot in self.lots) / qty

    def apply(self, quantity: float, price: float) -> tuple[float, float]:
        """체결 반영. (실현손익, 청산된 수량) 반환.

        반대 방향 수량은 가장 오래된 로트부터 청산하고(FIFO), 남는 수량은 새 로트가 된다.
        """
        remaining = quantity
        realized = 0.0
        closed = 0.0

        while remaining != 0 and self.lots and (self.lots[0].quantity > 0) != (remaining > 0):
            lot = self.lots[0]
            sign = 1 if lot.quantity > 0 else -1
            close_qty = min(abs(remaining), abs(lot.quantity))

            realized += close_qty * (price - lot.price) * sign
            closed += close_qty
            lot.quantity -= sign * close_qty
            remaining += sign * close_qty

            if lot.quantity == 0:
                self.lots.popleft()

        if remaining != 0:
            self.lots.append(Lot(quantity=remaining, price=price))

        self.realized_pnl += realized
        return realized, closed

    def unrealized_pnl(self, mark_price: float) -> float:
        return sum(lot.quantity * (mark_price - lot.price) for lot in self.lots)


@dataclass(frozen=True)
class PortfolioSnapshot:
    """봉 하나의 포트폴리오 상태."""
    timestamp: pd.Timestamp
    realized_pnl: float        # 누적 실현손익 (수수료 차감)
    unrealized_pnl: float      # 현재 평가손익
    equity: float
    positions: Mapping[str, float] = field(default_factory=dict)   # 종목 → 수량 (0 제외)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "equity": self.equity,
            "realized_pnl": self.realized_pnl,
            "unrealized_pnl": self.unrealized_pnl,
            "positions": dict(self.positions),
        }


@dataclass(frozen=True)
class AccountState:
    """계좌 상태. 하나 이상의 포트폴리오 스냅샷을 합산한 자산 곡선."""
    initial_equity: float
    equity_curve: pd.Series
    realized_pnl: float = 0.0
    unrealized_pnl: float = 0.0

    @property
    def final_equity(self) -> float:
        if self.equity_curve.empty:
            return self.initial_equity
        return float(self.equity_curve.iloc[-1])

    @property
    def total_return(self) -> float:
        """총 수익률 (%)."""
        if self.initial_equity == 0:
            return 0.0
        return (self.final_equity - self.initial_equity) / self.initial_equity * 100

    @classmethod
    def from_snapshots(
        cls,
        initial_equity: float,
        *portfolios: Sequence[PortfolioSnapshot],
    ) -> "AccountState":
        """포트폴리오별 스냅샷을 시각 기준으로 합산.

        어떤 포트폴리오에 해당 시각 스냅샷이 없으면 직전 값을 이어 쓴다.
        """
        frames = []
        for snapshots in portfolios:
            if not snapshots:
                continue
            frames.append(
                pd.DataFrame(
                    {
                        "realized_pnl": [s.realized_pnl for s in snapshots],
                        "unrealized_pnl": [s.unrealized_pnl for s in snapshots],
                    },
                    index=pd.DatetimeIndex([s.timestamp for s in snapshots], name="date"),
                )
            )

        if not frames:
            return cls(initial_equity=initial_equity, equity_curve=pd.Series(dtype=float, name="equity"))

        index = frames[0].index
        for df in frames[1:]:
            index = index.union(df.index)
        total = sum(df.reindex(index).ffill().fillna(0.0) for df in frames)

        equity = initial_equity + total["realized_pnl"] + total["unrealized_pnl"]
        equity.name = "equity"
        return cls(
            initial_equity=initial_equity,
            equity_curve=equity,
            realized_pnl=float(total["realized_pnl"].iloc[-1]),
            unrealized_pnl=float(total["unrealized_pnl"].iloc[-1]),
        )


class Ledger:
    """포트폴리오 원장.

    하나의 백테스트 실행이 하나의 Ledger를 소유한다 (실행 간 공유 금지).
    """

    def __init__(self, initial_equity: float):
        self.initial_equity = initial_equity
        self.positions: dict[str, Position] = {}
        self._transactions: list[Transaction] = []
        self._snapshots: list[PortfolioSnapshot] = []
        self._last_prices: dict[str, float] = {}
        self._realized_net = 0.0

    @property
    def transactions(self) -> tuple[Transaction, ...]:
        return tuple(self._transactions)

    @property
    def snapshots(self) -> tuple[PortfolioSnapshot, ...]:
        return tuple(self._snapshots)

    @property
    def realized_pnl(self) -> float:
        """누적 실현손익 (수수료 차감)."""
        return self._realized_net

    def get_position(self, symbol: str) -> Position:
        """종목 포지션 조회. 없으면 빈 포지션 생성."""
        if symbol not in self.positions:
            self.positions[symbol] = Position(symbol=symbol)
        return self.positions[symbol]

    def position_quantity(self, symbol: str) -> float:
        position = self.positions.get(symbol)
        return position.quantity if position else 0.0

    def get_holding_symbols(self) -> list[str]:
        return [s for s, p in self.positions.items() if p.quantity != 0]

    def record(
        self,
        symbol: str,
        timestamp: pd.Timestamp,
        quantity: float,
        price: float,
        fees: float = 0.0,
        rule: str = "",
        intent_id: Optional[int] = None,
    ) -> Transaction:
        """체결 추가. 시각은 직전 체결보다 앞설 수 없다."""
        if quantity == 0:
            raise ValueError(f"{symbol}: 수량 0 체결은 기록할 수 없음")
        if self._transactions and timestamp < self._transactions[-1].timestamp:
            raise ValueError(
                f"{symbol}: 체결 시각 역행 ({timestamp} < {self._transactions[-1].timestamp})"
            )

        realized, closed = self.get_position(symbol).apply(quantity, price)
        txn = Transaction(
            symbol=symbol,
            timestamp=timestamp,
            quantity=quantity,
            price=price,
            fees=fees,
            realized_pnl=realized,
            closed_quantity=closed,
            rule=rule,
            intent_id=intent_id,
        )
        self._transactions.append(txn)
        self._realized_net += txn.net_pnl
        return txn

    def unrealized_pnl(self, prices: Optional[Mapping[str, float]] = None) -> float:
        """평가손익. 가격이 없는 종목은 마지막으로 본 가격, 그것도 없으면 평균 단가."""
        total = 0.0
        for symbol in self.get_holding_symbols():
            position = self.positions[symbol]
            price = (prices or {}).get(symbol, self._last_prices.get(symbol, position.avg_price))
            total += position.unrealized_pnl(price)
        return total

    def mark(self, timestamp: pd.Timestamp, prices: Mapping[str, float]) -> PortfolioSnapshot:
        """봉 종료 시 종가로 평가하고 스냅샷을 추가."""
        self._last_prices.update(prices)
        unrealized = self.unrealized_pnl()
        snapshot = PortfolioSnapshot(
            timestamp=timestamp,
            realized_pnl=self._realized_net,
            unrealized_pnl=unrealized,
            equity=self.initial_equity + self._realized_net + unrealized,
            positions={s: self.positions[s].quantity for s in self.get_holding_symbols()},
        )
        self._snapshots.append(snapshot)
        return snapshot

    def account_state(self) -> AccountState:
        return AccountState.from_snapshots(self.initial_equity, self._snapshots)

    def transaction_frame(self) -> pd.DataFrame:
        columns = ["timestamp", "symbol", "quantity", "price", "fees", "realized_pnl", "rule"]
        return pd.DataFrame(
            [{c: getattr(t, c) for c in columns} for t in self._transactions],
            columns=columns,
        )

    def snapshot_frame(self) -> pd.DataFrame:
        """출력 스키마: timestamp, equity, realized_pnl, unrealized_pnl, positions."""
        columns = ["timestamp", "equity", "realized_pnl", "unrealized_pnl", "positions"]
        return pd.DataFrame([s.to_dict() for s in self._snapshots], columns=columns)

    def get_summary(self) -> dict[str, Any]:
        """원장 요약."""
        unrealized = self.unrealized_pnl()
        return {
            "initial_equity": self.initial_equity,
            "realized_pnl": self._realized_net,
            "unrealized_pnl": unrealized,
            "equity": self.initial_equity + self._realized_net + unrealized,
            "num_holdings": len(self.get_holding_symbols()),
            "num_transactions": len(self._transactions),
        }

    @staticmethod
    def replay(symbol: str, transactions: Iterable[Transaction]) -> float:
        """체결 기록만으로 종목 수량 재계산."""
        return sum(t.quantity for t in transactions if t.symbol == symbol)

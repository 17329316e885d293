"""
백테스팅 엔진 모듈.

[ 역할 ]
    과거 데이터에 전략을 적용하여 가상 매매를 시뮬레이션하고 성과를 측정.
    시스템의 핵심 실행 루프를 담당.

[ 실행 흐름 ]
    run_backtest() 호출 시:
        1. 종목별로 지표 → 시그널을 전 기간에 대해 한 번에 계산 (compute_signal_frame)
           종목 간 독립이므로 max_workers > 1이면 스레드로 병렬 계산
        2. 전 종목 타임스탬프 합집합을 시간순으로 돌며 _simulate_bar() 호출
           → 이전 봉까지 생성된 주문을 이번 봉 가격으로 체결 (ExecutionSimulator)
           → 체결을 원장에 반영 (Ledger)
           → 이번 봉 시그널 + 체결 후 포지션으로 룰 평가, 새 주문 등록 (RuleEngine)
        3. 봉마다 종가로 평가하여 PortfolioSnapshot 추가
        4. 마지막 봉 이후 남은 주문 폐기, AccountState / 성과 지표 계산

[ 미래 데이터 누출 방지 ]
    지표/시그널은 rolling/shift만 사용하므로 t 시점 값은 t 이전 봉에만 의존.
    봉 t에서 생성된 주문은 봉 t+1 이후에만 체결.

[ 의존성 ]
    - core/strategy.py::Strategy
    - backtest/execution.py::ExecutionSimulator
    - rules/rule_engine.py::RuleEngine
    - data/portfolio.py::Ledger
    - backtest/metrics.py::calculate_metrics()

[ 호출하는 곳 ]
    - run_backtest.py (진입점)에서 생성 및 실행
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Optional

import numpy as np
import pandas as pd

from strategy_backtest.backtest.context import RunContext
from strategy_backtest.backtest.execution import CostModel, DroppedIntent, ExecutionSimulator
from strategy_backtest.backtest.metrics import BacktestMetrics, calculate_metrics
from strategy_backtest.core.data_provider import Bar
from strategy_backtest.core.errors import DataUnavailable, InsufficientHistory
from strategy_backtest.core.strategy import Strategy
from strategy_backtest.data.portfolio import AccountState, Ledger
from strategy_backtest.data.timeseries import TimeSeriesStore
from strategy_backtest.rules.rule_engine import RuleEngine

logger = logging.getLogger("strategy_backtest.backtest")


def compute_signal_frame(strategy: Strategy, frame: pd.DataFrame, symbol: str = "") -> pd.DataFrame:
    """OHLCV에 지표/시그널 컬럼을 선언 순서대로 추가한 DataFrame 반환.

    워밍업 부족(InsufficientHistory) 지표는 전 구간 NaN으로 기록하고 계속 진행한다.
    """
    frame = frame.copy()
    for item in strategy.indicators:
        try:
            frame[item.label] = item.indicator.compute(frame)
        except InsufficientHistory as e:
            logger.warning(f"{symbol} 지표 {item.label} 미정의 처리: {e}")
            frame[item.label] = np.nan

    for item in strategy.signals:
        frame[item.label] = item.signal.evaluate(frame)

    return frame


@dataclass
class BacktestResult:
    """run_backtest()의 반환값."""
    strategy: str
    metrics: BacktestMetrics
    account: AccountState
    ledger: Ledger
    signal_frames: dict[str, pd.DataFrame] = field(default_factory=dict)
    dropped_intents: list[DroppedIntent] = field(default_factory=list)
    cancelled_intents: list[DroppedIntent] = field(default_factory=list)

    @property
    def snapshots(self) -> pd.DataFrame:
        return self.ledger.snapshot_frame()

    @property
    def transactions(self) -> pd.DataFrame:
        return self.ledger.transaction_frame()


class BacktestEngine:
    """백테스팅 엔진. run_backtest()로 시뮬레이션 실행."""

    def __init__(
        self,
        initial_equity: float = 100_000,
        commission_rate: float = 0.0,   # 매수/매도 수수료율
        tax_rate: float = 0.0,          # 매도세율
        slippage_rate: float = 0.0,     # 슬리피지율
        max_workers: int = 1,           # 종목별 지표 계산 스레드 수
    ):
        self.initial_equity = initial_equity
        self.cost_model = CostModel(
            commission_rate=commission_rate,
            tax_rate=tax_rate,
            slippage_rate=slippage_rate,
        )
        self.max_workers = max(1, int(max_workers))

        # 백테스트 실행 후 채워지는 결과
        self.result: Optional[BacktestResult] = None

    def run_backtest(
        self,
        strategy: Strategy,
        store: TimeSeriesStore,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> BacktestResult:
        """백테스트 실행.

        지표는 저장소 전체 이력으로 계산하고(워밍업에 start_date 이전 데이터 사용),
        매매 시뮬레이션은 [start_date, end_date] 구간의 봉에서만 수행한다.

        Args:
            strategy: 전략 (구성 검증 완료 상태)
            store: OHLCV 저장소
            start_date: 시뮬레이션 시작일 (None이면 처음부터)
            end_date: 시뮬레이션 종료일 (None이면 끝까지)
        """
        symbols = strategy.symbols or store.symbols
        missing = [s for s in symbols if s not in store]
        if missing:
            raise DataUnavailable(", ".join(missing), "저장소에 없는 종목")

        ctx = RunContext(
            strategy=strategy,
            store=store,
            ledger=Ledger(self.initial_equity),
            simulator=ExecutionSimulator(self.cost_model),
            rule_engine=RuleEngine(strategy.rules),
        )
        ctx.signal_frames = self._compute_frames(strategy, store, symbols)

        timeline = store.timeline(symbols)
        if start_date is not None:
            timeline = timeline[timeline >= pd.Timestamp(start_date)]
        if end_date is not None:
            timeline = timeline[timeline <= pd.Timestamp(end_date)]

        if len(timeline) == 0:
            logger.warning("시뮬레이션할 봉이 없습니다.")
        else:
            logger.info(
                f"백테스트 시작: {strategy.name} {symbols} "
                f"{timeline[0].date()} ~ {timeline[-1].date()} ({len(timeline)}봉)"
            )

        rows = {
            symbol: frame.loc[frame.index.isin(timeline)].to_dict("index")
            for symbol, frame in ctx.signal_frames.items()
        }
        last_timestamps = {symbol: max(r) for symbol, r in rows.items() if r}

        for timestamp in timeline:
            self._simulate_bar(ctx, rows, timestamp)

        dropped = ctx.simulator.finalize(last_timestamps)
        if dropped:
            logger.info(f"미체결 주문 {len(dropped)}건 폐기")

        account = ctx.ledger.account_state()
        metrics = calculate_metrics(
            transactions=ctx.ledger.transactions,
            equity_curve=account.equity_curve,
            initial_equity=self.initial_equity,
        )

        logger.info(
            f"백테스트 완료. 최종 자산: {account.final_equity:,.2f}, 총 수익률: {metrics.total_return:.2f}%"
        )
        self.result = BacktestResult(
            strategy=strategy.name,
            metrics=metrics,
            account=account,
            ledger=ctx.ledger,
            signal_frames=ctx.signal_frames,
            dropped_intents=list(ctx.simulator.dropped),
            cancelled_intents=list(ctx.simulator.cancelled),
        )
        return self.result

    def _compute_frames(
        self,
        strategy: Strategy,
        store: TimeSeriesStore,
        symbols: list[str],
    ) -> dict[str, pd.DataFrame]:
        """종목별 지표/시그널 계산. 종목 간 공유 상태가 없으므로 병렬 가능."""
        def work(symbol: str) -> pd.DataFrame:
            return compute_signal_frame(strategy, store.frame(symbol), symbol)

        if self.max_workers == 1 or len(symbols) == 1:
            return {symbol: work(symbol) for symbol in symbols}

        workers = min(self.max_workers, len(symbols))
        logger.debug(f"지표 계산 병렬 실행 (workers={workers})")
        with ThreadPoolExecutor(max_workers=workers) as pool:
            frames = list(pool.map(work, symbols))
        return dict(zip(symbols, frames))

    def _simulate_bar(
        self,
        ctx: RunContext,
        rows: dict[str, dict[pd.Timestamp, dict[str, Any]]],
        timestamp: pd.Timestamp,
    ) -> None:
        """봉 하나 시뮬레이션. 종목별 체결 → 룰 평가, 마지막에 스냅샷."""
        closes: dict[str, float] = {}
        signal_columns = ctx.rule_engine.signal_columns

        for symbol, symbol_rows in rows.items():
            row = symbol_rows.get(timestamp)
            if row is None:
                continue

            bar = Bar(
                timestamp=timestamp,
                open=row["open"],
                high=row["high"],
                low=row["low"],
                close=row["close"],
                volume=row["volume"],
            )
            ctx.simulator.process_bar(symbol, bar, ctx.ledger)
            closes[symbol] = bar.close

            intents = ctx.rule_engine.evaluate(
                symbol=symbol,
                timestamp=timestamp,
                signals={c: bool(row[c]) for c in signal_columns},
                position=ctx.ledger.position_quantity(symbol),
                close=bar.close,
                pending=ctx.simulator.pending_for(symbol),
                next_id=ctx.next_intent_id,
            )
            ctx.simulator.submit(intents)

        ctx.ledger.mark(timestamp, closes)

    def generate_report(self) -> dict[str, Any]:
        """백테스트 리포트 생성."""
        if self.result is None:
            return {"error": "백테스트를 먼저 실행하세요."}

        ledger = self.result.ledger
        return {
            "strategy": self.result.strategy,
            "metrics": self.result.metrics.to_dict(),
            "portfolio_summary": ledger.get_summary(),
            "final_equity": self.result.account.final_equity,
            "trade_count": len(ledger.transactions),
            "dropped_intents": len(self.result.dropped_intents),
            "trades": [
                {
                    "date": t.timestamp,
                    "symbol": t.symbol,
                    "side": t.side,
                    "quantity": t.quantity,
                    "price": t.price,
                    "fees": t.fees,
                    "profit": t.net_pnl,
                    "rule": t.rule,
                }
                for t in ledger.transactions
            ],
        }

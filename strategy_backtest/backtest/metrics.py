"""
백테스트 성과 지표.

[ 입력 ]
    - transactions: Ledger.transactions. 포지션을 줄인(청산) 체결만 거래 1건으로 센다
    - equity_curve: AccountState.equity_curve (봉별 자산, 날짜 인덱스)

[ 지표 ]
    자산 곡선 기반: 총/연환산 수익률, 샤프 비율, MDD
    거래 기반:     승률, 평균 손익, 수익 팩터, 최대 연속 승/패, 총 비용

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run_backtest() 마지막 단계
    - run_backtest.py::print_comparison() 비교표
"""

from dataclasses import asdict, dataclass
from typing import Any, Iterable, Sequence

import numpy as np
import pandas as pd

from strategy_backtest.core.order import Transaction

TRADING_DAYS_PER_YEAR = 252

_SUMMARY_ROWS = [
    ("총 수익률", "total_return", "{:.2f}%"),
    ("연환산 수익률", "annual_return", "{:.2f}%"),
    ("샤프 비율", "sharpe_ratio", "{:.2f}"),
    ("최대 낙폭(MDD)", "max_drawdown", "{:.2f}%"),
    None,
    ("총 거래 횟수", "total_trades", "{:d}"),
    ("승률", "win_rate", "{:.2f}%"),
    ("수익 거래", "winning_trades", "{:d}"),
    ("손실 거래", "losing_trades", "{:d}"),
    ("평균 수익", "avg_profit", "{:,.2f}"),
    ("평균 손실", "avg_loss", "{:,.2f}"),
    ("수익 팩터", "profit_factor", "{:.2f}"),
    ("총 비용", "total_fees", "{:,.2f}"),
    None,
    ("최대 연속 수익", "max_consecutive_wins", "{:d}"),
    ("최대 연속 손실", "max_consecutive_losses", "{:d}"),
]


@dataclass
class BacktestMetrics:
    total_return: float = 0.0         # %
    annual_return: float = 0.0        # %
    sharpe_ratio: float = 0.0
    max_drawdown: float = 0.0         # %
    win_rate: float = 0.0             # %
    avg_profit: float = 0.0
    avg_loss: float = 0.0
    profit_factor: float = 0.0        # 총이익 / 총손실
    total_trades: int = 0             # 청산 체결 수
    winning_trades: int = 0
    losing_trades: int = 0
    total_fees: float = 0.0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def summary(self) -> str:
        """성과 리포트 문자열."""
        width = 50
        lines = ["=" * width, "백테스트 성과 리포트", "=" * width]
        for row in _SUMMARY_ROWS:
            if row is None:
                lines.append("-" * width)
                continue
            label, attr, fmt = row
            lines.append(f"{label:<14}{fmt.format(getattr(self, attr)):>16}")
        lines.append("=" * width)
        return "\n".join(lines)


def max_drawdown(values: Sequence[float]) -> float:
    """고점 대비 최대 하락폭 (%)."""
    if len(values) == 0:
        return 0.0
    arr = np.asarray(values, dtype=float)
    peaks = np.maximum.accumulate(arr)
    with np.errstate(divide="ignore", invalid="ignore"):
        drawdowns = np.where(peaks > 0, (peaks - arr) / peaks * 100, 0.0)
    return float(drawdowns.max())


def sharpe_ratio(equity: pd.Series, risk_free_rate: float = 0.0) -> float:
    """봉별 수익률 기준 연환산 샤프 비율. 변동이 없으면 0."""
    returns = equity.pct_change().replace([np.inf, -np.inf], np.nan).dropna()
    if returns.empty:
        return 0.0
    excess = returns - risk_free_rate / TRADING_DAYS_PER_YEAR
    std = excess.std(ddof=0)
    if not std > 0:
        return 0.0
    return float(excess.mean() / std * np.sqrt(TRADING_DAYS_PER_YEAR))


def longest_streak(flags: Iterable[bool]) -> int:
    """연속으로 True인 최대 길이."""
    best = run = 0
    for flag in flags:
        run = run + 1 if flag else 0
        best = max(best, run)
    return best


def _apply_trade_stats(metrics: BacktestMetrics, profits: list[float]) -> None:
    wins = [p for p in profits if p > 0]
    losses = [p for p in profits if p <= 0]

    metrics.total_trades = len(profits)
    metrics.winning_trades = len(wins)
    metrics.losing_trades = len(losses)
    metrics.win_rate = len(wins) / len(profits) * 100
    metrics.avg_profit = float(np.mean(wins)) if wins else 0.0
    metrics.avg_loss = float(np.mean(losses)) if losses else 0.0

    gross_loss = -sum(losses)
    metrics.profit_factor = sum(wins) / gross_loss if gross_loss > 0 else float("inf")
    metrics.max_consecutive_wins = longest_streak(p > 0 for p in profits)
    metrics.max_consecutive_losses = longest_streak(p <= 0 for p in profits)


def calculate_metrics(
    transactions: Sequence[Transaction],
    equity_curve: pd.Series,
    initial_equity: float,
    risk_free_rate: float = 0.0,
) -> BacktestMetrics:
    """성과 지표 계산.

    Args:
        transactions: Ledger.transactions
        equity_curve: 봉별 자산
        initial_equity: 초기 자산
        risk_free_rate: 연 무위험 수익률 (샤프 비율용)
    """
    metrics = BacktestMetrics(total_fees=float(sum(t.fees for t in transactions)))
    if equity_curve is None or equity_curve.empty:
        return metrics

    equity = equity_curve.astype(float)
    final_value = float(equity.iloc[-1])
    metrics.total_return = (final_value / initial_equity - 1) * 100

    years = len(equity) / TRADING_DAYS_PER_YEAR
    if final_value > 0:
        metrics.annual_return = ((final_value / initial_equity) ** (1 / years) - 1) * 100

    metrics.sharpe_ratio = sharpe_ratio(equity, risk_free_rate)
    metrics.max_drawdown = max_drawdown(equity.to_numpy())

    profits = [t.net_pnl for t in transactions if t.closed_quantity > 0]
    if profits:
        _apply_trade_stats(metrics, profits)

    return metrics

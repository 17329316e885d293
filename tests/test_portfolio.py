import pandas as pd
import pytest

from strategy_backtest.backtest.metrics import calculate_metrics, longest_streak, max_drawdown, sharpe_ratio
from strategy_backtest.data.portfolio import AccountState, Ledger, PortfolioSnapshot, Position

T = pd.bdate_range("2020-01-01", periods=6)


class TestPosition:

    def test_fifo_realized_pnl(self):
        position = Position("AAA")
        position.apply(10, 100.0)
        position.apply(10, 110.0)
        realized, closed = position.apply(-15, 120.0)

        assert realized == pytest.approx(10 * 20 + 5 * 10)
        assert closed == 15
        assert position.quantity == 5
        assert position.avg_price == pytest.approx(110.0)

    def test_short_cover(self):
        position = Position("AAA")
        position.apply(-10, 100.0)
        realized, closed = position.apply(4, 90.0)

        assert realized == pytest.approx(40.0)
        assert closed == 4
        assert position.quantity == -6

    def test_flip_through_zero(self):
        position = Position("AAA")
        position.apply(10, 100.0)
        realized, closed = position.apply(-15, 105.0)

        assert realized == pytest.approx(50.0)
        assert closed == 10
        assert position.quantity == -5
        assert position.avg_price == pytest.approx(105.0)

    def test_unrealized(self):
        position = Position("AAA")
        position.apply(10, 100.0)
        position.apply(5, 110.0)
        assert position.unrealized_pnl(120.0) == pytest.approx(10 * 20 + 5 * 10)


class TestLedger:

    def test_quantity_equals_signed_sum_of_transactions(self):
        ledger = Ledger(10_000)
        ledger.record("AAA", T[0], 10, 100.0)
        ledger.record("BBB", T[1], 5, 50.0)
        ledger.record("AAA", T[2], -4, 105.0)
        ledger.record("AAA", T[3], 7, 101.0)

        for symbol in ("AAA", "BBB"):
            assert ledger.position_quantity(symbol) == Ledger.replay(symbol, ledger.transactions)
        assert ledger.position_quantity("AAA") == 13

    def test_rejects_zero_quantity(self):
        with pytest.raises(ValueError):
            Ledger(10_000).record("AAA", T[0], 0, 100.0)

    def test_rejects_out_of_order_timestamp(self):
        ledger = Ledger(10_000)
        ledger.record("AAA", T[2], 10, 100.0)
        with pytest.raises(ValueError):
            ledger.record("AAA", T[1], -10, 100.0)

    def test_transactions_are_read_only(self):
        ledger = Ledger(10_000)
        ledger.record("AAA", T[0], 10, 100.0)
        assert isinstance(ledger.transactions, tuple)

    def test_equity_identity(self):
        ledger = Ledger(10_000)
        ledger.record("AAA", T[0], 10, 100.0, fees=1.0)
        first = ledger.mark(T[0], {"AAA": 102.0})
        ledger.record("AAA", T[1], -5, 104.0, fees=1.0)
        second = ledger.mark(T[1], {"AAA": 103.0})

        assert first.realized_pnl == pytest.approx(-1.0)
        assert first.unrealized_pnl == pytest.approx(20.0)
        assert first.equity == pytest.approx(10_000 - 1.0 + 20.0)

        assert second.realized_pnl == pytest.approx(-1.0 + 20.0 - 1.0)
        assert second.unrealized_pnl == pytest.approx(5 * 3.0)
        for snap in ledger.snapshots:
            assert snap.equity == pytest.approx(10_000 + snap.realized_pnl + snap.unrealized_pnl)

    def test_mark_uses_last_known_price(self):
        ledger = Ledger(10_000)
        ledger.record("AAA", T[0], 10, 100.0)
        ledger.record("BBB", T[0], 10, 50.0)
        ledger.mark(T[0], {"AAA": 101.0, "BBB": 51.0})
        snap = ledger.mark(T[1], {"AAA": 102.0})

        assert snap.unrealized_pnl == pytest.approx(20.0 + 10.0)
        assert snap.positions == {"AAA": 10, "BBB": 10}

    def test_snapshot_frame_schema(self):
        ledger = Ledger(10_000)
        ledger.record("AAA", T[0], 10, 100.0)
        ledger.mark(T[0], {"AAA": 100.0})

        frame = ledger.snapshot_frame()
        assert list(frame.columns) == ["timestamp", "equity", "realized_pnl", "unrealized_pnl", "positions"]
        assert frame.loc[0, "positions"] == {"AAA": 10}


class TestAccountState:

    def test_aggregates_portfolios_with_forward_fill(self):
        a = [
            PortfolioSnapshot(T[0], realized_pnl=10.0, unrealized_pnl=0.0, equity=0.0),
            PortfolioSnapshot(T[2], realized_pnl=20.0, unrealized_pnl=5.0, equity=0.0),
        ]
        b = [PortfolioSnapshot(T[1], realized_pnl=-5.0, unrealized_pnl=0.0, equity=0.0)]

        account = AccountState.from_snapshots(1_000, a, b)

        assert account.equity_curve.tolist() == [1_010.0, 1_005.0, 1_020.0]
        assert account.realized_pnl == pytest.approx(15.0)
        assert account.unrealized_pnl == pytest.approx(5.0)
        assert account.final_equity == pytest.approx(1_020.0)
        assert account.total_return == pytest.approx(2.0)

    def test_empty(self):
        account = AccountState.from_snapshots(1_000)
        assert account.final_equity == 1_000
        assert account.equity_curve.empty


def test_max_drawdown():
    assert max_drawdown([100, 120, 90, 130]) == pytest.approx(25.0)
    assert max_drawdown([]) == 0.0


def test_calculate_metrics_counts_closing_trades():
    ledger = Ledger(10_000)
    ledger.record("AAA", T[0], 10, 100.0)
    ledger.record("AAA", T[1], -10, 110.0, fees=5.0)
    ledger.record("AAA", T[2], 10, 110.0)
    ledger.record("AAA", T[3], -10, 105.0)
    curve = pd.Series([10_000.0, 10_095.0, 10_095.0, 10_045.0], index=T[:4])

    metrics = calculate_metrics(ledger.transactions, curve, 10_000)

    assert metrics.total_trades == 2
    assert metrics.winning_trades == 1
    assert metrics.losing_trades == 1
    assert metrics.win_rate == pytest.approx(50.0)
    assert metrics.avg_profit == pytest.approx(95.0)
    assert metrics.avg_loss == pytest.approx(-50.0)
    assert metrics.profit_factor == pytest.approx(95.0 / 50.0)
    assert metrics.total_fees == pytest.approx(5.0)
    assert metrics.total_return == pytest.approx(0.45)


def test_longest_streak():
    assert longest_streak([True, True, False, True]) == 2
    assert longest_streak([]) == 0


def test_sharpe_ratio_flat_curve():
    flat = pd.Series([100.0, 100.0, 100.0])
    assert sharpe_ratio(flat) == 0.0
    rising = pd.Series([100.0, 101.0, 103.0, 104.0])
    assert sharpe_ratio(rising) > 0


def test_summary_lists_metrics():
    text = calculate_metrics([], pd.Series([100.0, 110.0], index=T[:2]), 100.0).summary()
    assert "총 수익률" in text
    assert "10.00%" in text

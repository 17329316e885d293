import math

import numpy as np
import pandas as pd
import pytest

from strategy_backtest.backtest.engine import BacktestEngine, compute_signal_frame
from strategy_backtest.core.errors import DataUnavailable, NoNextBar
from strategy_backtest.core.order import RuleType
from strategy_backtest.core.strategy import Strategy
from strategy_backtest.data.portfolio import Ledger
from strategy_backtest.data.timeseries import TimeSeriesStore
from strategy_backtest.indicators.moving_average import SMA
from strategy_backtest.rules.rule_engine import Rule
from strategy_backtest.rules.sizing import FixedQuantity
from strategy_backtest.signals.comparison import Crossover
from strategy_backtest.signals.threshold import Threshold
from strategy_backtest.strategies import create_strategy, list_strategies


def sma_cross_strategy():
    """보유 중 SMA50이 SMA200 아래로 내려가면 청산."""
    return (
        Strategy("sma_cross_exit")
        .add_indicator("SMA50", SMA({"n": 50}))
        .add_indicator("SMA200", SMA({"n": 200}))
        .add_signal("always", Threshold("close", 0, "gt"))
        .add_signal("filterexit", Crossover(["SMA50", "SMA200"], "lt"))
        .add_rule(Rule("exit_filter", "filterexit", RuleType.EXIT))
        .add_rule(Rule("enter", "always", RuleType.ENTRY, sizing=FixedQuantity(10)))
    )


def test_sma_crossover_exit_fills_on_next_bar(frame_factory):
    # 200봉 상승 후 60봉 하락. SMA200이 처음 정의되는 봉은 전환으로 치지 않으므로
    # 하락 후 상승 순서에서는 "아래로 교차"가 생기지 않는다 (아래 테스트 참고)
    closes = [100.0 + i for i in range(200)] + [299.0 - 5 * m for m in range(1, 61)]
    frame = frame_factory(closes)
    store = TimeSeriesStore.from_frames({"AAA": frame})

    sma50 = frame["close"].rolling(50).mean()
    sma200 = frame["close"].rolling(200).mean()
    below = (sma50 < sma200) & sma200.notna()
    cross_at = next(i for i in range(1, len(closes)) if below[i] and not below[i - 1] and sma200.notna()[i - 1])
    assert 200 < cross_at < 259

    result = BacktestEngine(initial_equity=10_000).run_backtest(sma_cross_strategy(), store)
    txns = result.ledger.transactions
    dates = store.frame("AAA").index

    # 첫 봉 진입 신호 → 둘째 봉 시가 체결
    assert txns[0].timestamp == dates[1]
    assert txns[0].quantity == 10
    assert txns[0].price == frame["open"][1]

    sells = [t for t in txns if t.quantity < 0]
    assert sells[0].timestamp == dates[cross_at + 1]
    assert sells[0].price == frame["open"][cross_at + 1]
    assert sells[0].quantity == -10
    assert sells[0].rule == "exit_filter"

    signals = result.signal_frames["AAA"]
    assert signals["filterexit"].sum() == 1
    assert bool(signals["filterexit"].iloc[cross_at])


def test_falling_then_rising_series_has_no_cross_below(frame_factory):
    # 200봉 하락 후 60봉 상승: SMA200이 정의되는 봉에서 이미 SMA50 < SMA200
    closes = [400.0 - i for i in range(200)] + [201.0 + 5 * m for m in range(1, 61)]
    store = TimeSeriesStore.from_frames({"AAA": frame_factory(closes)})

    result = BacktestEngine(initial_equity=10_000).run_backtest(sma_cross_strategy(), store)
    signals = result.signal_frames["AAA"]

    assert bool(signals["SMA50"].iloc[199] < signals["SMA200"].iloc[199])
    assert not signals["filterexit"].any()
    assert all(t.quantity > 0 for t in result.ledger.transactions)


def test_last_bar_intent_is_dropped(frame_factory):
    closes = [10.0] * 9 + [20.0]
    store = TimeSeriesStore.from_frames({"AAA": frame_factory(closes)})
    strategy = (
        Strategy("last_bar")
        .add_signal("jump", Threshold("close", 15, "gt", cross=True))
        .add_rule(Rule("enter", "jump", RuleType.ENTRY, sizing=FixedQuantity(5)))
    )

    result = BacktestEngine(initial_equity=1_000).run_backtest(strategy, store)

    assert result.ledger.transactions == ()
    assert len(result.dropped_intents) == 1
    assert isinstance(result.dropped_intents[0].error, NoNextBar)
    assert result.account.final_equity == pytest.approx(1_000)


def test_snapshots_satisfy_equity_identity(sample_store):
    strategy = create_strategy("ma_cross", {"ma_period": 20, "total_seed": 10_000})
    result = BacktestEngine(initial_equity=10_000).run_backtest(strategy, sample_store)

    assert len(result.ledger.transactions) > 0
    txns = result.ledger.transactions
    for snap in result.ledger.snapshots:
        realized = sum(t.net_pnl for t in txns if t.timestamp <= snap.timestamp)
        assert snap.realized_pnl == pytest.approx(realized)
        assert snap.equity == pytest.approx(10_000 + snap.realized_pnl + snap.unrealized_pnl)

    for symbol in sample_store.symbols:
        assert result.ledger.position_quantity(symbol) == Ledger.replay(symbol, txns)

    timestamps = [t.timestamp for t in txns]
    assert timestamps == sorted(timestamps)


def test_no_fill_on_creation_bar(sample_store):
    strategy = create_strategy("ma_cross", {"ma_period": 10})
    result = BacktestEngine().run_backtest(strategy, sample_store)
    signals = result.signal_frames

    for txn in result.ledger.transactions:
        frame = signals[txn.symbol]
        rule_signal = "below_ma" if txn.quantity < 0 else "above_ma"
        prev = frame.index[frame.index.get_loc(txn.timestamp) - 1]
        # 체결 직전 봉에서 해당 시그널이 발동했어야 한다
        assert bool(frame.loc[prev, rule_signal])


def test_parallel_matches_sequential(sample_store):
    params = {"fast": 20, "slow": 50, "dvo_lookback": 60}
    sequential = BacktestEngine(max_workers=1).run_backtest(create_strategy("sma_dvo", params), sample_store)
    parallel = BacktestEngine(max_workers=4).run_backtest(create_strategy("sma_dvo", params), sample_store)

    assert sequential.ledger.transactions == parallel.ledger.transactions
    pd.testing.assert_series_equal(sequential.account.equity_curve, parallel.account.equity_curve)


def test_simulation_window_uses_full_history_for_warmup(frame_factory):
    closes = list(np.linspace(100, 200, 300))
    store = TimeSeriesStore.from_frames({"AAA": frame_factory(closes)})
    dates = store.frame("AAA").index
    strategy = (
        Strategy("window")
        .add_indicator("SMA100", SMA({"n": 100}))
        .add_signal("above", Threshold("SMA100", 0, "gt"))
        .add_rule(Rule("enter", "above", RuleType.ENTRY, sizing=FixedQuantity(1)))
    )

    result = BacktestEngine().run_backtest(strategy, store, start_date=dates[250].date())

    assert len(result.ledger.snapshots) == 50
    assert result.ledger.snapshots[0].timestamp == dates[250]
    # 시작 봉에서 이미 지표가 정의되어 있으므로 바로 다음 봉에 체결
    assert result.ledger.transactions[0].timestamp == dates[251]


def test_insufficient_history_leaves_column_undefined(frame_factory, caplog):
    strategy = create_strategy("sma_dvo")
    frame = TimeSeriesStore.from_frames({"AAA": frame_factory(range(100, 220))}).frame("AAA")

    with caplog.at_level("WARNING", logger="strategy_backtest.backtest"):
        signals = compute_signal_frame(strategy, frame, "AAA")

    assert signals["SMA200"].isna().all()
    assert signals["SMA50"].notna().any()
    assert not signals["longentry"].any()
    assert "SMA200" in caplog.text


def test_short_history_runs_without_trades(store_factory):
    store = store_factory(AAA=range(100, 220))
    result = BacktestEngine().run_backtest(create_strategy("sma_dvo"), store)

    assert result.ledger.transactions == ()
    assert len(result.ledger.snapshots) == 120
    assert result.metrics.total_return == 0.0


def test_unknown_symbol_fails_before_simulation(store_factory):
    store = store_factory(AAA=range(10))
    strategy = create_strategy("ma_cross", {"ma_period": 3}, symbols=["ZZZ"])
    with pytest.raises(DataUnavailable):
        BacktestEngine().run_backtest(strategy, store)


@pytest.mark.parametrize("name", ["sma_dvo", "ma_cross"])
def test_presets_run(name, sample_store):
    assert name in list_strategies()
    params = {"fast": 20, "slow": 60, "dvo_lookback": 60} if name == "sma_dvo" else {"ma_period": 30}
    engine = BacktestEngine(initial_equity=100_000, commission_rate=0.0005)
    result = engine.run_backtest(create_strategy(name, params), sample_store)

    assert math.isfinite(result.account.final_equity)
    assert len(result.snapshots) == len(sample_store.timeline())
    report = engine.generate_report()
    assert report["strategy"] == name
    assert report["trade_count"] == len(result.ledger.transactions)


def test_timeline_limited_to_strategy_symbols(frame_factory):
    store = TimeSeriesStore.from_frames({
        "AAA": frame_factory(range(100, 110), start="2020-01-01"),
        "BBB": frame_factory(range(100, 120), start="2020-02-03"),
    })
    strategy = create_strategy("ma_cross", {"ma_period": 3}, symbols=["AAA"])

    result = BacktestEngine().run_backtest(strategy, store)

    assert list(result.snapshots["timestamp"]) == list(store.frame("AAA").index)
    assert set(result.signal_frames) == {"AAA"}

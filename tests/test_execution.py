import pandas as pd
import pytest

from strategy_backtest.backtest.execution import CostModel, ExecutionSimulator
from strategy_backtest.core.data_provider import Bar
from strategy_backtest.core.errors import NoNextBar
from strategy_backtest.core.order import OrderIntent, OrderType, PriceField, RuleType, Side
from strategy_backtest.data.portfolio import Ledger
from strategy_backtest.rules.sizing import AllQuantity, FixedQuantity, MaxDollarExposure

T0 = pd.Timestamp("2020-01-02")
T1 = pd.Timestamp("2020-01-03")
T2 = pd.Timestamp("2020-01-06")


def bar(ts, open_, high, low, close):
    return Bar(timestamp=ts, open=open_, high=high, low=low, close=close)


def intent(
    rule_type=RuleType.ENTRY,
    sizing=None,
    order_type=OrderType.MARKET,
    price=None,
    prefer=PriceField.OPEN,
    created_at=T0,
    replace=False,
    intent_id=1,
    symbol="AAA",
):
    if sizing is None:
        sizing = FixedQuantity(10) if rule_type == RuleType.ENTRY else AllQuantity()
    return OrderIntent(
        intent_id=intent_id,
        symbol=symbol,
        side=Side.LONG,
        rule_type=rule_type,
        sizing=sizing,
        created_at=created_at,
        order_type=order_type,
        prefer=prefer,
        price=price,
        replace=replace,
        rule=f"{rule_type.value}_{intent_id}",
    )


@pytest.fixture
def ledger():
    return Ledger(initial_equity=100_000)


def test_market_order_fills_next_bar_open(ledger):
    sim = ExecutionSimulator()
    sim.submit([intent()])

    assert sim.process_bar("AAA", bar(T0, 10, 11, 9, 10.5), ledger) == []
    fills = sim.process_bar("AAA", bar(T1, 12, 13, 11, 12.5), ledger)

    assert len(fills) == 1
    assert fills[0].timestamp == T1
    assert fills[0].price == 12
    assert fills[0].quantity == 10
    assert fills[0].intent_id == 1
    assert sim.pending == []
    assert ledger.position_quantity("AAA") == 10


def test_market_order_prefer_close(ledger):
    sim = ExecutionSimulator()
    sim.submit([intent(prefer=PriceField.CLOSE)])
    fills = sim.process_bar("AAA", bar(T1, 12, 13, 11, 12.5), ledger)
    assert fills[0].price == 12.5


def test_other_symbol_bar_does_not_fill(ledger):
    sim = ExecutionSimulator()
    sim.submit([intent()])
    assert sim.process_bar("BBB", bar(T1, 12, 13, 11, 12.5), ledger) == []
    assert len(sim.pending_for("AAA")) == 1


class TestLimit:

    def test_buy_waits_until_low_reaches_limit(self, ledger):
        sim = ExecutionSimulator()
        sim.submit([intent(order_type=OrderType.LIMIT, price=95.0)])

        assert sim.process_bar("AAA", bar(T1, 100, 101, 96, 99), ledger) == []
        fills = sim.process_bar("AAA", bar(T2, 100, 101, 94, 97), ledger)
        assert fills[0].price == 95.0

    def test_buy_gap_down_fills_at_open(self, ledger):
        sim = ExecutionSimulator()
        sim.submit([intent(order_type=OrderType.LIMIT, price=95.0)])
        fills = sim.process_bar("AAA", bar(T1, 93, 94, 90, 92), ledger)
        assert fills[0].price == 93

    def test_sell_gap_up_fills_at_open(self, ledger):
        ledger.record("AAA", T0, 10, 100.0)
        sim = ExecutionSimulator()
        sim.submit([intent(RuleType.EXIT, order_type=OrderType.LIMIT, price=105.0)])

        assert sim.process_bar("AAA", bar(T1, 101, 104, 100, 103), ledger) == []
        fills = sim.process_bar("AAA", bar(T2, 108, 110, 107, 109), ledger)
        assert fills[0].price == 108
        assert fills[0].quantity == -10
        assert fills[0].realized_pnl == pytest.approx(80.0)


class TestStopLimit:

    def test_buy_triggers_on_high(self, ledger):
        sim = ExecutionSimulator()
        sim.submit([intent(order_type=OrderType.STOP_LIMIT, price=105.0)])

        assert sim.process_bar("AAA", bar(T1, 100, 104, 99, 103), ledger) == []
        fills = sim.process_bar("AAA", bar(T2, 100, 106, 99, 105.5), ledger)
        assert fills[0].price == 105.0

    def test_buy_gap_over_limit_waits(self, ledger):
        sim = ExecutionSimulator()
        sim.submit([intent(order_type=OrderType.STOP_LIMIT, price=105.0)])

        # 시가가 105를 건너뛰어 발동만 되고 체결되지 않음
        assert sim.process_bar("AAA", bar(T1, 107, 108, 106, 107.5), ledger) == []
        assert len(sim.pending) == 1
        assert ledger.position_quantity("AAA") == 0

        # 발동 후에는 105 지정가 매수
        fills = sim.process_bar("AAA", bar(T2, 106, 107, 104, 105), ledger)
        assert fills[0].price == 105.0
        assert sim.pending == []

    def test_buy_gap_with_range_touching_limit(self, ledger):
        sim = ExecutionSimulator()
        sim.submit([intent(order_type=OrderType.STOP_LIMIT, price=105.0)])
        fills = sim.process_bar("AAA", bar(T1, 107, 108, 104, 106), ledger)
        assert fills[0].price == 105.0

    def test_triggered_buy_fills_at_open_below_limit(self, ledger):
        sim = ExecutionSimulator()
        sim.submit([intent(order_type=OrderType.STOP_LIMIT, price=105.0)])
        assert sim.process_bar("AAA", bar(T1, 107, 108, 106, 107.5), ledger) == []
        fills = sim.process_bar("AAA", bar(T2, 103, 104, 102, 103.5), ledger)
        assert fills[0].price == 103

    def test_sell_gap_under_limit_waits(self, ledger):
        ledger.record("AAA", T0, 10, 100.0)
        sim = ExecutionSimulator()
        sim.submit([intent(RuleType.EXIT, order_type=OrderType.STOP_LIMIT, price=95.0)])

        assert sim.process_bar("AAA", bar(T1, 92, 93, 90, 91), ledger) == []
        fills = sim.process_bar("AAA", bar(T2, 94, 96, 93, 95), ledger)
        assert fills[0].price == 95.0
        assert fills[0].quantity == -10

    def test_untriggered_sell_does_not_fill_as_limit(self, ledger):
        ledger.record("AAA", T0, 10, 100.0)
        sim = ExecutionSimulator()
        sim.submit([intent(RuleType.EXIT, order_type=OrderType.STOP_LIMIT, price=95.0)])
        assert sim.process_bar("AAA", bar(T1, 99, 101, 96, 100), ledger) == []
        assert len(sim.pending) == 1


def test_exit_capped_at_held_quantity(ledger):
    ledger.record("AAA", T0, 10, 100.0)
    sim = ExecutionSimulator()
    sim.submit([intent(RuleType.EXIT, sizing=FixedQuantity(50))])

    fills = sim.process_bar("AAA", bar(T1, 101, 102, 100, 101), ledger)
    assert fills[0].quantity == -10
    assert ledger.position_quantity("AAA") == 0


def test_exit_after_position_closed_is_cancelled(ledger):
    ledger.record("AAA", T0, 10, 100.0)
    sim = ExecutionSimulator()
    sim.submit([
        intent(RuleType.EXIT, intent_id=1),
        intent(RuleType.EXIT, intent_id=2),
    ])
    fills = sim.process_bar("AAA", bar(T1, 101, 102, 100, 101), ledger)

    assert len(fills) == 1
    assert [d.reason for d in sim.cancelled] == ["zero quantity"]


def test_sizing_resolved_with_fill_price(ledger):
    sim = ExecutionSimulator()
    sim.submit([intent(sizing=MaxDollarExposure(1_000))])
    fills = sim.process_bar("AAA", bar(T1, 40, 41, 39, 40), ledger)
    assert fills[0].quantity == 25


def test_replace_cancels_pending_intents(ledger):
    sim = ExecutionSimulator()
    sim.submit([intent(intent_id=1), intent(intent_id=2, symbol="BBB")])
    sim.submit([intent(intent_id=3, replace=True)])

    assert [i.intent_id for i in sim.pending] == [2, 3]
    assert [d.intent.intent_id for d in sim.cancelled] == [1]


def test_finalize_drops_last_bar_intents():
    sim = ExecutionSimulator()
    sim.submit([
        intent(intent_id=1, created_at=T2),
        intent(intent_id=2, created_at=T0, order_type=OrderType.LIMIT, price=1.0),
    ])
    dropped = sim.finalize({"AAA": T2})

    assert len(dropped) == 2
    assert isinstance(dropped[0].error, NoNextBar)
    assert dropped[1].error is None
    assert sim.pending == []
    assert sim.dropped == dropped


def test_cost_model(ledger):
    costs = CostModel(commission_rate=0.001, tax_rate=0.002, slippage_rate=0.01)
    ledger.record("AAA", T0, 10, 100.0)
    sim = ExecutionSimulator(costs)
    sim.submit([intent(RuleType.EXIT)])

    txn = sim.process_bar("AAA", bar(T1, 100, 101, 99, 100), ledger)[0]
    assert txn.price == pytest.approx(99.0)
    assert txn.fees == pytest.approx(990 * 0.003)
    assert txn.net_pnl == pytest.approx(-10 - 990 * 0.003)

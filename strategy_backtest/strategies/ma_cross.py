"""
이동평균 교차(MA Cross) 전략.

[ 전략 흐름 ]
    종가가 MA 위로 올라선 봉 → 다음 봉에 매수 (position_size_pct 만큼)
    종가가 MA 아래로 내려간 봉 → 다음 봉에 전량 매도

[ 파라미터 ]
    total_seed:        총 시드머니
    ma_period:         이동평균선 기간 (일)
    position_size_pct: 1회 매수 비율 (%)
    prefer:            체결 가격 (open/close 등)
"""

from typing import Any

from strategy_backtest.core.order import PriceField, RuleType
from strategy_backtest.core.strategy import Strategy
from strategy_backtest.indicators.moving_average import SMA
from strategy_backtest.rules.rule_engine import Rule
from strategy_backtest.rules.sizing import AllQuantity, MaxDollarExposure
from strategy_backtest.signals.comparison import Crossover
from strategy_backtest.strategies import register

DEFAULT_PARAMS = {
    "total_seed": 100_000,
    "ma_period": 120,
    "position_size_pct": 100.0,
    "prefer": "open",
}


@register("ma_cross")
def build_ma_cross(params: dict[str, Any]) -> Strategy:
    p = {**DEFAULT_PARAMS, **params}
    ma_label = f"SMA{p['ma_period']}"
    position_size = float(p["total_seed"]) * float(p["position_size_pct"]) / 100
    prefer = PriceField(str(p["prefer"]).lower())

    return (
        Strategy("ma_cross", params=p)
        .add_indicator(ma_label, SMA({"n": p["ma_period"]}))
        .add_signal("above_ma", Crossover(["close", ma_label], "gt"))
        .add_signal("below_ma", Crossover(["close", ma_label], "lt"))
        .add_rule(Rule("exit_below_ma", "below_ma", RuleType.EXIT, sizing=AllQuantity(), prefer=prefer))
        .add_rule(
            Rule(
                "enter_above_ma",
                "above_ma",
                RuleType.ENTRY,
                sizing=MaxDollarExposure(position_size, position_size),
                prefer=prefer,
            )
        )
    )

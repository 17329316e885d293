"""
이동평균 필터 + DVO 역추세 전략 (firststrat).

[ 전략 개요 ]
    매수: SMA50 > SMA200 (상승 추세)  AND  DVO < 20 (단기 과매도)
          두 조건이 동시에 새로 성립한 봉에서 진입
    매도: SMA50 < SMA200 하향 돌파     OR   DVO > 80 상향 돌파 시 전량 청산

[ 구성 ]
    지표    SMA50, SMA200, DVO_2_126, RSI_3_4 (참고용)
    시그널  longfilter     comparison  SMA50 > SMA200
            filterexit     crossover   SMA50 < SMA200
            longthreshold  threshold   DVO < 20 (레벨)
            thresholdexit  threshold   DVO > 80 (전환)
            longentry      formula     longfilter & longthreshold (전환)
    룰      filterexit / thresholdexit → 전량 청산, 다음 봉 시가
            longentry → 최대 trade_size 달러, 종목 노출 max_size 달러까지, 다음 봉 시가

[ 파라미터 (config.yaml의 strategy.params) ]
    fast / slow:            이동평균 기간
    dvo_navg / dvo_lookback: DVO 평활 기간 / 백분위 구간
    entry_threshold:        DVO 진입 기준 (이하)
    exit_threshold:         DVO 청산 기준 (이상)
    trade_size / max_size:  1회 주문 금액 / 종목 최대 노출 금액
    prefer:                 체결 가격 (open/high/low/close)
"""

from typing import Any

from strategy_backtest.core.order import PriceField, RuleType
from strategy_backtest.core.strategy import Strategy
from strategy_backtest.indicators.moving_average import SMA
from strategy_backtest.indicators.oscillators import DVO, RSIAverage
from strategy_backtest.rules.rule_engine import Rule
from strategy_backtest.rules.sizing import AllQuantity, MaxDollarExposure
from strategy_backtest.signals.comparison import Comparison, Crossover
from strategy_backtest.signals.formula import Formula
from strategy_backtest.signals.threshold import Threshold
from strategy_backtest.strategies import register

DEFAULT_PARAMS = {
    "fast": 50,
    "slow": 200,
    "dvo_navg": 2,
    "dvo_lookback": 126,
    "rsi_n1": 3,
    "rsi_n2": 4,
    "entry_threshold": 20,
    "exit_threshold": 80,
    "trade_size": 100_000,
    "max_size": None,     # None이면 trade_size와 같음
    "prefer": "open",
}


@register("sma_dvo")
def build_sma_dvo(params: dict[str, Any]) -> Strategy:
    p = {**DEFAULT_PARAMS, **params}
    fast_label = f"SMA{p['fast']}"
    slow_label = f"SMA{p['slow']}"
    dvo_label = f"DVO_{p['dvo_navg']}_{p['dvo_lookback']}"
    prefer = PriceField(str(p["prefer"]).lower())

    return (
        Strategy("sma_dvo", params=p)
        .add_indicator(fast_label, SMA({"n": p["fast"]}))
        .add_indicator(slow_label, SMA({"n": p["slow"]}))
        .add_indicator(f"RSI_{p['rsi_n1']}_{p['rsi_n2']}", RSIAverage({"n1": p["rsi_n1"], "n2": p["rsi_n2"]}))
        .add_indicator(dvo_label, DVO({"navg": p["dvo_navg"], "percentlookback": p["dvo_lookback"]}))
        .add_signal("longfilter", Comparison([fast_label, slow_label], "gt"))
        .add_signal("filterexit", Crossover([fast_label, slow_label], "lt"))
        .add_signal("longthreshold", Threshold(dvo_label, p["entry_threshold"], "lt", cross=False))
        .add_signal("thresholdexit", Threshold(dvo_label, p["exit_threshold"], "gt", cross=True))
        .add_signal("longentry", Formula("longfilter & longthreshold", cross=True))
        .add_rule(Rule("exit_filter", "filterexit", RuleType.EXIT, sizing=AllQuantity(), prefer=prefer))
        .add_rule(Rule("exit_threshold", "thresholdexit", RuleType.EXIT, sizing=AllQuantity(), prefer=prefer))
        .add_rule(
            Rule(
                "enter_long",
                "longentry",
                RuleType.ENTRY,
                sizing=MaxDollarExposure(p["trade_size"], p["max_size"]),
                prefer=prefer,
            )
        )
    )

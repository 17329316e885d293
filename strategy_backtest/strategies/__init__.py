"""
전략 프리셋 모듈.

[ 전략 등록 방식 ]
    @register("전략이름") 데코레이터를 붙인 빌더 함수가 STRATEGY_REGISTRY에 자동 등록.
    빌더는 params(dict)를 받아 구성이 끝난 core/strategy.py::Strategy를 반환한다.
    run_backtest.py에서 이름만으로 전략을 찾아 생성할 수 있다.

[ 프리셋 추가 ]
    이 디렉토리에 DEFAULT_PARAMS + @register("이름") 빌더 함수를 가진 모듈을 두면
    임포트 시 discover_modules()가 찾아 등록한다. config.yaml의 strategy.name으로 선택.

    config.yaml에 indicators/signals/rules를 직접 적으면 프리셋 없이도 구성 가능
    (utils/config.py::StrategyConfig.build()).
"""

from typing import Any, Callable

from strategy_backtest.core.registry import Registry, discover_modules
from strategy_backtest.core.strategy import Strategy

StrategyBuilder = Callable[[dict[str, Any]], Strategy]

STRATEGY_REGISTRY: Registry[StrategyBuilder] = Registry("전략")
register = STRATEGY_REGISTRY.register


def create_strategy(
    name: str,
    params: dict[str, Any] | None = None,
    symbols: list[str] | None = None,
) -> Strategy:
    """이름으로 전략을 생성.

    Args:
        name: 등록된 전략 이름 (예: "sma_dvo", "ma_cross")
        params: 빌더의 DEFAULT_PARAMS 위에 덮어쓸 값
        symbols: 대상 종목

    Raises:
        UnknownComponent: 등록되지 않은 전략 이름
    """
    strategy = STRATEGY_REGISTRY.get(name)(dict(params or {}))
    strategy.symbols = list(symbols or strategy.symbols)
    return strategy


def list_strategies() -> list[str]:
    return STRATEGY_REGISTRY.names()


discover_modules(__name__, __file__)

"""
지표 모듈.

[ 지표 등록 방식 ]
    @register("이름") 데코레이터를 붙이면 INDICATOR_REGISTRY에 자동 등록.
    config.yaml의 indicators 항목에서 type으로 이름을 지정하면 된다.

    indicators:
      - label: SMA50
        type: SMA
        params: {n: 50}
"""

from typing import Any

from strategy_backtest.core.indicator import Indicator
from strategy_backtest.core.registry import Registry, discover_modules

INDICATOR_REGISTRY: Registry[type[Indicator]] = Registry("지표")
register = INDICATOR_REGISTRY.register


def create_indicator(name: str, params: dict[str, Any] | None = None) -> Indicator:
    """이름으로 지표 인스턴스를 생성.

    Raises:
        UnknownComponent: 등록되지 않은 지표 이름
    """
    return INDICATOR_REGISTRY.get(name)(params=params)


def list_indicators() -> list[str]:
    return INDICATOR_REGISTRY.names()


discover_modules(__name__, __file__)

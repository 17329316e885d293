"""
시그널 모듈.

[ 시그널 등록 방식 ]
    @register("이름")으로 SIGNAL_REGISTRY에 등록. config.yaml의 signals 항목 예:

    signals:
      - label: longfilter
        type: comparison
        params: {columns: [SMA50, SMA200], relation: gt}
      - label: longentry
        type: formula
        params: {formula: "longfilter & longthreshold", cross: true}

    시그널은 선언 순서대로 계산되며, 결과는 label 이름의 컬럼으로 추가되어
    이후 시그널(formula)과 룰이 참조할 수 있다.
"""

from typing import Any

from strategy_backtest.core.errors import ConfigurationError
from strategy_backtest.core.registry import Registry, discover_modules
from strategy_backtest.core.signal import Signal

SIGNAL_REGISTRY: Registry[type[Signal]] = Registry("시그널")
register = SIGNAL_REGISTRY.register


def create_signal(name: str, params: dict[str, Any] | None = None) -> Signal:
    """이름으로 시그널 인스턴스를 생성.

    Raises:
        UnknownComponent: 등록되지 않은 시그널 이름
        ConfigurationError: 파라미터 누락/오류
    """
    cls = SIGNAL_REGISTRY.get(name)
    try:
        return cls(**(params or {}))
    except TypeError as e:
        raise ConfigurationError(f"시그널 '{name}' 파라미터 오류: {e}") from e


def list_signals() -> list[str]:
    return SIGNAL_REGISTRY.names()


discover_modules(__name__, __file__)

import pytest

from strategy_backtest.core.errors import UnknownComponent
from strategy_backtest.core.registry import Registry
from strategy_backtest.signals import SIGNAL_REGISTRY
from strategy_backtest.strategies import STRATEGY_REGISTRY


def test_register_and_get():
    registry = Registry("테스트")

    @registry.register("double")
    def double(x):
        return 2 * x

    assert "double" in registry
    assert registry.get("double")(4) == 8
    assert list(registry) == ["double"]
    assert len(registry) == 1


def test_unknown_name_lists_available():
    registry = Registry("테스트")
    registry.register("b")(1)
    registry.register("a")(2)

    with pytest.raises(UnknownComponent, match="사용 가능: a, b"):
        registry.get("c")


def test_packages_discover_their_modules():
    assert {"comparison", "crossover", "threshold", "formula"} <= set(SIGNAL_REGISTRY)
    assert {"sma_dvo", "ma_cross"} <= set(STRATEGY_REGISTRY)

"""
이름 → 구현 레지스트리.

지표 / 시그널 / 전략 패키지가 각자 하나씩 만들어 쓴다.

    INDICATOR_REGISTRY = Registry("지표")

    @INDICATOR_REGISTRY.register("SMA")
    class SMA(Indicator): ...

    INDICATOR_REGISTRY.get("SMA")   # 없으면 UnknownComponent
"""

from importlib import import_module
from pathlib import Path
from typing import Callable, Generic, Iterator, TypeVar

from strategy_backtest.core.errors import UnknownComponent

T = TypeVar("T")


class Registry(Generic[T]):

    def __init__(self, kind: str):
        self.kind = kind
        self._items: dict[str, T] = {}

    def register(self, name: str) -> Callable[[T], T]:
        """데코레이터. 같은 이름을 다시 등록하면 덮어쓴다."""
        def decorator(item: T) -> T:
            self._items[name] = item
            return item
        return decorator

    def get(self, name: str) -> T:
        if name not in self._items:
            raise UnknownComponent(
                f"알 수 없는 {self.kind}: '{name}'. 사용 가능: {', '.join(self.names())}"
            )
        return self._items[name]

    def names(self) -> list[str]:
        return sorted(self._items)

    def __contains__(self, name: str) -> bool:
        return name in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self._items)


def discover_modules(package: str, init_file: str) -> None:
    """패키지 디렉토리의 모듈을 모두 임포트해서 @register가 실행되게 한다 (_로 시작하는 파일 제외)."""
    for py_file in sorted(Path(init_file).parent.glob("*.py")):
        if not py_file.name.startswith("_"):
            import_module(f"{package}.{py_file.stem}")

"""
백테스트 예외 정의.

[ 분류 ]
    InsufficientHistory  - 지표 워밍업 부족. 실행 중단 없이 해당 컬럼을 미정의(NaN)로 기록
    ConfigurationError   - 설정 오류. 전략 구성 시점에 즉시 발생 (시뮬레이션 시작 전)
        ├── UnknownComponent     - 레지스트리에 없는 지표/시그널/전략 이름
        ├── UnknownSignalColumn  - 등록되지 않은 컬럼/시그널 참조
        └── InvalidSizing        - 음수 또는 유한하지 않은 주문 수량
    NoNextBar            - 마지막 봉에서 생성된 주문. 조용히 폐기 (치명적 아님)
    DataUnavailable      - 데이터 제공자 실패. 시뮬레이션 상태 생성 전에 실행 중단
"""


class BacktestError(Exception):
    """모든 백테스트 예외의 부모 클래스."""


class InsufficientHistory(BacktestError):
    """지표 계산에 필요한 최소 봉 수가 부족할 때."""

    def __init__(self, indicator: str, required: int, available: int):
        self.indicator = indicator
        self.required = required
        self.available = available
        super().__init__(
            f"{indicator}: 최소 {required}개 봉 필요 (현재 {available}개)"
        )


class ConfigurationError(BacktestError):
    """전략 구성 오류. 시뮬레이션 시작 전에 발생."""


class UnknownComponent(ConfigurationError):
    """레지스트리에 등록되지 않은 이름."""


class UnknownSignalColumn(ConfigurationError):
    """시그널/룰이 존재하지 않는 컬럼을 참조."""

    def __init__(self, column: str, referenced_by: str = ""):
        self.column = column
        self.referenced_by = referenced_by
        where = f" ({referenced_by})" if referenced_by else ""
        super().__init__(f"알 수 없는 컬럼: '{column}'{where}")


class InvalidSizing(ConfigurationError):
    """주문 수량이 음수이거나 유한하지 않음."""


class NoNextBar(BacktestError):
    """다음 봉이 없어 체결할 수 없는 주문."""

    def __init__(self, symbol: str, created_at):
        self.symbol = symbol
        self.created_at = created_at
        super().__init__(f"{symbol}: {created_at} 이후 체결 가능한 봉 없음")


class DataUnavailable(BacktestError):
    """데이터 제공자가 요청한 기간의 데이터를 제공하지 못함."""

    def __init__(self, symbol: str, reason: str = ""):
        self.symbol = symbol
        super().__init__(f"{symbol}: 데이터 없음" + (f" ({reason})" if reason else ""))

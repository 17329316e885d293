"""
설정 관리 모듈.

[ 역할 ]
    config.yaml (또는 .json) 파일을 파싱하여 Config 객체로 변환.
    전략 구성, 백테스트 파라미터, 데이터 소스, 로깅 설정 등을 통합 관리.

[ 설정 파일 구조 (config.yaml) ]
    strategy:         → StrategyConfig (프리셋 이름 + params, 또는 indicators/signals/rules 직접 선언)
    backtest:         → BacktestConfig (기간, 초기 자산, 주문 금액, 비용)
    database:         → DatabaseConfig (ClickHouse 접속 정보)
    data_ingestion:   → DataIngestionConfig (Yahoo 재시도)
    log_level:        → "INFO" / "DEBUG"
    log_dir:          → 로그 디렉토리 경로

[ 호출하는 곳 ]
    - run_backtest.py에서 Config.load()로 로드 (.yaml / .json)
    - config.strategy.build()로 전략 생성 (설정 오류는 여기서 즉시 발생)
    - 엔진 생성 시 config.backtest의 값을 사용
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

import yaml

from strategy_backtest.core.errors import ConfigurationError
from strategy_backtest.core.strategy import Strategy

STRATEGY_KEYS = ("name", "symbols", "params", "indicators", "signals", "rules")


@dataclass
class StrategyConfig:
    """전략 설정. config.yaml의 strategy 섹션에 대응.

    indicators/signals/rules가 비어 있으면 name을 프리셋 이름으로 사용하고,
    있으면 선언된 구성으로 전략을 만든다 (name은 표시용).
    """
    name: str = "sma_dvo"
    symbols: list[str] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)
    indicators: list[dict[str, Any]] = field(default_factory=list)
    signals: list[dict[str, Any]] = field(default_factory=list)
    rules: list[dict[str, Any]] = field(default_factory=list)

    @property
    def is_declarative(self) -> bool:
        return bool(self.indicators or self.signals or self.rules)

    def build(self, name: str | None = None, params: dict[str, Any] | None = None) -> Strategy:
        """전략 생성.

        Args:
            name: 프리셋 이름 오버라이드 (--strategy, --compare)
            params: params 오버라이드 (-p key=value)
        """
        if self.is_declarative and name is None:
            return Strategy.from_config(
                self.name,
                indicators=self.indicators,
                signals=self.signals,
                rules=self.rules,
                symbols=self.symbols,
            )

        from strategy_backtest.strategies import create_strategy
        merged = {**self.params, **(params or {})}
        return create_strategy(name or self.name, params=merged, symbols=self.symbols)


@dataclass
class BacktestConfig:
    """백테스트 설정. config.yaml의 backtest 섹션에 대응.

    init_date ~ start_date 구간은 지표 워밍업용으로만 로드한다.
    """
    init_date: str = "2010-01-01"
    start_date: str = "2014-01-01"
    end_date: str = "2019-06-14"
    initial_equity: float = 100_000
    commission_rate: float = 0.0
    tax_rate: float = 0.0
    slippage_rate: float = 0.0
    max_workers: int = 1

    def period(self) -> tuple[date, date, date]:
        """(init_date, start_date, end_date)를 date로 변환.

        Raises:
            ConfigurationError: 날짜 형식 오류 또는 init <= start <= end 위반
        """
        try:
            init, start, end = (
                date.fromisoformat(self.init_date),
                date.fromisoformat(self.start_date),
                date.fromisoformat(self.end_date),
            )
        except ValueError as e:
            raise ConfigurationError(f"backtest 날짜 형식 오류: {e}") from e
        if not init <= start <= end:
            raise ConfigurationError(
                f"backtest 기간 순서 오류: init={init}, start={start}, end={end}"
            )
        return init, start, end


@dataclass
class DatabaseConfig:
    """ClickHouse 접속 정보."""
    host: str = "localhost"
    port: int = 8123
    database: str = "default"
    user: str = "default"
    password: str = "password"
    table: str = "stock_ohlcv"
    use_adjusted_close: bool = True


@dataclass
class DataIngestionConfig:
    """Yahoo 조회 옵션 (수정주가 여부, 재시도)."""
    adjust: bool = True
    max_retries: int = 3
    retry_delay: int = 5


@dataclass
class Config:
    """전체 설정. Config.load()로 파일에서 읽는다."""
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    data_ingestion: DataIngestionConfig = field(default_factory=DataIngestionConfig)
    log_level: str = "INFO"
    log_dir: str = "logs"

    @classmethod
    def load(cls, path: str | Path) -> "Config":
        """확장자로 형식 판별 (.json → JSON, 그 외 YAML)."""
        path = Path(path)
        if path.suffix.lower() == ".json":
            return cls.from_json(path)
        return cls.from_yaml(path)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        return cls.from_dict(_read(path, yaml.safe_load))

    @classmethod
    def from_json(cls, path: str | Path) -> "Config":
        return cls.from_dict(_read(path, json.load))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        sections = {
            "backtest": BacktestConfig,
            "database": DatabaseConfig,
            "data_ingestion": DataIngestionConfig,
        }
        return cls(
            strategy=_strategy_section(data.get("strategy") or {}),
            **{key: _section(section, data.get(key)) for key, section in sections.items()},
            log_level=str(data.get("log_level", "INFO")),
            log_dir=data.get("log_dir", "logs"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def save_yaml(self, path: str | Path) -> None:
        """YAML로 저장. 상위 디렉토리가 없으면 만든다."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            yaml.dump(self.to_dict(), allow_unicode=True, default_flow_style=False, sort_keys=False),
            encoding="utf-8",
        )


def _read(path: str | Path, parser) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = parser(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: 최상위는 매핑이어야 함")
    return data


def _strategy_section(data: dict[str, Any]) -> StrategyConfig:
    # params 키가 없으면 구조 키를 뺀 나머지가 params
    if "params" in data:
        params = dict(data["params"] or {})
    else:
        params = {k: v for k, v in data.items() if k not in STRATEGY_KEYS}
    return StrategyConfig(
        name=data.get("name", "sma_dvo"),
        symbols=list(data.get("symbols") or []),
        params=params,
        indicators=list(data.get("indicators") or []),
        signals=list(data.get("signals") or []),
        rules=list(data.get("rules") or []),
    )


def _section(cls, data: dict[str, Any] | None):
    """알 수 없는 키는 무시하고 dataclass 생성. 날짜는 문자열로 통일."""
    values = {}
    for k, v in (data or {}).items():
        if k not in cls.__dataclass_fields__:
            continue
        if k.endswith("_date") and v is not None:
            v = str(v)
        values[k] = v
    return cls(**values)

"""
=============================================================================
전략 백테스트 시스템 (Strategy Backtest)
=============================================================================

[ 시스템 전체 구조 ]

    run_backtest.py (진입점)
         │
         ├── utils/config.py        ← config.yaml 설정 로드, 전략 생성
         ├── utils/logger.py        ← 로깅
         │
         ├── data/                  ← OHLCV 로드 (yahoo / clickhouse / sample)
         │     └── timeseries.py    ← 종목별 봉 저장소 (읽기 전용)
         │
         ├── strategies/            ← 전략 프리셋 (sma_dvo, ma_cross)
         │
         └── backtest/engine.py     ← 백테스트 실행 엔진
               │
               ├── rules/rule_engine.py  ← 시그널 → 주문 의도
               ├── backtest/execution.py ← 다음 봉 체결
               ├── data/portfolio.py     ← 체결 기록/포지션/스냅샷 원장
               └── backtest/metrics.py   ← 성과 지표 계산


[ 핵심 추상 클래스 (core/) - 모든 구현체의 부모 ]

    core/data_provider.py → data/yahoo_provider.py, data/clickhouse_provider.py, data/sample_data.py
    core/indicator.py     → indicators/moving_average.py, indicators/oscillators.py
    core/signal.py        → signals/comparison.py, signals/threshold.py, signals/formula.py
    rules/sizing.py       → FixedQuantity, AllQuantity, MaxDollarExposure
    core/registry.py      → indicators/, signals/, strategies/ 의 이름 기반 등록 (@register)


[ 데이터 흐름 ]

    1. config.yaml에서 전략/기간 로드
    2. DataProvider가 init_date ~ end_date OHLCV를 한 번에 로드 → TimeSeriesStore
    3. 종목별로 지표 → 시그널 컬럼을 전 기간에 대해 계산
    4. 봉 루프: 이전 봉 주문 체결 → 룰 평가 → 새 주문 → 스냅샷
    5. AccountState와 metrics로 결과 집계
"""

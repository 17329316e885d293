"""
백테스트 실행 스크립트 (시스템 진입점).

[ 사용법 ]
    # 기본 실행 (config.yaml의 전략 사용)
    python run_backtest.py

    # 전략 지정
    python run_backtest.py --strategy sma_dvo
    python run_backtest.py --strategy ma_cross

    # 파라미터 오버라이드
    python run_backtest.py --strategy sma_dvo -p entry_threshold=15 -p trade_size=50000

    # 데이터 소스 선택 (기본: sample)
    python run_backtest.py --source yahoo
    python run_backtest.py --source clickhouse

    # 여러 전략 비교
    python run_backtest.py --compare sma_dvo ma_cross

    # 봉별 스냅샷 / 체결 내역을 CSV로 저장
    python run_backtest.py --save-snapshots results/

    # 등록된 전략 목록 확인
    python run_backtest.py --list
"""

import argparse
import logging
from pathlib import Path
from typing import Any

import pandas as pd
import yaml

from strategy_backtest.backtest.engine import BacktestEngine, BacktestResult
from strategy_backtest.backtest.metrics import BacktestMetrics
from strategy_backtest.core.data_provider import DataProvider
from strategy_backtest.core.errors import BacktestError
from strategy_backtest.data.timeseries import TimeSeriesStore
from strategy_backtest.strategies import list_strategies
from strategy_backtest.utils.config import Config
from strategy_backtest.utils.logger import setup_logger

logger = logging.getLogger("strategy_backtest")

DEFAULT_SYMBOLS = ["SPY"]


def parse_param(param_str: str) -> tuple[str, Any]:
    """'key=value' → (key, value). 값은 YAML 스칼라로 해석 (20 → int, 0.5 → float, true → bool)."""
    key, sep, value = param_str.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"key=value 형식이 아님: '{param_str}'")
    try:
        parsed = yaml.safe_load(value.strip())
    except yaml.YAMLError:
        parsed = value.strip()
    return key.strip(), parsed


def make_provider(config: Config, source: str) -> DataProvider:
    """데이터 소스 이름으로 DataProvider 생성."""
    if source == "sample":
        from strategy_backtest.data.sample_data import SampleDataProvider
        return SampleDataProvider()

    if source == "yahoo":
        from strategy_backtest.data.yahoo_provider import YahooDataProvider
        ingestion = config.data_ingestion
        return YahooDataProvider(
            adjust=ingestion.adjust,
            max_retries=ingestion.max_retries,
            retry_delay=ingestion.retry_delay,
        )

    if source == "clickhouse":
        from strategy_backtest.data.clickhouse_provider import ClickHouseDataProvider
        return ClickHouseDataProvider.from_config(config.database)

    raise ValueError(f"알 수 없는 데이터 소스: {source}")


def load_data(config: Config, provider: DataProvider, symbols: list[str]) -> TimeSeriesStore:
    """init_date ~ end_date 데이터를 한 번에 로드. 한 종목이라도 실패하면 DataUnavailable."""
    init, _, end = config.backtest.period()

    bars = {}
    for symbol in symbols:
        bars[symbol] = provider.fetch(symbol, init, end)
        logger.info(f"{symbol}: {len(bars[symbol])}봉 로드 ({init} ~ {end})")
    return TimeSeriesStore.from_bars(bars)


def run_single(
    config: Config,
    store: TimeSeriesStore,
    strategy_name: str | None = None,
    strategy_params: dict[str, Any] | None = None,
) -> BacktestResult:
    """단일 전략 백테스트 실행."""
    strategy = config.strategy.build(name=strategy_name, params=strategy_params)
    if not strategy.symbols:
        strategy.symbols = store.symbols
    logger.debug("\n" + strategy.describe())

    bt = config.backtest
    _, start, end = bt.period()
    engine = BacktestEngine(
        initial_equity=bt.initial_equity,
        commission_rate=bt.commission_rate,
        tax_rate=bt.tax_rate,
        slippage_rate=bt.slippage_rate,
        max_workers=bt.max_workers,
    )
    return engine.run_backtest(
        strategy,
        store,
        start_date=start,
        end_date=end,
    )


def save_snapshots(result: BacktestResult, out_dir: Path) -> None:
    """봉별 스냅샷과 체결 내역을 CSV로 저장."""
    out_dir.mkdir(parents=True, exist_ok=True)
    snapshot_path = out_dir / f"{result.strategy}_snapshots.csv"
    txn_path = out_dir / f"{result.strategy}_transactions.csv"
    result.snapshots.to_csv(snapshot_path, index=False)
    result.transactions.to_csv(txn_path, index=False)
    logger.info(f"스냅샷 저장: {snapshot_path}, 체결 내역 저장: {txn_path}")


def print_single_result(result: BacktestResult):
    """단일 전략 결과 출력."""
    print(f"\n[전략: {result.strategy}]")
    print(result.metrics.summary())
    print(f"\n최종 자산: {result.account.final_equity:,.2f}")

    txns = result.ledger.transactions
    buys = [t for t in txns if t.quantity > 0]
    sells = [t for t in txns if t.quantity < 0]
    print(f"총 체결 횟수: {len(txns)}")
    print(f"  매수: {len(buys)}회")
    print(f"  매도: {len(sells)}회")
    if result.dropped_intents:
        print(f"  폐기된 주문: {len(result.dropped_intents)}건")

    if sells:
        print("\n최근 매도 체결 (최대 5건):")
        for t in sells[-5:]:
            pnl = t.net_pnl
            pnl_str = f"+{pnl:,.2f}" if pnl > 0 else f"{pnl:,.2f}"
            print(
                f"  [{t.timestamp.date()}] {t.symbol} {abs(t.quantity):g}주 "
                f"@ {t.price:,.2f} -> {pnl_str} ({t.rule})"
            )


COMPARISON_COLUMNS = {
    "total_return": ("총 수익률(%)", "{:.2f}"),
    "annual_return": ("연환산(%)", "{:.2f}"),
    "sharpe_ratio": ("샤프", "{:.2f}"),
    "max_drawdown": ("MDD(%)", "{:.2f}"),
    "total_trades": ("거래수", "{:d}"),
    "win_rate": ("승률(%)", "{:.1f}"),
    "profit_factor": ("수익팩터", "{:.2f}"),
    "avg_profit": ("평균수익", "{:,.2f}"),
    "avg_loss": ("평균손실", "{:,.2f}"),
    "max_consecutive_wins": ("연속수익", "{:d}"),
    "max_consecutive_losses": ("연속손실", "{:d}"),
}


def comparison_table(results: dict[str, BacktestMetrics]) -> pd.DataFrame:
    """전략별 지표를 행=지표, 열=전략 표로 정리 (문자열 포맷 적용)."""
    names = list(results)
    rows = {
        label: [fmt.format(getattr(results[name], key)) for name in names]
        for key, (label, fmt) in COMPARISON_COLUMNS.items()
    }
    return pd.DataFrame.from_dict(rows, orient="index", columns=names)


def print_comparison(results: dict[str, BacktestMetrics], config: Config, symbols: list[str]):
    table = comparison_table(results).to_string()
    width = max(len(line) for line in table.splitlines())
    bt = config.backtest
    print("\n" + "=" * width)
    print(f"전략 비교 ({', '.join(symbols)}, {bt.start_date} ~ {bt.end_date})")
    print("=" * width)
    print(table)
    print("=" * width)


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(description="전략 백테스트 실행")
    parser.add_argument("--config", type=str, default="config.yaml", help="설정 파일 경로")
    parser.add_argument("--strategy", type=str, default=None, help="전략 프리셋 이름 (config.yaml 대신 지정)")
    parser.add_argument("-p", "--param", action="append", default=[], type=parse_param, help="파라미터 오버라이드 (예: -p fast=20)")
    parser.add_argument("--source", type=str, default="sample", choices=["sample", "yahoo", "clickhouse"], help="데이터 소스")
    parser.add_argument("--compare", nargs="+", metavar="STRATEGY", help="여러 전략 비교 (예: --compare sma_dvo ma_cross)")
    parser.add_argument("--save-snapshots", type=str, default=None, metavar="DIR", help="스냅샷/체결 CSV 저장 디렉토리")
    parser.add_argument("--list", action="store_true", help="등록된 전략 목록 출력")
    args = parser.parse_args(argv)

    # --list: 레지스트리만 보고 종료
    if args.list:
        print("\n".join(["등록된 전략:"] + [f"  - {name}" for name in list_strategies()]))
        return

    # 설정 파일이 없으면 기본값 (sma_dvo, SPY)
    config_path = Path(args.config)
    config = Config.load(config_path) if config_path.exists() else Config()
    if not config_path.exists():
        print(f"{config_path} 없음. 기본 설정으로 실행")

    setup_logger(level=config.log_level, log_dir=config.log_dir)

    symbols = config.strategy.symbols or DEFAULT_SYMBOLS

    # 데이터 로드 (한 번만). 실패하면 엔진을 만들지 않고 종료
    try:
        store = load_data(config, make_provider(config, args.source), symbols)
    except BacktestError as e:
        logger.error(f"데이터 로드 실패: {e}")
        if args.source != "sample":
            print("  --source sample 옵션으로 샘플 데이터를 사용할 수 있습니다.")
        raise SystemExit(1)

    # 같은 데이터로 전략 여러 개 실행
    if args.compare:
        results = {}
        for name in args.compare:
            logger.info(f"비교 실행: {name}")
            try:
                result = run_single(config, store, name, config.strategy.params)
            except BacktestError as e:
                logger.error(f"{name} 실행 실패: {e}")
                continue
            results[name] = result.metrics
            if args.save_snapshots:
                save_snapshots(result, Path(args.save_snapshots))
        if results:
            print_comparison(results, config, store.symbols)
        return

    # 전략 하나 + -p 오버라이드
    overrides = dict(args.param)
    if overrides:
        print(f"파라미터 오버라이드: {overrides}")

    try:
        result = run_single(config, store, args.strategy, overrides)
    except BacktestError as e:
        logger.error(f"백테스트 실패: {e}")
        raise SystemExit(1)

    print_single_result(result)
    if args.save_snapshots:
        save_snapshots(result, Path(args.save_snapshots))


if __name__ == "__main__":
    main()

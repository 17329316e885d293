"""
로깅 설정.

[ 로거 구조 ]
    strategy_backtest               ← 루트. setup_logger()가 핸들러를 붙임
      ├── strategy_backtest.backtest   (엔진 진행 상황)
      ├── strategy_backtest.execution  (체결 / 폐기 / 취소)
      ├── strategy_backtest.rules      (룰 평가)
      └── strategy_backtest.data       (데이터 조회 / 재시도)
    각 모듈은 logging.getLogger("strategy_backtest.<영역>")만 호출하고, 출력 설정은 여기서만 한다.

[ 출력 ]
    콘솔: console_level 이상 (기본 INFO)
    파일: {log_dir}/{name}_{YYYYMMDD}.log, 항상 DEBUG 이상 기록

[ 호출하는 곳 ]
    - run_backtest.py::main()
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def log_file_path(log_dir: str, name: str, day: Optional[datetime] = None) -> Path:
    """일별 로그 파일 경로."""
    day = day or datetime.now()
    return Path(log_dir) / f"{name}_{day:%Y%m%d}.log"


def setup_logger(
    name: str = "strategy_backtest",
    level: str = "INFO",
    log_dir: Optional[str] = "logs",
    console: bool = True,
) -> logging.Logger:
    """루트 로거 설정.

    다시 호출하면 기존 핸들러를 닫고 새 설정으로 교체한다 (--compare 등 반복 실행 시 중복 출력 방지).

    Args:
        name: 로거 이름
        level: 콘솔 출력 레벨 ("DEBUG", "INFO", ...)
        log_dir: 로그 디렉토리. None이면 파일 출력 없음
        console: stdout 출력 여부
    """
    console_level = logging.getLevelName(level.upper())
    if not isinstance(console_level, int):
        raise ValueError(f"알 수 없는 로그 레벨: {level}")

    logger = logging.getLogger(name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    levels = [console_level] if console else []

    if log_dir:
        path = log_file_path(log_dir, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        levels.append(logging.DEBUG)

    if console:
        stream = logging.StreamHandler(sys.stdout)
        stream.setLevel(console_level)
        stream.setFormatter(formatter)
        logger.addHandler(stream)

    logger.setLevel(min(levels) if levels else console_level)
    return logger

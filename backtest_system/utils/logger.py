"""
로깅 모듈.

[ 역할 ]
    "backtest_system" 부모 로거에 일별 파일 핸들러와 콘솔 핸들러를 붙인다.
    각 모듈은 logging.getLogger("backtest_system.<영역>")을 쓰고
    메시지는 부모 로거의 핸들러로 전파된다.
        backtest/engine.py, ledger.py → "backtest_system.backtest"
        backtest/service.py           → "backtest_system.service"
        data/providers.py             → "backtest_system.data"
        ingestion/yahoo_finance.py    → "backtest_system.ingestion"
        utils/config.py               → "backtest_system.config"

[ 로그 파일 위치 ]
    {log_dir}/{name}_{YYYYMMDD}.log (예: logs/backtest_system_20240601.log)

[ 호출하는 곳 ]
    - run_backtest.py 에서 config.yaml의 log_level/log_dir로 setup_logger() 호출
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

from backtest_system.core.errors import ConfigurationError

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logger(
    name: str = "backtest_system",
    level: str = "INFO",
    log_dir: str | None = "logs",
    console: bool = True,
) -> logging.Logger:
    """로거 설정. 이미 핸들러가 있으면 레벨만 갱신하고 그대로 반환.

    Args:
        name: 로거 이름 (하위 모듈 로거의 부모)
        level: "DEBUG" / "INFO" / "WARNING" / "ERROR"
        log_dir: 로그 파일 디렉토리. None이면 파일에 쓰지 않는다.
        console: stdout 출력 여부
    """
    level_no = logging.getLevelName(level.upper())
    if not isinstance(level_no, int):
        raise ConfigurationError("log_level", "DEBUG/INFO/WARNING/ERROR 중 하나여야 합니다", level)

    logger = logging.getLogger(name)
    logger.setLevel(level_no)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    if log_dir is not None:
        logger.addHandler(_daily_file_handler(Path(log_dir), name, formatter))
    if console:
        stream = logging.StreamHandler(sys.stdout)
        stream.setFormatter(formatter)
        logger.addHandler(stream)
    return logger


def _daily_file_handler(log_dir: Path, name: str, formatter: logging.Formatter) -> logging.FileHandler:
    log_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d")
    handler = logging.FileHandler(log_dir / f"{name}_{stamp}.log", encoding="utf-8")
    handler.setFormatter(formatter)
    return handler

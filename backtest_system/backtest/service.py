"""
백테스트 실행 서비스 모듈.

[ 역할 ]
    실행 요청(종목, 전략, 부분 설정/파라미터 오버라이드)을 받아
    데이터 조회 → 전략 생성 → 엔진 실행까지 처리하고 BacktestResult 반환.
    HTTP 계층이 있다면 이 함수의 결과(to_dict)를 그대로 응답으로 쓴다.

[ 처리 순서 - run_backtest_request() ]
    1. 전략 식별자 확인 (모르는 전략 → ConfigurationError)
    2. 기본 설정 ← 요청 config 오버라이드, 검증
    3. 전략 기본 파라미터 ← 요청 params 오버라이드, 검증
    4. DataProvider.get_ohlcv() 한 번 호출 (루프 밖)
    5. 이력이 MIN_HISTORY_BARS 미만이면 InsufficientDataError
    6. BacktestEngine.run_backtest()

[ 오류 처리 ]
    BacktestError 계열은 로그를 남기고 그대로 다시 던진다.

[ 병렬 실행 - run_batch() ]
    요청마다 독립된 엔진/원장을 쓰므로 스레드 풀에서 동시에 실행 가능.
    결과는 요청 순서대로 반환.
"""

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from backtest_system.backtest.engine import BacktestEngine
from backtest_system.backtest.result import BacktestResult
from backtest_system.core.data_provider import DataProvider
from backtest_system.core.errors import BacktestError, InsufficientDataError
from backtest_system.strategies import create_strategy, get_strategy_info
from backtest_system.utils.config import BacktestConfig

logger = logging.getLogger("backtest_system.service")

MIN_HISTORY_BARS = 100


@dataclass(frozen=True)
class BacktestRequest:
    """백테스트 실행 요청. config/params는 바꿀 값만 담는다."""
    symbol: str
    strategy: str = "ema_crossover"
    name: str | None = None
    config: dict[str, Any] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)


def run_backtest_request(
    request: BacktestRequest,
    provider: DataProvider,
    base_config: BacktestConfig | None = None,
    min_history: int = MIN_HISTORY_BARS,
) -> BacktestResult:
    """요청 하나 실행.

    Args:
        request: 실행 요청
        provider: OHLCV 데이터 제공자
        base_config: 요청 오버라이드 전 기본 설정 (없으면 BacktestConfig())
        min_history: 조회된 이력의 최소 봉 수

    Raises:
        ConfigurationError: 알 수 없는 전략, 잘못된 설정/파라미터
        InsufficientDataError: 이력 부족
        DataError: 데이터 형식 오류
    """
    try:
        info = get_strategy_info(request.strategy)
        config = (base_config or BacktestConfig()).with_overrides(request.config).validate()
        strategy = create_strategy(info.strategy_type, params=request.params)

        data = provider.get_ohlcv(request.symbol, config.start, config.end)
        if len(data) < min_history:
            raise InsufficientDataError(min_history, len(data), f"{request.symbol} 과거 데이터 부족")

        engine = BacktestEngine(config)
        return engine.run_backtest(
            strategy,
            data,
            symbol=request.symbol,
            name=request.name or f"{request.symbol} - {info.name}",
        )
    except BacktestError as e:
        logger.error(f"백테스트 실패 ({request.symbol} / {request.strategy}): {e}")
        raise


def run_batch(
    requests: list[BacktestRequest],
    provider: DataProvider,
    max_workers: int | None = None,
    base_config: BacktestConfig | None = None,
    min_history: int = MIN_HISTORY_BARS,
) -> list[BacktestResult]:
    """여러 요청을 스레드 풀에서 병렬 실행. 결과는 요청 순서대로.

    하나라도 실패하면 요청 순서상 첫 번째 실패의 예외가 전파된다.
    """
    requests = list(requests)
    if not requests:
        return []

    workers = _default_workers(max_workers, len(requests))
    logger.info(f"일괄 실행: {len(requests)}건 (워커 {workers}개)")

    if workers == 1:
        return [run_backtest_request(r, provider, base_config, min_history) for r in requests]

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = [
            executor.submit(run_backtest_request, r, provider, base_config, min_history)
            for r in requests
        ]
        return [f.result() for f in futures]


def _default_workers(max_workers: int | None, n_requests: int) -> int:
    if max_workers is None or max_workers <= 0:
        max_workers = os.cpu_count() or 1
    return max(1, min(max_workers, n_requests))

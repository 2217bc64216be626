"""
백테스팅 엔진 모듈.

[ 역할 ]
    과거 데이터에 전략을 적용하여 가상 매매를 시뮬레이션하고 성과를 측정.
    시스템의 핵심 실행 루프를 담당.

[ 실행 흐름 ]
    run_backtest() 호출 시:
        1. 설정 검증 (BacktestConfig.validate) → 실패 시 ConfigurationError
        2. OHLCV 정규화 + 설정 기간으로 필터링
        3. 봉 수 < 워밍업 + 1 이면 InsufficientDataError (루프 시작 전)
        4. 지표 전체 계산 (compute_indicators) - 각 값은 해당 봉까지의 데이터만 사용
        5. 봉 순서대로 SimulationLedger.process_bar()
           → 워밍업 이후 봉에서만 strategy.evaluate() 호출
        6. metrics.calculate_metrics()로 성과 지표 계산
        7. BacktestResult 반환

[ 의존성 ]
    - core/trading_strategy.py::TradingStrategy (전략 인터페이스)
    - backtest/ledger.py::SimulationLedger (포지션/현금/자산 곡선)
    - backtest/metrics.py::calculate_metrics() (성과 계산)

[ 호출하는 곳 ]
    - backtest/service.py::run_backtest_request() 에서 요청마다 생성 및 실행
    - 테스트에서 직접 생성

[ 동시성 ]
    엔진 인스턴스 하나는 한 스레드에서 순차 실행한다.
    서로 다른 실행은 각자 엔진/원장을 가지므로 병렬 실행 가능.
"""

import logging
import uuid
from datetime import datetime

import pandas as pd

from backtest_system.backtest.ledger import SimulationLedger
from backtest_system.backtest.metrics import calculate_metrics, calculate_monthly_returns
from backtest_system.backtest.result import BacktestResult
from backtest_system.core.data_provider import bars_from_frame, normalize_frame
from backtest_system.core.errors import InsufficientDataError
from backtest_system.core.trading_strategy import Signal, TradingStrategy
from backtest_system.indicators.technical import compute_indicators
from backtest_system.utils.config import BacktestConfig

logger = logging.getLogger("backtest_system.backtest")


class BacktestEngine:
    """백테스팅 엔진. run_backtest()로 시뮬레이션 실행."""

    def __init__(self, config: BacktestConfig | None = None):
        self.config = config or BacktestConfig()

        # 백테스트 실행 후 채워지는 결과
        self.ledger: SimulationLedger | None = None
        self.result: BacktestResult | None = None

    def run_backtest(
        self,
        strategy: TradingStrategy,
        data: pd.DataFrame,
        symbol: str,
        name: str | None = None,
    ) -> BacktestResult:
        """백테스트 실행.

        Args:
            strategy: 매매 전략 (파라미터가 이미 확정된 인스턴스)
            data: OHLCV DataFrame [date, open, high, low, close, volume]
            symbol: 종목 코드
            name: 결과 이름 (없으면 "<종목> - <전략 표시 이름>")

        Returns:
            BacktestResult

        Raises:
            ConfigurationError: 설정 검증 실패
            DataError: OHLCV 형식 오류
            InsufficientDataError: 기간 내 봉 수가 워밍업에 부족
        """
        config = self.config.validate()
        frame = self._prepare_frame(data, config)

        warmup = strategy.warmup_bars()
        required = warmup + 1
        if len(frame) < required:
            raise InsufficientDataError(
                required,
                len(frame),
                f"{symbol} {config.start_date} ~ {config.end_date}, 전략 {strategy.name}",
            )

        indicators = compute_indicators(frame, strategy.params)
        bars = bars_from_frame(frame)
        logger.info(
            f"백테스트 시작: {symbol} / {strategy.name} "
            f"{bars[0].date} ~ {bars[-1].date} ({len(bars)}봉, 워밍업 {warmup}봉)"
        )

        ledger = SimulationLedger(symbol, config, strategy.params)
        self.ledger = ledger
        last_index = len(bars) - 1
        for index, bar in enumerate(bars):
            if index >= warmup:
                signal = strategy.evaluate(index, indicators)
            else:
                signal = Signal.hold("워밍업")
            ledger.process_bar(
                index,
                bar,
                signal,
                indicators.value("atr", index),
                is_last=index == last_index,
            )

        metrics = calculate_metrics(ledger.equity_curve, ledger.trades, config)
        display_name = strategy.DISPLAY_NAME or strategy.name
        self.result = BacktestResult(
            id=str(uuid.uuid4()),
            name=name or f"{symbol} - {display_name}",
            symbol=symbol,
            strategy={
                "type": strategy.name,
                "name": display_name,
                "description": strategy.DESCRIPTION,
            },
            config=config,
            params=strategy.params,
            metrics=metrics,
            equity_curve=tuple(ledger.equity_curve),
            trade_log=tuple(ledger.trades),
            monthly_returns=calculate_monthly_returns(ledger.equity_curve, config.initial_capital),
            created_at=datetime.now(),
        )

        logger.info(
            f"백테스트 완료: {symbol} / {strategy.name} "
            f"총 수익률 {metrics.total_return:.2f}%, 거래 {metrics.total_trades}회"
        )
        return self.result

    @staticmethod
    def _prepare_frame(data: pd.DataFrame, config: BacktestConfig) -> pd.DataFrame:
        """정규화 후 설정 기간(start_date ~ end_date, 양끝 포함)으로 자른다."""
        frame = normalize_frame(data)
        mask = (frame["date"] >= config.start) & (frame["date"] <= config.end)
        return frame[mask].reset_index(drop=True)

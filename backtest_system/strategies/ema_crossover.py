"""
EMA 교차(EMA Crossover) 전략 구현.

[ 역할 ]
    core/trading_strategy.py::TradingStrategy의 구현체.
    "단기 EMA가 장기 EMA를 상향 돌파하면 매수, 하향 돌파하면 청산"
    macd_momentum.py가 교차 판정 함수(crossed_above/crossed_below)를 재사용.

[ 전략 흐름 ]
    매 봉 evaluate() 호출됨 (← backtest/engine.py에서)
        ├── 상향 교차 + RSI < entry_rsi_threshold + 거래량 비율 충족 → ENTER_LONG
        ├── 하향 교차 + allow_short → ENTER_SHORT
        ├── 하향 교차 또는 RSI > exit_rsi_threshold → EXIT
        └── 그 외 → HOLD

[ 파라미터 ]
    ema_fast_period / ema_slow_period: 단기/장기 EMA 기간
    entry_rsi_threshold: 이 값 미만일 때만 진입 (과열 구간 진입 방지)
    exit_rsi_threshold:  이 값 초과 시 청산
    volume_threshold:    당일 거래량 / 평균 거래량 최소값 (0이면 필터 없음)
"""

from backtest_system.core.trading_strategy import (
    Signal,
    SignalType,
    StrategyType,
    TradingStrategy,
)
from backtest_system.indicators.technical import IndicatorSeries
from backtest_system.strategies import register


def crossed_above(prev_a: float, prev_b: float, a: float, b: float) -> bool:
    """a가 b를 아래에서 위로 교차."""
    return prev_a <= prev_b and a > b


def crossed_below(prev_a: float, prev_b: float, a: float, b: float) -> bool:
    """a가 b를 위에서 아래로 교차."""
    return prev_a >= prev_b and a < b


def volume_confirmed(index: int, indicators: IndicatorSeries, threshold: float) -> tuple[bool, float | None]:
    """거래량 필터. threshold가 0 이하이면 항상 통과."""
    ratio = indicators.value("volume_ratio", index)
    if threshold <= 0:
        return True, ratio
    return ratio is not None and ratio >= threshold, ratio


@register(StrategyType.EMA_CROSSOVER)
class EmaCrossoverStrategy(TradingStrategy):
    """EMA 교차 전략 구현체."""

    DISPLAY_NAME = "EMA Crossover"
    DESCRIPTION = "Buy when fast EMA crosses above slow EMA with RSI and volume confirmation"
    DEFAULT_PARAMS = {
        "ema_fast_period": 9,
        "ema_slow_period": 21,
        "entry_rsi_threshold": 60,
        "exit_rsi_threshold": 75,
        "volume_threshold": 1.0,
        "atr_multiplier": 2,
        "min_holding_days": 2,
        "max_holding_days": 10,
    }
    INDICATORS = ("ema_fast", "ema_slow", "rsi", "volume_ratio")
    LOOKBACK = 1

    def evaluate(self, index: int, indicators: IndicatorSeries) -> Signal:
        fast = indicators.value("ema_fast", index)
        slow = indicators.value("ema_slow", index)
        prev_fast = indicators.value("ema_fast", index - 1)
        prev_slow = indicators.value("ema_slow", index - 1)
        current_rsi = indicators.value("rsi", index)

        if None in (fast, slow, prev_fast, prev_slow, current_rsi):
            return Signal.hold("지표 이력 부족")

        p = self.params
        volume_ok, ratio = volume_confirmed(index, indicators, p.volume_threshold)

        if crossed_above(prev_fast, prev_slow, fast, slow) and current_rsi < p.entry_rsi_threshold and volume_ok:
            strength = min(1.0, ratio / 2) if ratio is not None else 0.5
            return Signal(
                SignalType.ENTER_LONG,
                reason=f"EMA{p.ema_fast_period}/{p.ema_slow_period} 상향 교차 (RSI {current_rsi:.1f})",
                strength=strength,
            )

        bearish = crossed_below(prev_fast, prev_slow, fast, slow)
        if bearish and p.allow_short:
            return Signal(SignalType.ENTER_SHORT, reason="EMA 하향 교차 (숏 진입)", strength=1.0)

        if bearish or current_rsi > p.exit_rsi_threshold:
            reason = "EMA 하향 교차" if bearish else f"RSI 과열 ({current_rsi:.1f} > {p.exit_rsi_threshold:g})"
            return Signal(SignalType.EXIT, reason=reason, strength=1.0)

        return Signal.hold()

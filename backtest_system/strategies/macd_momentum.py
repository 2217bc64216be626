"""
MACD 모멘텀 전략 구현.

[ 역할 ]
    MACD 라인이 시그널 라인을 상향 교차하고 히스토그램이 증가할 때 매수.
    ema_crossover.py의 교차 판정 함수를 재사용.

[ 전략 흐름 ]
    매 봉 evaluate() 호출됨
        ├── MACD 상향 교차 + 히스토그램 증가 + RSI < entry_rsi_threshold → ENTER_LONG
        ├── MACD 하향 교차 + allow_short → ENTER_SHORT
        ├── MACD 하향 교차 또는 RSI < exit_rsi_threshold → EXIT
        └── 그 외 → HOLD
"""

from backtest_system.core.trading_strategy import (
    Signal,
    SignalType,
    StrategyType,
    TradingStrategy,
)
from backtest_system.indicators.technical import IndicatorSeries
from backtest_system.strategies import register
from backtest_system.strategies.ema_crossover import crossed_above, crossed_below


@register(StrategyType.MACD_MOMENTUM)
class MacdMomentumStrategy(TradingStrategy):
    """MACD 모멘텀 전략 구현체."""

    DISPLAY_NAME = "MACD Momentum"
    DESCRIPTION = "Trade MACD crossovers with histogram confirmation and RSI filter"
    DEFAULT_PARAMS = {
        "macd_fast": 12,
        "macd_slow": 26,
        "macd_signal": 9,
        "entry_rsi_threshold": 70,
        "exit_rsi_threshold": 30,
        "atr_multiplier": 2,
        "min_holding_days": 2,
        "max_holding_days": 8,
    }
    INDICATORS = ("macd", "macd_signal", "macd_hist", "rsi")
    LOOKBACK = 1

    def evaluate(self, index: int, indicators: IndicatorSeries) -> Signal:
        line = indicators.value("macd", index)
        signal_line = indicators.value("macd_signal", index)
        hist = indicators.value("macd_hist", index)
        prev_line = indicators.value("macd", index - 1)
        prev_signal = indicators.value("macd_signal", index - 1)
        prev_hist = indicators.value("macd_hist", index - 1)
        current_rsi = indicators.value("rsi", index)

        if None in (line, signal_line, hist, prev_line, prev_signal, prev_hist, current_rsi):
            return Signal.hold("지표 이력 부족")

        p = self.params
        if (
            crossed_above(prev_line, prev_signal, line, signal_line)
            and hist > prev_hist
            and current_rsi < p.entry_rsi_threshold
        ):
            return Signal(
                SignalType.ENTER_LONG,
                reason=f"MACD 상향 교차 (hist {hist:.3f})",
                strength=min(1.0, abs(hist) / 0.5),
            )

        bearish = crossed_below(prev_line, prev_signal, line, signal_line)
        if bearish and p.allow_short:
            return Signal(SignalType.ENTER_SHORT, reason="MACD 하향 교차 (숏 진입)", strength=1.0)

        if bearish or current_rsi < p.exit_rsi_threshold:
            reason = "MACD 하향 교차" if bearish else f"RSI 하락 ({current_rsi:.1f} < {p.exit_rsi_threshold:g})"
            return Signal(SignalType.EXIT, reason=reason, strength=1.0)

        return Signal.hold()

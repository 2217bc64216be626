"""
RSI 평균회귀 전략 구현.

[ 역할 ]
    과매도(RSI < rsi_oversold) 구간에서 장기 추세선 위일 때만 매수하고,
    과매수(RSI > rsi_overbought) 구간에서 청산.

[ 전략 흐름 ]
    매 봉 evaluate() 호출됨
        ├── RSI < rsi_oversold 이고 종가 > EMA(slow) × 0.98 → ENTER_LONG
        ├── RSI > rsi_overbought + allow_short → ENTER_SHORT
        ├── RSI > rsi_overbought → EXIT
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

TREND_FILTER_TOLERANCE = 0.98  # 추세선 아래 2%까지는 허용


@register(StrategyType.RSI_MEAN_REVERSION)
class RsiMeanReversionStrategy(TradingStrategy):
    """RSI 평균회귀 전략 구현체."""

    DISPLAY_NAME = "RSI Mean Reversion"
    DESCRIPTION = "Buy oversold conditions (RSI < 30), sell when RSI normalizes or becomes overbought"
    DEFAULT_PARAMS = {
        "rsi_oversold": 30,
        "rsi_overbought": 70,
        "ema_slow_period": 50,
        "atr_multiplier": 1.5,
        "min_holding_days": 1,
        "max_holding_days": 5,
    }
    INDICATORS = ("close", "rsi", "ema_slow")

    def evaluate(self, index: int, indicators: IndicatorSeries) -> Signal:
        current_rsi = indicators.value("rsi", index)
        trend = indicators.value("ema_slow", index)
        price = indicators.value("close", index)

        if None in (current_rsi, trend, price):
            return Signal.hold("지표 이력 부족")

        p = self.params
        if current_rsi < p.rsi_oversold and price > trend * TREND_FILTER_TOLERANCE:
            return Signal(
                SignalType.ENTER_LONG,
                reason=f"RSI 과매도 ({current_rsi:.0f})",
                strength=(p.rsi_oversold - current_rsi) / p.rsi_oversold if p.rsi_oversold > 0 else 0.0,
            )

        if current_rsi > p.rsi_overbought:
            strength = (current_rsi - p.rsi_overbought) / (100 - p.rsi_overbought) if p.rsi_overbought < 100 else 1.0
            if p.allow_short:
                return Signal(SignalType.ENTER_SHORT, reason=f"RSI 과매수 ({current_rsi:.0f}, 숏 진입)", strength=strength)
            return Signal(SignalType.EXIT, reason=f"RSI 과매수 ({current_rsi:.0f})", strength=strength)

        return Signal.hold()

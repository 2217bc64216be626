"""
볼린저 밴드 돌파 전략 구현.

[ 역할 ]
    종가가 상단 밴드를 거래량과 함께 돌파하면 매수, 중심선 아래로 내려오면 청산.
    롱 전용 전략 (allow_short 무시).

[ 전략 흐름 ]
    매 봉 evaluate() 호출됨
        ├── 전일 종가 <= 전일 상단, 당일 종가 > 당일 상단, 거래량 비율 충족 → ENTER_LONG
        ├── 종가 < 중심선 → EXIT
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
from backtest_system.strategies.ema_crossover import volume_confirmed


@register(StrategyType.BOLLINGER_BREAKOUT)
class BollingerBreakoutStrategy(TradingStrategy):
    """볼린저 밴드 돌파 전략 구현체."""

    DISPLAY_NAME = "Bollinger Breakout"
    DESCRIPTION = "Enter on breakouts above upper band with volume, exit at middle band or lower band"
    DEFAULT_PARAMS = {
        "bollinger_period": 20,
        "bollinger_std_dev": 2,
        "volume_threshold": 1.5,
        "atr_multiplier": 2.5,
        "min_holding_days": 1,
        "max_holding_days": 7,
    }
    INDICATORS = ("close", "bb_upper", "bb_middle", "bb_lower", "volume_ratio")
    LOOKBACK = 1

    def evaluate(self, index: int, indicators: IndicatorSeries) -> Signal:
        price = indicators.value("close", index)
        prev_price = indicators.value("close", index - 1)
        upper = indicators.value("bb_upper", index)
        prev_upper = indicators.value("bb_upper", index - 1)
        middle = indicators.value("bb_middle", index)

        if None in (price, prev_price, upper, prev_upper, middle):
            return Signal.hold("지표 이력 부족")

        volume_ok, ratio = volume_confirmed(index, indicators, self.params.volume_threshold)
        if prev_price <= prev_upper and price > upper and volume_ok:
            return Signal(
                SignalType.ENTER_LONG,
                reason=f"상단 밴드 돌파 (종가 {price:,.2f} > {upper:,.2f})",
                strength=min(1.0, ratio / 2) if ratio is not None else 0.5,
            )

        if price < middle:
            return Signal(SignalType.EXIT, reason="중심선 하회", strength=1.0)

        return Signal.hold()

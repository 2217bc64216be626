from datetime import date, timedelta

import pandas as pd
import pytest

from backtest_system.core.trading_strategy import Signal, SignalType, TradingStrategy
from backtest_system.utils.config import BacktestConfig


def _make_frame(closes, start=date(2024, 1, 1), spread=0.5, volume=1_000_000, highs=None, lows=None):
    """연속된 달력일 OHLCV. 보유 일수 = 봉 인덱스 차이."""
    n = len(closes)
    return pd.DataFrame({
        "date": [start + timedelta(days=i) for i in range(n)],
        "open": list(closes),
        "high": list(highs) if highs is not None else [c + spread for c in closes],
        "low": list(lows) if lows is not None else [c - spread for c in closes],
        "close": list(closes),
        "volume": [volume] * n,
    })


def _config_for(frame, **overrides):
    """프레임 전체 기간을 덮는 BacktestConfig. 수수료/슬리피지 기본 0."""
    values = {
        "start_date": frame["date"].iloc[0].isoformat(),
        "end_date": frame["date"].iloc[-1].isoformat(),
        "commission_rate": 0.0,
        "slippage_bps": 0.0,
    }
    values.update(overrides)
    return BacktestConfig(**values)


class AlwaysLongStrategy(TradingStrategy):
    """워밍업 이후 매 봉 롱 진입 시그널."""

    DISPLAY_NAME = "Always Long"
    INDICATORS = ("close",)
    DEFAULT_PARAMS = {"min_holding_days": 0, "max_holding_days": 1000}

    def evaluate(self, index, indicators):
        return Signal(SignalType.ENTER_LONG, reason="always")


class EnterOnceStrategy(TradingStrategy):
    """지정한 봉 인덱스에서 한 번만 롱 진입."""

    DISPLAY_NAME = "Enter Once"
    INDICATORS = ("close",)
    DEFAULT_PARAMS = {"min_holding_days": 0, "max_holding_days": 1000}

    def __init__(self, enter_at, params=None):
        super().__init__(params)
        self.enter_at = enter_at

    def evaluate(self, index, indicators):
        if index == self.enter_at:
            return Signal(SignalType.ENTER_LONG, reason="once")
        return Signal.hold()


@pytest.fixture
def make_frame():
    return _make_frame


@pytest.fixture
def config_for():
    return _config_for


@pytest.fixture
def always_long():
    return AlwaysLongStrategy


@pytest.fixture
def enter_once():
    return EnterOnceStrategy

from datetime import date

import pytest

from backtest_system.backtest.ledger import PositionSlots, SimulationLedger
from backtest_system.core.models import Bar, ExitReason, OpenPosition, Side
from backtest_system.core.trading_strategy import Signal, SignalType, StrategyParams
from backtest_system.utils.config import BacktestConfig

HOLD = Signal.hold()
LONG = Signal(SignalType.ENTER_LONG, reason="test")
SHORT = Signal(SignalType.ENTER_SHORT, reason="test")
EXIT = Signal(SignalType.EXIT, reason="test")


def _bar(day, close, high=None, low=None):
    return Bar(
        date=date(2024, 1, day),
        open=close,
        high=close + 0.5 if high is None else high,
        low=close - 0.5 if low is None else low,
        close=close,
        volume=1_000,
    )


def _ledger(min_hold=0, max_hold=10, **config):
    values = {"commission_rate": 0.0, "slippage_bps": 0.0}
    values.update(config)
    params = StrategyParams(min_holding_days=min_hold, max_holding_days=max_hold)
    return SimulationLedger("TEST", BacktestConfig(**values), params)


def _position(index=0):
    return OpenPosition(
        symbol="TEST",
        side=Side.LONG,
        entry_date=date(2024, 1, 1),
        entry_price=100.0,
        quantity=1,
        stop_price=90.0,
        target_price=120.0,
        entry_index=index,
    )


# ─── 슬롯 배열 ───────────────────────────────────────────────────────────────

def test_slots_acquire_and_release():
    slots = PositionSlots(2)
    assert slots.acquire(_position(0)) == 0
    assert slots.acquire(_position(1)) == 1
    assert slots.is_full and slots.open_count == 2
    with pytest.raises(RuntimeError):
        slots.acquire(_position(2))

    released = slots.release(0)
    assert released.entry_index == 0
    assert slots.acquire(_position(3)) == 0
    assert [p.entry_index for _, p in slots.occupied()] == [3, 1]


def test_release_empty_slot_raises():
    with pytest.raises(RuntimeError):
        PositionSlots(1).release(0)


# ─── 진입 ────────────────────────────────────────────────────────────────────

def test_long_entry_sizing_stop_and_target():
    ledger = _ledger()
    ledger.process_bar(0, _bar(1, 100.0), LONG, atr=2.0)

    (position,) = ledger.open_positions
    assert position.quantity == 100          # 10% cap on 100k
    assert position.stop_price == pytest.approx(96.0)
    assert position.target_price == pytest.approx(108.0)
    assert ledger.cash == pytest.approx(90_000.0)
    assert ledger.equity_curve[-1].equity == pytest.approx(100_000.0)
    assert ledger.equity_curve[-1].open_positions == 1


def test_percent_stop_used_when_tighter():
    ledger = _ledger(stop_loss_pct=0.02, take_profit_pct=0.05)
    ledger.process_bar(0, _bar(1, 100.0), LONG, atr=2.0)
    (position,) = ledger.open_positions
    assert position.stop_price == pytest.approx(98.0)
    assert position.target_price == pytest.approx(105.0)


def test_atr_stop_used_when_percent_stop_is_wider():
    ledger = _ledger(stop_loss_pct=0.10)
    ledger.process_bar(0, _bar(1, 100.0), LONG, atr=2.0)
    assert ledger.open_positions[0].stop_price == pytest.approx(96.0)


@pytest.mark.parametrize("atr_value", [None, 0.0])
def test_entry_skipped_without_atr(atr_value):
    ledger = _ledger()
    ledger.process_bar(0, _bar(1, 100.0), LONG, atr=atr_value)
    assert ledger.open_positions == []
    assert ledger.cash == 100_000.0


def test_entry_clipped_to_affordable_cash():
    ledger = _ledger(position_size_pct=1.0, risk_per_trade_pct=1.0, commission_rate=0.001)
    ledger.process_bar(0, _bar(1, 100.0), LONG, atr=2.0)
    (position,) = ledger.open_positions
    assert position.quantity == 999
    assert ledger.cash >= 0


def test_no_entry_on_final_bar():
    ledger = _ledger()
    ledger.process_bar(0, _bar(1, 100.0), LONG, atr=2.0, is_last=True)
    assert ledger.open_positions == []
    assert ledger.trades == []


def test_position_cap():
    ledger = _ledger(max_positions=2)
    for i in range(4):
        ledger.process_bar(i, _bar(i + 1, 100.0), LONG, atr=2.0)
    assert len(ledger.open_positions) == 2
    assert max(p.open_positions for p in ledger.equity_curve) == 2


# ─── 청산 ────────────────────────────────────────────────────────────────────

def test_stop_wins_when_stop_and_target_hit_same_bar():
    ledger = _ledger()
    ledger.process_bar(0, _bar(1, 100.0), LONG, atr=2.0)
    ledger.process_bar(1, _bar(2, 100.0, high=110.0, low=95.0), HOLD, atr=2.0)

    (trade,) = ledger.trades
    assert trade.exit_reason is ExitReason.STOP
    assert trade.exit_price == pytest.approx(96.0)
    assert trade.pnl == pytest.approx(-400.0)


def test_target_exit_at_target_price():
    ledger = _ledger()
    ledger.process_bar(0, _bar(1, 100.0), LONG, atr=2.0)
    ledger.process_bar(1, _bar(2, 107.0, high=109.0, low=97.0), EXIT, atr=2.0)

    (trade,) = ledger.trades
    assert trade.exit_reason is ExitReason.TARGET
    assert trade.exit_price == pytest.approx(108.0)
    assert trade.pnl == pytest.approx(800.0)
    assert trade.pnl_percent == pytest.approx(8.0)


def test_signal_exit_waits_for_min_holding_days():
    ledger = _ledger(min_hold=2)
    ledger.process_bar(0, _bar(1, 100.0), LONG, atr=2.0)
    ledger.process_bar(1, _bar(2, 101.0), EXIT, atr=2.0)
    assert ledger.trades == []

    ledger.process_bar(2, _bar(3, 102.0), EXIT, atr=2.0)
    (trade,) = ledger.trades
    assert trade.exit_reason is ExitReason.SIGNAL
    assert trade.holding_days == 2
    assert trade.exit_price == pytest.approx(102.0)


def test_time_exit_at_max_holding_days():
    ledger = _ledger(max_hold=3)
    ledger.process_bar(0, _bar(1, 100.0), LONG, atr=2.0)
    for i in range(1, 4):
        ledger.process_bar(i, _bar(i + 1, 100.0), HOLD, atr=2.0)

    (trade,) = ledger.trades
    assert trade.exit_reason is ExitReason.TIME
    assert trade.exit_date == date(2024, 1, 4)


def test_final_bar_closes_everything():
    ledger = _ledger(max_positions=3)
    ledger.process_bar(0, _bar(1, 100.0), LONG, atr=2.0)
    ledger.process_bar(1, _bar(2, 100.0), LONG, atr=2.0)
    ledger.process_bar(2, _bar(3, 101.0), HOLD, atr=2.0, is_last=True)

    assert ledger.open_positions == []
    assert [t.exit_reason for t in ledger.trades] == [ExitReason.TIME, ExitReason.TIME]
    assert all(t.exit_date > t.entry_date for t in ledger.trades)
    assert ledger.equity_curve[-1].equity == pytest.approx(ledger.cash)


def test_enter_short_reverses_long():
    ledger = _ledger()
    ledger.process_bar(0, _bar(1, 100.0), LONG, atr=2.0)
    ledger.process_bar(1, _bar(2, 101.0), SHORT, atr=2.0)

    (trade,) = ledger.trades
    assert trade.side is Side.LONG
    assert trade.exit_reason is ExitReason.SIGNAL
    (position,) = ledger.open_positions
    assert position.side is Side.SHORT
    assert position.stop_price > position.entry_price > position.target_price


def test_short_position_mark_to_market():
    ledger = _ledger()
    ledger.process_bar(0, _bar(1, 100.0), SHORT, atr=2.0)
    assert ledger.cash == pytest.approx(110_000.0)
    assert ledger.equity_curve[-1].equity == pytest.approx(100_000.0)

    ledger.process_bar(1, _bar(2, 95.0), HOLD, atr=2.0)
    assert ledger.equity_curve[-1].equity == pytest.approx(100_500.0)

    ledger.process_bar(2, _bar(3, 96.0), HOLD, atr=2.0, is_last=True)
    (trade,) = ledger.trades
    assert trade.pnl == pytest.approx(400.0)
    assert trade.pnl_percent == pytest.approx(4.0)
    assert ledger.cash == pytest.approx(100_400.0)


# ─── 비용 ────────────────────────────────────────────────────────────────────

def test_slippage_and_commission_accounting():
    ledger = _ledger(max_hold=1, slippage_bps=10, commission_rate=0.001, commission_per_trade=1.0)
    ledger.process_bar(0, _bar(1, 100.0), LONG, atr=2.0)

    (position,) = ledger.open_positions
    assert position.entry_price == pytest.approx(100.1)
    assert position.quantity == 99
    assert position.entry_commission == pytest.approx(1.0 + 99 * 100.1 * 0.001)

    ledger.process_bar(1, _bar(2, 105.0), HOLD, atr=2.0)
    (trade,) = ledger.trades
    exit_price = 105.0 * (1 - 0.001)
    exit_commission = 1.0 + 99 * exit_price * 0.001
    assert trade.exit_reason is ExitReason.TIME
    assert trade.exit_price == pytest.approx(exit_price)
    assert trade.commission == pytest.approx(position.entry_commission + exit_commission)
    assert trade.pnl == pytest.approx((exit_price - 100.1) * 99 - trade.commission)
    assert ledger.cash == pytest.approx(100_000.0 + trade.pnl)


def test_drawdown_tracks_running_peak():
    ledger = _ledger()
    ledger.process_bar(0, _bar(1, 100.0), LONG, atr=2.0)
    ledger.process_bar(1, _bar(2, 106.0), HOLD, atr=2.0)
    ledger.process_bar(2, _bar(3, 103.0), HOLD, atr=2.0)

    peak = 100_000.0 + 100 * 6.0
    last = ledger.equity_curve[-1]
    assert last.peak_equity == pytest.approx(peak)
    assert last.drawdown == pytest.approx((peak - (100_000.0 + 300.0)) / peak * 100)
    peaks = [p.peak_equity for p in ledger.equity_curve]
    assert peaks == sorted(peaks)

import json
from datetime import date

import pytest

from backtest_system.backtest.engine import BacktestEngine
from backtest_system.core.data_provider import normalize_frame
from backtest_system.core.errors import ConfigurationError, DataError, InsufficientDataError
from backtest_system.core.models import ExitReason
from backtest_system.data.sample import generate_sample_data
from backtest_system.indicators.technical import compute_indicators
from backtest_system.strategies import create_strategy
from backtest_system.utils.config import BacktestConfig


def _sample_frame():
    return generate_sample_data("ENGINE", date(2023, 1, 1), date(2024, 6, 30))


def _sample_config(**overrides):
    values = {"start_date": "2023-01-01", "end_date": "2024-06-30"}
    values.update(overrides)
    return BacktestConfig(**values)


def _v_shape_frame(make_frame):
    """60봉 하락 후 192봉 단조 상승 (총 252봉)."""
    closes = [160.0 - i for i in range(60)] + [102.0 + i for i in range(192)]
    return make_frame(closes)


def test_uptrend_single_entry_and_final_time_exit(make_frame, config_for):
    frame = _v_shape_frame(make_frame)
    strategy = create_strategy("ema_crossover", {
        "entry_rsi_threshold": 100,
        "exit_rsi_threshold": 100,
        "volume_threshold": 0,
        "max_holding_days": 1000,
        "reward_risk_ratio": 100,
    })
    config = config_for(frame, max_positions=1)

    result = BacktestEngine(config).run_backtest(strategy, frame, "UPTREND")

    indicators = compute_indicators(normalize_frame(frame), strategy.params)
    fast, slow = indicators.values("ema_fast"), indicators.values("ema_slow")
    crosses = [
        i for i in range(strategy.warmup_bars(), len(frame))
        if fast[i - 1] <= slow[i - 1] and fast[i] > slow[i]
    ]
    assert len(crosses) == 1
    entry_index = crosses[0]

    (trade,) = result.trade_log
    assert trade.entry_date == frame["date"].iloc[entry_index]
    assert trade.entry_price == pytest.approx(frame["close"].iloc[entry_index])
    assert trade.exit_date == frame["date"].iloc[-1]
    assert trade.exit_reason is ExitReason.TIME
    assert trade.exit_price == pytest.approx(frame["close"].iloc[-1])

    expected = trade.quantity * (trade.exit_price - trade.entry_price) / config.initial_capital * 100
    assert result.metrics.total_return > 0
    assert result.metrics.total_return == pytest.approx(expected)


def test_zero_atr_skips_entry_and_conserves_equity(make_frame, config_for, always_long):
    frame = make_frame([100.0] * 40, spread=0.0)
    config = config_for(frame)

    result = BacktestEngine(config).run_backtest(always_long(), frame, "FLAT")

    assert result.trade_log == ()
    assert all(p.equity == config.initial_capital for p in result.equity_curve)
    assert result.metrics.final_equity == config.initial_capital
    assert result.metrics.total_return == 0.0
    assert result.metrics.sharpe_ratio == 0.0
    assert result.metrics.sortino_ratio == 0.0
    assert result.metrics.profit_factor == 0.0


def test_stop_resolves_before_target(make_frame, config_for, enter_once):
    closes = [100.0] * 20
    highs = [100.5] * 20
    lows = [99.5] * 20
    # 진입 봉(13) 다음 봉이 손절가(98)와 목표가(104)를 모두 터치
    highs[14], lows[14] = 105.0, 97.0
    frame = make_frame(closes, highs=highs, lows=lows)
    strategy = enter_once(13)
    assert strategy.warmup_bars() == 13

    result = BacktestEngine(config_for(frame)).run_backtest(strategy, frame, "BOTH")

    (trade,) = result.trade_log
    assert trade.exit_reason is ExitReason.STOP
    assert trade.exit_price == pytest.approx(98.0)
    assert trade.exit_date == frame["date"].iloc[14]


def test_open_positions_never_exceed_cap(make_frame, config_for, always_long):
    closes = [100.0 + (i % 7) for i in range(80)]
    frame = make_frame(closes)
    result = BacktestEngine(config_for(frame, max_positions=2)).run_backtest(always_long(), frame, "CAP")

    counts = [p.open_positions for p in result.equity_curve]
    assert max(counts) == 2
    assert all(c <= 2 for c in counts)


def test_equity_curve_covers_every_bar():
    frame = _sample_frame()
    result = BacktestEngine(_sample_config()).run_backtest(create_strategy("ema_crossover"), frame, "ENGINE")
    assert len(result.equity_curve) == len(frame)
    assert result.equity_curve[0].date == frame["date"].iloc[0]


def test_drawdown_peak_is_non_decreasing():
    result = BacktestEngine(_sample_config()).run_backtest(
        create_strategy("rsi_mean_reversion"), _sample_frame(), "ENGINE",
    )
    curve = result.equity_curve
    for prev, cur in zip(curve, curve[1:]):
        assert cur.peak_equity >= prev.peak_equity
    assert all(p.drawdown >= 0 for p in curve)
    assert result.metrics.max_drawdown == max(p.drawdown for p in curve)


def test_cash_reconciles_with_closed_trades():
    config = _sample_config(commission_rate=0.001, commission_per_trade=1.0, slippage_bps=10)
    strategy = create_strategy("macd_momentum", {"allow_short": True})
    engine = BacktestEngine(config)
    result = engine.run_backtest(strategy, _sample_frame(), "ENGINE")

    assert engine.ledger.open_positions == []
    total_pnl = sum(t.pnl for t in result.trade_log)
    assert result.metrics.final_equity == pytest.approx(config.initial_capital + total_pnl)
    assert all(t.exit_date > t.entry_date for t in result.trade_log)
    assert result.metrics.total_commission == pytest.approx(sum(t.commission for t in result.trade_log))


def test_runs_are_deterministic():
    frame = _sample_frame()
    first = BacktestEngine(_sample_config()).run_backtest(create_strategy("ema_crossover"), frame, "ENGINE")
    second = BacktestEngine(_sample_config()).run_backtest(create_strategy("ema_crossover"), frame, "ENGINE")

    assert first.metrics == second.metrics
    assert first.trade_log == second.trade_log
    assert first.equity_curve == second.equity_curve
    assert first.monthly_returns == second.monthly_returns
    assert first.id != second.id


def test_future_bars_do_not_change_the_past():
    frame = _sample_frame()
    cutoff = 200
    mutated = frame.copy()
    for col in ("open", "high", "low", "close"):
        mutated.loc[cutoff + 1:, col] = mutated.loc[cutoff + 1:, col] * 1.5
    mutated.loc[cutoff + 1:, "volume"] = 1

    strategy = create_strategy("bollinger_breakout")
    original = BacktestEngine(_sample_config()).run_backtest(strategy, frame, "ENGINE")
    changed = BacktestEngine(_sample_config()).run_backtest(strategy, mutated, "ENGINE")

    assert original.equity_curve[: cutoff + 1] == changed.equity_curve[: cutoff + 1]
    cutoff_date = frame["date"].iloc[cutoff]
    closed_before = [t for t in original.trade_log if t.exit_date <= cutoff_date]
    assert closed_before == [t for t in changed.trade_log if t.exit_date <= cutoff_date]


def test_monthly_returns_compound_to_total():
    result = BacktestEngine(_sample_config()).run_backtest(create_strategy("ema_crossover"), _sample_frame(), "ENGINE")
    assert list(result.monthly_returns) == sorted(result.monthly_returns)
    assert list(result.monthly_returns)[0] == "2023-01"

    growth = 1.0
    for ret in result.monthly_returns.values():
        growth *= 1 + ret / 100
    assert growth == pytest.approx(result.metrics.final_equity / result.config.initial_capital)


def test_result_payload_is_json_ready():
    result = BacktestEngine(_sample_config()).run_backtest(create_strategy("ema_crossover"), _sample_frame(), "ENGINE")
    payload = json.loads(json.dumps(result.to_dict()))

    assert result.name == "ENGINE - EMA Crossover"
    assert payload["strategy"] == {
        "type": "ema_crossover",
        "name": "EMA Crossover",
        "description": result.strategy["description"],
    }
    assert payload["params"]["ema_slow_period"] == 21
    assert len(payload["equity_curve"]) == len(result.equity_curve)
    assert "총 수익률" in result.summary()


def test_insufficient_bars_rejected_before_loop(make_frame, config_for):
    frame = make_frame([100.0 + i for i in range(10)])
    engine = BacktestEngine(config_for(frame))
    with pytest.raises(InsufficientDataError) as exc_info:
        engine.run_backtest(create_strategy("ema_crossover"), frame, "SHORT")
    assert exc_info.value.required == 22
    assert exc_info.value.actual == 10
    assert engine.ledger is None


def test_no_bars_in_range(make_frame):
    frame = make_frame([100.0] * 50)
    config = BacktestConfig(start_date="2030-01-01", end_date="2030-12-31")
    with pytest.raises(InsufficientDataError) as exc_info:
        BacktestEngine(config).run_backtest(create_strategy("ema_crossover"), frame, "NONE")
    assert exc_info.value.actual == 0


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"initial_capital": 0}, "initial_capital"),
        ({"start_date": "2024-06-01", "end_date": "2024-01-01"}, "end_date"),
        ({"position_size_pct": 0}, "position_size_pct"),
        ({"risk_per_trade_pct": -0.1}, "risk_per_trade_pct"),
    ],
)
def test_invalid_config_rejected(make_frame, overrides, field):
    frame = make_frame([100.0] * 50)
    config = BacktestConfig(**{"start_date": "2024-01-01", "end_date": "2024-12-31", **overrides})
    with pytest.raises(ConfigurationError) as exc_info:
        BacktestEngine(config).run_backtest(create_strategy("ema_crossover"), frame, "BAD")
    assert exc_info.value.field == field


def test_malformed_frame_rejected(make_frame, config_for):
    frame = make_frame([100.0] * 50)
    with pytest.raises(DataError):
        BacktestEngine(config_for(frame)).run_backtest(
            create_strategy("ema_crossover"), frame.drop(columns=["volume"]), "BAD",
        )
    duplicated = frame.copy()
    duplicated.loc[1, "date"] = duplicated.loc[0, "date"]
    with pytest.raises(DataError):
        BacktestEngine(config_for(frame)).run_backtest(create_strategy("ema_crossover"), duplicated, "BAD")

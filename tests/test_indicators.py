import math

import numpy as np
import pytest

from backtest_system.core.data_provider import normalize_frame
from backtest_system.core.trading_strategy import StrategyParams
from backtest_system.indicators.technical import (
    INDICATOR_NAMES,
    IndicatorSeries,
    atr,
    bollinger_bands,
    compute_indicators,
    ema,
    first_valid_index,
    macd,
    rsi,
    sma,
    true_range,
    volume_ratio,
)


def _wavy_closes(n=120):
    return [100 + 10 * math.sin(i / 5) + i * 0.1 for i in range(n)]


def test_sma_defined_from_period_minus_one():
    result = sma(np.array([1.0, 2.0, 3.0, 4.0]), 3)
    assert np.isnan(result[:2]).all()
    assert result[2] == pytest.approx(2.0)
    assert result[3] == pytest.approx(3.0)


def test_ema_seeded_with_sma():
    result = ema(np.array([1.0, 2.0, 3.0, 4.0, 5.0]), 3)
    assert np.isnan(result[:2]).all()
    assert result[2] == pytest.approx(2.0)
    # (4 - 2) * 0.5 + 2, (5 - 3) * 0.5 + 3
    assert result[3] == pytest.approx(3.0)
    assert result[4] == pytest.approx(4.0)


def test_ema_shorter_than_period_is_all_missing():
    assert np.isnan(ema(np.array([1.0, 2.0]), 3)).all()


def test_rsi_wilder_smoothing():
    result = rsi(np.array([10.0, 11.0, 10.0, 12.0]), 2)
    assert np.isnan(result[:2]).all()
    assert result[2] == pytest.approx(50.0)
    # avg_gain = (0.5 + 2) / 2, avg_loss = (0.5 + 0) / 2 → RS 5
    assert result[3] == pytest.approx(100 - 100 / 6)


def test_rsi_edge_values():
    rising = rsi(np.arange(1.0, 20.0), 14)
    assert rising[14] == 100.0
    flat = rsi(np.full(20, 50.0), 14)
    assert flat[14] == 50.0


def test_true_range_uses_previous_close():
    tr = true_range(
        np.array([11.0, 15.0]),
        np.array([9.0, 13.0]),
        np.array([10.0, 14.0]),
    )
    assert tr[0] == pytest.approx(2.0)
    # gap up: |15 - 10| > 15 - 13
    assert tr[1] == pytest.approx(5.0)


def test_atr_wilder_smoothing():
    highs = np.array([11.0, 11.0, 11.0, 13.0])
    lows = np.array([9.0, 9.0, 9.0, 9.0])
    closes = np.array([10.0, 10.0, 10.0, 10.0])
    result = atr(highs, lows, closes, 3)
    assert np.isnan(result[:2]).all()
    assert result[2] == pytest.approx(2.0)
    assert result[3] == pytest.approx((2.0 * 2 + 4.0) / 3)


def test_macd_histogram_is_line_minus_signal():
    closes = np.array(_wavy_closes())
    line, signal, hist = macd(closes, 12, 26, 9)
    assert np.isnan(line[:25]).all() and not np.isnan(line[25])
    assert np.isnan(signal[:33]).all() and not np.isnan(signal[33])
    valid = ~np.isnan(hist)
    np.testing.assert_allclose(hist[valid], line[valid] - signal[valid])


def test_bollinger_uses_population_std():
    upper, middle, lower = bollinger_bands(np.array([1.0, 2.0, 3.0]), 3, 2.0)
    std = math.sqrt(2 / 3)
    assert middle[2] == pytest.approx(2.0)
    assert upper[2] == pytest.approx(2.0 + 2 * std)
    assert lower[2] == pytest.approx(2.0 - 2 * std)


def test_volume_ratio_missing_when_average_is_zero():
    ratio = volume_ratio(np.array([0.0, 0.0, 0.0, 30.0]), 3)
    assert np.isnan(ratio[2])
    assert ratio[3] == pytest.approx(30.0 / 10.0)


def test_indicator_series_value_returns_none_for_missing():
    series = IndicatorSeries(["d0", "d1"], {"x": np.array([np.nan, 1.5])})
    assert series.value("x", 0) is None
    assert series.value("x", 1) == 1.5
    assert series.value("x", -1) is None
    assert series.value("x", 2) is None
    assert "x" in series and len(series) == 2


def test_indicator_series_rejects_misaligned_columns():
    with pytest.raises(ValueError):
        IndicatorSeries(["d0", "d1"], {"x": np.array([1.0])})


def test_compute_indicators_has_every_column(make_frame):
    frame = normalize_frame(make_frame(_wavy_closes()))
    indicators = compute_indicators(frame, StrategyParams())
    for name in INDICATOR_NAMES:
        assert name in indicators
    assert indicators.to_frame().shape == (120, len(INDICATOR_NAMES))


def test_first_valid_index_matches_computed_values(make_frame):
    params = StrategyParams()
    frame = normalize_frame(make_frame(_wavy_closes()))
    indicators = compute_indicators(frame, params)
    for name in INDICATOR_NAMES:
        first = first_valid_index(name, params)
        values = indicators.values(name)
        assert not np.isnan(values[first]), name
        assert np.isnan(values[:first]).all(), name


def test_first_valid_index_unknown_name():
    with pytest.raises(KeyError):
        first_valid_index("vwap", StrategyParams())


def test_values_depend_only_on_past_bars(make_frame):
    params = StrategyParams()
    closes = _wavy_closes()
    cutoff = 70
    original = compute_indicators(normalize_frame(make_frame(closes)), params)

    mutated_closes = closes[: cutoff + 1] + [c * 3 for c in closes[cutoff + 1:]]
    mutated_frame = make_frame(mutated_closes)
    mutated_frame.loc[cutoff + 1:, "volume"] = 5
    mutated = compute_indicators(normalize_frame(mutated_frame), params)

    for name in INDICATOR_NAMES:
        np.testing.assert_array_equal(
            original.values(name)[: cutoff + 1],
            mutated.values(name)[: cutoff + 1],
        )

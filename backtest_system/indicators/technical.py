"""
기술적 지표 계산 모듈.

[ 역할 ]
    봉 시계열에서 EMA, RSI, ATR, MACD, 볼린저 밴드, 거래량 비율을 계산.
    compute_indicators() 가 핵심. 전략들이 공통으로 사용한다.

[ 규칙 ]
    - 모든 지표는 봉 인덱스에 정렬된 배열. 이력이 부족한 구간은 NaN(= 값 없음)
      이며 0으로 채우지 않는다. IndicatorSeries.value()는 NaN을 None으로 돌려준다.
    - 인덱스 i의 값은 0..i 봉만으로 계산된다 (미래 데이터 미사용).
    - 전체 계산은 지표당 O(n). 백테스트에서 수천 개 봉을 한 번에 처리.

[ 계산식 ]
    EMA(p)   : 처음 p개 SMA로 시작, 이후 (x - prev) * 2/(p+1) + prev
    RSI(p)   : Wilder 평활. 첫 평균은 처음 p개 변화량의 단순 평균
    ATR(p)   : Wilder 평활. TR[0] = high - low
    MACD     : EMA(fast) - EMA(slow), 시그널은 MACD 라인의 EMA
    볼린저    : SMA(p) ± k × 모표준편차

[ 호출하는 곳 ]
    - backtest/engine.py 에서 실행 시작 전에 한 번 compute_indicators() 호출
    - core/trading_strategy.py 에서 first_valid_index()로 워밍업 길이 계산
"""

from typing import Any

import numpy as np
import pandas as pd

INDICATOR_NAMES = (
    "close",
    "ema_fast",
    "ema_slow",
    "rsi",
    "atr",
    "macd",
    "macd_signal",
    "macd_hist",
    "bb_upper",
    "bb_middle",
    "bb_lower",
    "volume_ratio",
)


# ─── 개별 지표 ─────────────────────────────────────────────────────────────

def sma(values: np.ndarray, period: int) -> np.ndarray:
    """단순 이동평균. 인덱스 period-1부터 값 존재."""
    series = pd.Series(np.asarray(values, dtype=float))
    return series.rolling(window=period, min_periods=period).mean().to_numpy()


def ema(values: np.ndarray, period: int) -> np.ndarray:
    """지수 이동평균. 처음 period개의 SMA를 시작값으로 사용."""
    values = np.asarray(values, dtype=float)
    result = np.full(len(values), np.nan)
    if len(values) < period:
        return result

    multiplier = 2.0 / (period + 1)
    prev = float(values[:period].mean())
    result[period - 1] = prev
    for i in range(period, len(values)):
        prev = (values[i] - prev) * multiplier + prev
        result[i] = prev
    return result


def _rsi_from_averages(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 50.0 if avg_gain == 0 else 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def rsi(closes: np.ndarray, period: int = 14) -> np.ndarray:
    """Wilder RSI. 인덱스 period부터 값 존재."""
    closes = np.asarray(closes, dtype=float)
    result = np.full(len(closes), np.nan)
    if len(closes) <= period:
        return result

    deltas = np.diff(closes)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = float(gains[:period].mean())
    avg_loss = float(losses[:period].mean())
    result[period] = _rsi_from_averages(avg_gain, avg_loss)

    # closes[i]의 변화량은 deltas[i - 1]
    for i in range(period + 1, len(closes)):
        avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
        result[i] = _rsi_from_averages(avg_gain, avg_loss)
    return result


def true_range(highs: np.ndarray, lows: np.ndarray, closes: np.ndarray) -> np.ndarray:
    """True Range. 첫 봉은 high - low."""
    highs = np.asarray(highs, dtype=float)
    lows = np.asarray(lows, dtype=float)
    closes = np.asarray(closes, dtype=float)
    tr = highs - lows
    if len(closes) > 1:
        prev_close = closes[:-1]
        tr[1:] = np.maximum.reduce([
            highs[1:] - lows[1:],
            np.abs(highs[1:] - prev_close),
            np.abs(lows[1:] - prev_close),
        ])
    return tr


def atr(highs: np.ndarray, lows: np.ndarray, closes: np.ndarray, period: int = 14) -> np.ndarray:
    """Wilder ATR. 인덱스 period-1부터 값 존재."""
    tr = true_range(highs, lows, closes)
    result = np.full(len(tr), np.nan)
    if len(tr) < period:
        return result

    prev = float(tr[:period].mean())
    result[period - 1] = prev
    for i in range(period, len(tr)):
        prev = (prev * (period - 1) + tr[i]) / period
        result[i] = prev
    return result


def macd(
    closes: np.ndarray,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """MACD (라인, 시그널, 히스토그램).

    시그널은 라인이 정의된 구간(인덱스 slow-1 이후)에만 EMA를 적용한 뒤
    원래 인덱스에 다시 맞춘다.
    """
    line = ema(closes, fast) - ema(closes, slow)
    signal_line = np.full(len(line), np.nan)
    start = slow - 1
    if len(line) > start:
        signal_line[start:] = ema(line[start:], signal)
    return line, signal_line, line - signal_line


def bollinger_bands(
    closes: np.ndarray,
    period: int = 20,
    std_dev: float = 2.0,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """볼린저 밴드 (상단, 중심, 하단). 모표준편차 사용."""
    series = pd.Series(np.asarray(closes, dtype=float))
    middle = series.rolling(window=period, min_periods=period).mean()
    std = series.rolling(window=period, min_periods=period).std(ddof=0)
    upper = middle + std_dev * std
    lower = middle - std_dev * std
    return upper.to_numpy(), middle.to_numpy(), lower.to_numpy()


def volume_ratio(volumes: np.ndarray, window: int = 20) -> np.ndarray:
    """당일 거래량 / 최근 window일 평균 거래량. 평균이 0이면 값 없음."""
    volumes = np.asarray(volumes, dtype=float)
    avg = sma(volumes, window)
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = np.where(avg > 0, volumes / avg, np.nan)
    return ratio


# ─── 지표 묶음 ─────────────────────────────────────────────────────────────

class IndicatorSeries:
    """봉 인덱스에 정렬된 지표 배열 묶음.

    사용 예:
        indicators = compute_indicators(frame, params)
        indicators.value("rsi", 30)   # float 또는 None (이력 부족)
    """

    def __init__(self, dates: list, columns: dict[str, np.ndarray]):
        self.dates = list(dates)
        self._columns = columns
        for name, values in columns.items():
            if len(values) != len(self.dates):
                raise ValueError(f"지표 길이 불일치: {name} ({len(values)} != {len(self.dates)})")

    def __len__(self) -> int:
        return len(self.dates)

    def __contains__(self, name: str) -> bool:
        return name in self._columns

    def value(self, name: str, index: int) -> float | None:
        """index 위치의 지표 값. 이력 부족(NaN)이거나 범위 밖이면 None."""
        if index < 0 or index >= len(self.dates):
            return None
        v = self._columns[name][index]
        if np.isnan(v):
            return None
        return float(v)

    def values(self, name: str) -> np.ndarray:
        """지표 배열 사본."""
        return self._columns[name].copy()

    def to_frame(self) -> pd.DataFrame:
        """date를 인덱스로 하는 DataFrame으로 변환 (분석/디버깅용)."""
        frame = pd.DataFrame(self._columns)
        frame.index = pd.Index(self.dates, name="date")
        return frame


def compute_indicators(frame: pd.DataFrame, params: Any) -> IndicatorSeries:
    """OHLCV DataFrame에서 모든 지표 계산.

    Args:
        frame: core/data_provider.py::normalize_frame()을 거친 DataFrame
        params: StrategyParams (기간 설정)
    """
    closes = frame["close"].to_numpy(dtype=float)
    highs = frame["high"].to_numpy(dtype=float)
    lows = frame["low"].to_numpy(dtype=float)
    volumes = frame["volume"].to_numpy(dtype=float)

    macd_line, macd_signal, macd_hist = macd(closes, params.macd_fast, params.macd_slow, params.macd_signal)
    bb_upper, bb_middle, bb_lower = bollinger_bands(closes, params.bollinger_period, params.bollinger_std_dev)

    columns = {
        "close": closes,
        "ema_fast": ema(closes, params.ema_fast_period),
        "ema_slow": ema(closes, params.ema_slow_period),
        "rsi": rsi(closes, params.rsi_period),
        "atr": atr(highs, lows, closes, params.atr_period),
        "macd": macd_line,
        "macd_signal": macd_signal,
        "macd_hist": macd_hist,
        "bb_upper": bb_upper,
        "bb_middle": bb_middle,
        "bb_lower": bb_lower,
        "volume_ratio": volume_ratio(volumes, params.volume_window),
    }
    return IndicatorSeries(list(frame["date"]), columns)


def first_valid_index(name: str, params: Any) -> int:
    """지표 name이 처음 정의되는 봉 인덱스 (데이터와 무관하게 기간으로 결정)."""
    if name == "close":
        return 0
    if name == "ema_fast":
        return params.ema_fast_period - 1
    if name == "ema_slow":
        return params.ema_slow_period - 1
    if name == "rsi":
        return params.rsi_period
    if name == "atr":
        return params.atr_period - 1
    if name == "macd":
        return params.macd_slow - 1
    if name in ("macd_signal", "macd_hist"):
        return params.macd_slow - 1 + params.macd_signal - 1
    if name in ("bb_upper", "bb_middle", "bb_lower"):
        return params.bollinger_period - 1
    if name == "volume_ratio":
        return params.volume_window - 1
    raise KeyError(f"알 수 없는 지표: {name}")

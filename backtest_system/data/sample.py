"""
샘플 주가 데이터 생성 모듈.

[ 역할 ]
    외부 데이터 없이 백테스트를 돌려볼 수 있도록 합성 OHLCV를 생성.
    같은 종목 코드 → 항상 같은 데이터 (종목 코드의 CRC32를 시드로 사용).

[ 호출하는 곳 ]
    - run_backtest.py --source sample
"""

import zlib
from datetime import date

import numpy as np
import pandas as pd


def generate_sample_data(
    symbol: str,
    start_date: date,
    end_date: date,
    initial_price: float = 100.0,
    volatility: float = 0.02,
    drift: float = 0.0003,
) -> pd.DataFrame:
    """백테스트용 샘플 주가 데이터 생성 (영업일 기준).

    Returns:
        DataFrame with columns: [date, open, high, low, close, volume]
    """
    rng = np.random.default_rng(zlib.crc32(symbol.encode("utf-8")))

    dates = pd.bdate_range(start=start_date, end=end_date)
    n = len(dates)

    returns = rng.normal(drift, volatility, n)
    closes = initial_price * np.cumprod(1 + returns)
    opens = closes * (1 + rng.normal(0, 0.005, n))
    highs = np.maximum(opens, closes) * (1 + np.abs(rng.normal(0, 0.01, n)))
    lows = np.minimum(opens, closes) * (1 - np.abs(rng.normal(0, 0.01, n)))
    volumes = rng.lognormal(12, 1, n).astype(int)

    return pd.DataFrame({
        "date": [d.date() for d in dates],
        "open": np.round(opens, 2),
        "high": np.round(highs, 2),
        "low": np.round(lows, 2),
        "close": np.round(closes, 2),
        "volume": volumes,
    })

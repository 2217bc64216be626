"""
Yahoo Finance 데이터 수집 모듈.

[ 역할 ]
    yfinance로 일봉을 받아 표준 OHLCV DataFrame으로 변환.
    YahooFinanceProvider는 core/data_provider.py::DataProvider 구현체.

[ 재시도 ]
    네트워크/응답 오류 시 max_retries번까지 retry_delay초 간격으로 재시도.
    빈 응답은 재시도하지 않고 바로 InsufficientDataError.

[ 호출하는 곳 ]
    - run_backtest.py --source yahoo
"""

import logging
import time
from datetime import date, timedelta

import pandas as pd
import yfinance as yf

from backtest_system.core.data_provider import OHLCV_COLUMNS, DataProvider
from backtest_system.core.errors import DataError, InsufficientDataError

logger = logging.getLogger("backtest_system.ingestion")


def fetch_ticker_data(
    ticker: str,
    start_date: date,
    end_date: date,
    max_retries: int = 3,
    retry_delay: int = 5,
) -> pd.DataFrame:
    """
    Yahoo Finance에서 티커 데이터를 수집합니다.

    Args:
        ticker: 티커 심볼 (예: 'AAPL', '^GSPC')
        start_date: 시작 날짜
        end_date: 종료 날짜 (포함)
        max_retries: 최대 시도 횟수
        retry_delay: 재시도 간 대기 시간 (초)

    Returns:
        DataFrame with columns: [date, open, high, low, close, volume]

    Raises:
        InsufficientDataError: 해당 기간 데이터 없음
        DataError: 재시도 후에도 조회 실패
    """
    last_error: Exception | None = None
    for attempt in range(max_retries):
        try:
            logger.info(f"Fetching {ticker} from {start_date} to {end_date} (attempt {attempt + 1}/{max_retries})")

            df = yf.Ticker(ticker).history(
                start=start_date,
                end=end_date + timedelta(days=1),  # end_date 포함
                auto_adjust=False,
                actions=False,  # Dividends, Stock Splits 제외
            )
        except Exception as e:
            last_error = e
            logger.error(f"Error fetching {ticker} (attempt {attempt + 1}/{max_retries}): {e}")
            if attempt < max_retries - 1:
                logger.info(f"Retrying in {retry_delay} seconds...")
                time.sleep(retry_delay)
            continue

        if df.empty:
            raise InsufficientDataError(1, 0, f"No data found for {ticker}")

        df = _standardize(df)
        validate_data(df, ticker)
        logger.info(f"Successfully fetched {len(df)} rows for {ticker}")
        return df

    raise DataError(f"Max retries reached for {ticker}: {last_error}")


def _standardize(df: pd.DataFrame) -> pd.DataFrame:
    """yfinance 결과를 [date, open, high, low, close, volume]으로 변환."""
    df = df.reset_index()
    df = df.rename(columns={
        "Date": "date",
        "Open": "open",
        "High": "high",
        "Low": "low",
        "Close": "close",
        "Volume": "volume",
    })
    df = df[OHLCV_COLUMNS].copy()

    # date 컬럼을 datetime.date로 변환 (timezone 제거)
    if pd.api.types.is_datetime64_any_dtype(df["date"]):
        df["date"] = df["date"].dt.date
    return df


def validate_data(df: pd.DataFrame, ticker: str) -> bool:
    """
    수집한 데이터를 검증합니다. 이상치는 경고만 남기고 통과시킵니다.

    Returns:
        이상치가 없으면 True
    """
    clean = True

    null_counts = df[OHLCV_COLUMNS].isnull().sum()
    if null_counts.any():
        logger.warning(f"NULL values found in {ticker}: {null_counts[null_counts > 0].to_dict()}")
        clean = False

    for col in ("open", "high", "low", "close"):
        invalid_count = int((df[col] <= 0).sum())
        if invalid_count:
            logger.warning(f"Invalid {col} values (<=0) for {ticker}: {invalid_count} rows")
            clean = False

    invalid_count = int((df["high"] < df["low"]).sum())
    if invalid_count:
        logger.warning(f"Invalid OHLC relationship (high < low) for {ticker}: {invalid_count} rows")
        clean = False

    invalid_count = int((df["volume"] < 0).sum())
    if invalid_count:
        logger.warning(f"Invalid volume values (<0) for {ticker}: {invalid_count} rows")
        clean = False

    return clean


class YahooFinanceProvider(DataProvider):
    """yfinance 기반 데이터 제공자."""

    def __init__(self, max_retries: int = 3, retry_delay: int = 5):
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def get_ohlcv(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
    ) -> pd.DataFrame:
        """OHLCV 데이터 조회."""
        return fetch_ticker_data(
            symbol,
            start_date,
            end_date,
            max_retries=self.max_retries,
            retry_delay=self.retry_delay,
        )

    def get_tickers(self) -> list[str]:
        """Yahoo Finance는 종목 목록을 제공하지 않는다."""
        return []

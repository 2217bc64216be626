"""
과거 봉 데이터 제공 추상 클래스 정의.

[ 역할 ]
    OHLCV(시가/고가/저가/종가/거래량) 데이터를 제공하는 인터페이스와
    엔진에 넘기기 전 DataFrame을 검증/정규화하는 함수.
    데이터 소스(메모리, CSV, Yahoo Finance)에 독립적으로 엔진에 데이터 공급.

[ 구현체 ]
    - data/providers.py::InMemoryDataProvider  (DataFrame 기반, 테스트용)
    - data/providers.py::CsvDataProvider       (심볼별 CSV 파일)
    - ingestion/yahoo_finance.py::YahooFinanceProvider

[ 호출하는 곳 ]
    - backtest/service.py 에서 실행 요청마다 한 번 get_ohlcv() 호출
    - backtest/engine.py 에서 normalize_frame()/bars_from_frame() 으로 검증

[ 규칙 ]
    시뮬레이션 루프 안에서는 절대 호출하지 않는다.
    모든 이력은 실행 전에 한 번에 로드된다.
"""

from abc import ABC, abstractmethod
from datetime import date

import pandas as pd

from backtest_system.core.errors import DataError
from backtest_system.core.models import Bar

OHLCV_COLUMNS = ["date", "open", "high", "low", "close", "volume"]


class DataProvider(ABC):
    """과거 봉 데이터 제공 추상 클래스.

    모든 데이터 제공자 구현체는 이 클래스를 상속받아 아래 메서드를 구현해야 한다.
    """

    @abstractmethod
    def get_ohlcv(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
    ) -> pd.DataFrame:
        """OHLCV 데이터 조회.

        Args:
            symbol: 종목 코드
            start_date: 시작일
            end_date: 종료일

        Returns:
            DataFrame with columns: [date, open, high, low, close, volume]

        Raises:
            InsufficientDataError: 해당 기간 데이터 없음
        """
        ...

    @abstractmethod
    def get_tickers(self) -> list[str]:
        """조회 가능한 종목 코드 목록."""
        ...


def normalize_frame(df: pd.DataFrame) -> pd.DataFrame:
    """OHLCV DataFrame 검증 및 정규화.

    date 컬럼을 datetime.date로 변환하고 날짜순 정렬한다.
    필수 컬럼 누락, 날짜 중복, 가격 결측은 DataError.
    """
    missing = [c for c in OHLCV_COLUMNS if c not in df.columns]
    if missing:
        raise DataError(f"필수 컬럼 누락: {missing}")

    frame = df[OHLCV_COLUMNS].copy()
    try:
        frame["date"] = pd.to_datetime(frame["date"]).dt.date
    except (ValueError, TypeError) as e:
        raise DataError(f"날짜 변환 실패: {e}") from e
    frame = frame.sort_values("date").reset_index(drop=True)

    duplicated = frame["date"].duplicated()
    if duplicated.any():
        dup_dates = sorted({str(d) for d in frame.loc[duplicated, "date"]})
        raise DataError(f"중복된 날짜: {dup_dates[:5]}")

    price_cols = ["open", "high", "low", "close"]
    if frame[price_cols].isnull().any().any():
        raise DataError("가격 컬럼에 결측값이 있습니다.")

    frame[price_cols] = frame[price_cols].astype(float)
    frame["volume"] = frame["volume"].fillna(0).astype(float)
    return frame


def bars_from_frame(frame: pd.DataFrame) -> list[Bar]:
    """정규화된 DataFrame을 Bar 리스트로 변환."""
    return [
        Bar(
            date=row.date,
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in frame.itertuples(index=False)
    ]

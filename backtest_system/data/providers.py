"""
DataFrame / CSV 기반 데이터 제공자 구현.

[ 포함 클래스 ]
    InMemoryDataProvider - 미리 로드된 DataFrame에서 OHLCV 제공 (테스트, 샘플 데이터)
    CsvDataProvider      - {csv_dir}/{SYMBOL}.csv 파일에서 OHLCV 제공

[ 호출하는 곳 ]
    - run_backtest.py 에서 --source sample / csv 일 때 생성
    - backtest/service.py 가 DataProvider 인터페이스로 사용
    - 단위 테스트
"""

import logging
import threading
from datetime import date
from pathlib import Path

import pandas as pd

from backtest_system.core.data_provider import OHLCV_COLUMNS, DataProvider, normalize_frame
from backtest_system.core.errors import DataError, InsufficientDataError

logger = logging.getLogger("backtest_system.data")


def _slice(df: pd.DataFrame, start_date: date, end_date: date) -> pd.DataFrame:
    mask = (df["date"] >= start_date) & (df["date"] <= end_date)
    return df[mask].copy().reset_index(drop=True)


# ─── 메모리 데이터 제공자 ───────────────────────────────────────────────────

class InMemoryDataProvider(DataProvider):
    """DataFrame 기반 데이터 제공자.

    사용법:
        provider = InMemoryDataProvider()
        provider.load_data("AAPL", aapl_df)
        df = provider.get_ohlcv("AAPL", date(2024, 1, 1), date(2024, 12, 31))
    """

    def __init__(self, data: dict[str, pd.DataFrame] | None = None):
        self._data: dict[str, pd.DataFrame] = {}  # symbol → 정규화된 OHLCV DataFrame
        for symbol, df in (data or {}).items():
            self.load_data(symbol, df)

    def load_data(self, symbol: str, df: pd.DataFrame) -> None:
        """데이터 로드. 로드 시점에 정규화/검증한다."""
        self._data[symbol] = normalize_frame(df)

    def get_ohlcv(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
    ) -> pd.DataFrame:
        """OHLCV 데이터 조회."""
        if symbol not in self._data:
            raise InsufficientDataError(1, 0, f"{symbol} 데이터 없음")

        df = _slice(self._data[symbol], start_date, end_date)
        if df.empty:
            raise InsufficientDataError(1, 0, f"{symbol} {start_date} ~ {end_date} 기간 데이터 없음")
        return df

    def get_tickers(self) -> list[str]:
        """로드된 종목 목록."""
        return list(self._data.keys())


# ─── CSV 데이터 제공자 ─────────────────────────────────────────────────────

class CsvDataProvider(DataProvider):
    """심볼별 CSV 파일 데이터 제공자.

    파일 형식: date,open,high,low,close,volume (헤더 대소문자 무관)
    한 번 읽은 파일은 인스턴스 안에 보관한다. run_batch 스레드들이 한 인스턴스를
    공유하므로 파일 읽기와 보관은 _lock 아래에서 한 번만 일어난다.
    """

    def __init__(self, csv_dir: str | Path = "data"):
        self.csv_dir = Path(csv_dir)
        self._frames: dict[str, pd.DataFrame] = {}
        self._lock = threading.Lock()

    def _path(self, symbol: str) -> Path:
        return self.csv_dir / f"{symbol}.csv"

    def _load(self, symbol: str) -> pd.DataFrame:
        with self._lock:
            if symbol not in self._frames:
                self._frames[symbol] = self._read(symbol)
            return self._frames[symbol]

    def _read(self, symbol: str) -> pd.DataFrame:
        path = self._path(symbol)
        if not path.exists():
            raise InsufficientDataError(1, 0, f"CSV 파일 없음: {path}")

        try:
            df = pd.read_csv(path)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
            raise DataError(f"CSV 파싱 실패: {path}: {e}") from e

        df = df.rename(columns={c: c.strip().lower() for c in df.columns})
        frame = normalize_frame(df)
        logger.info(f"CSV 로드: {path} ({len(frame)}행)")
        return frame

    def get_ohlcv(
        self,
        symbol: str,
        start_date: date,
        end_date: date,
    ) -> pd.DataFrame:
        """OHLCV 데이터 조회."""
        df = _slice(self._load(symbol), start_date, end_date)
        if df.empty:
            raise InsufficientDataError(1, 0, f"{symbol} {start_date} ~ {end_date} 기간 데이터 없음")
        return df[OHLCV_COLUMNS]

    def get_tickers(self) -> list[str]:
        """csv_dir 안의 *.csv 파일 이름 목록."""
        if not self.csv_dir.exists():
            return []
        return sorted(p.stem for p in self.csv_dir.glob("*.csv"))

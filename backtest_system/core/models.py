"""
백테스트 데이터 모델 정의.

[ 역할 ]
    봉(Bar), 보유 포지션(OpenPosition), 청산 거래(ClosedTrade),
    자산 곡선 한 점(EquityPoint)을 정의.

[ 생명주기 ]
    Bar          - 데이터 로드 시 생성, 이후 불변
    OpenPosition - backtest/ledger.py의 슬롯에만 존재. 진입 봉 ~ 청산 봉
    ClosedTrade  - 청산 시 생성되어 거래 기록에 추가. 이후 불변
    EquityPoint  - 봉마다 하나씩 생성. 이후 불변

[ 호출하는 곳 ]
    - core/data_provider.py::bars_from_frame() 에서 Bar 생성
    - backtest/ledger.py 에서 OpenPosition/ClosedTrade/EquityPoint 생성
    - backtest/metrics.py 에서 ClosedTrade/EquityPoint 로 성과 계산
"""

from dataclasses import asdict, dataclass
from datetime import date
from enum import Enum
from typing import Any


class Side(Enum):
    """포지션 방향."""
    LONG = "long"
    SHORT = "short"

    @property
    def direction(self) -> int:
        """손익 부호. 롱 +1, 숏 -1."""
        return 1 if self is Side.LONG else -1


class ExitReason(Enum):
    """청산 사유. 같은 봉에서 여러 조건이 겹치면 STOP > TARGET > SIGNAL > TIME 순."""
    STOP = "stop"
    TARGET = "target"
    SIGNAL = "signal"
    TIME = "time"


@dataclass(frozen=True)
class Bar:
    """단일 봉(캔들) 데이터."""
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass
class OpenPosition:
    """보유 중인 가상 포지션. Ledger의 슬롯 안에서만 변경된다."""
    symbol: str
    side: Side
    entry_date: date
    entry_price: float       # 슬리피지 적용 후 체결가
    quantity: int
    stop_price: float
    target_price: float
    entry_index: int         # 진입 봉 인덱스
    entry_commission: float = 0.0

    def market_value(self, price: float) -> float:
        """평가 금액. 숏은 음수(되사야 할 부채)로 계산."""
        return self.side.direction * self.quantity * price

    def holding_days(self, current: date) -> int:
        """진입일부터 경과한 달력 일수."""
        return (current - self.entry_date).days

    def stop_hit(self, bar: Bar) -> bool:
        """봉 중 손절가 터치 여부."""
        if self.side is Side.LONG:
            return bar.low <= self.stop_price
        return bar.high >= self.stop_price

    def target_hit(self, bar: Bar) -> bool:
        """봉 중 목표가 도달 여부."""
        if self.side is Side.LONG:
            return bar.high >= self.target_price
        return bar.low <= self.target_price


@dataclass(frozen=True)
class ClosedTrade:
    """청산 완료된 거래. metrics.py에서 승률/수익 계산에 사용됨."""
    symbol: str
    side: Side
    entry_date: date
    exit_date: date
    entry_price: float
    exit_price: float
    quantity: int
    pnl: float               # 수수료 차감 후 실현 손익
    pnl_percent: float       # 가격 기준 수익률 (%)
    holding_days: int
    exit_reason: ExitReason
    commission: float = 0.0  # 진입+청산 수수료 합계

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["side"] = self.side.value
        data["exit_reason"] = self.exit_reason.value
        data["entry_date"] = self.entry_date.isoformat()
        data["exit_date"] = self.exit_date.isoformat()
        return data


@dataclass(frozen=True)
class EquityPoint:
    """봉 종가 기준 자산 곡선의 한 점."""
    date: date
    equity: float            # 현금 + 보유 포지션 평가액
    drawdown: float          # 고점 대비 하락률 (%)
    peak_equity: float       # 지금까지의 최고 자산 (감소하지 않음)
    cash: float = 0.0
    open_positions: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data

"""
포지션 사이징 모듈.

[ 역할 ]
    진입 가격, 계좌 자산, 변동성(ATR)으로 매수 수량과 손절가를 결정.

[ 규칙 - 더 빡빡한 제약이 이긴다 ]
    손절 거리   = ATR × atr_multiplier
    위험 기준   = floor(자산 × risk_pct / 손절 거리)
    비중 기준   = floor(자산 × max_position_pct / 진입가)
    최종 수량   = min(위험 기준, 비중 기준)
    입력 중 하나라도 0 이하이면 0주 결과 (예외 없음, 0 나누기 없음).

[ 호출하는 곳 ]
    - backtest/ledger.py::SimulationLedger._try_enter() 에서 진입마다 호출
"""

import math
from dataclasses import dataclass

from backtest_system.core.models import Side


@dataclass(frozen=True)
class SizeResult:
    """사이징 결과. shares가 0이면 진입하지 않는다."""
    shares: int
    stop_price: float
    risk_amount: float       # shares × stop_distance (실제 위험 금액)
    stop_distance: float

    @property
    def allowed(self) -> bool:
        return self.shares > 0


def size_position(
    equity: float,
    entry_price: float,
    atr: float,
    risk_pct: float,
    max_position_pct: float,
    atr_multiplier: float,
    side: Side = Side.LONG,
) -> SizeResult:
    """ATR 기반 수량/손절가 계산.

    Args:
        equity: 현재 평가 자산
        entry_price: 슬리피지 적용 후 진입 가격
        atr: 진입 봉의 ATR
        risk_pct: 1회 거래 최대 위험 비율 (자산 대비)
        max_position_pct: 1회 거래 최대 투입 비율 (자산 대비)
        atr_multiplier: 손절 거리 배수
        side: 롱이면 손절가가 진입가 아래, 숏이면 위

    Returns:
        SizeResult: shares=0이면 진입 불가
    """
    stop_distance = atr * atr_multiplier if atr > 0 and atr_multiplier > 0 else 0.0
    stop_price = entry_price - side.direction * stop_distance

    if equity <= 0 or entry_price <= 0 or risk_pct <= 0 or max_position_pct <= 0 or stop_distance <= 0:
        return SizeResult(shares=0, stop_price=stop_price, risk_amount=0.0, stop_distance=stop_distance)

    shares_from_risk = math.floor(equity * risk_pct / stop_distance)
    shares_from_cap = math.floor(equity * max_position_pct / entry_price)
    shares = max(0, min(shares_from_risk, shares_from_cap))

    return SizeResult(
        shares=shares,
        stop_price=stop_price,
        risk_amount=shares * stop_distance,
        stop_distance=stop_distance,
    )


def target_price(entry_price: float, stop_price: float, reward_risk_ratio: float = 2.0) -> float:
    """손익비 기준 목표가. 롱/숏 모두 손절 반대 방향으로 손절 거리 × 비율."""
    return entry_price + (entry_price - stop_price) * reward_risk_ratio

"""
백테스트 성과 지표 계산 모듈.

[ 역할 ]
    백테스트 결과(청산 거래 + 자산 곡선)를 받아 성과 지표를 계산.
    calculate_metrics() 함수가 핵심. 입력만으로 결과가 정해지는 순수 함수.

[ 계산하는 지표 ]
    - 총 수익률 / 연환산 수익률 (달력 기간 기준)
    - 샤프 비율, 소르티노 비율 (무위험 수익률 0 가정, 연 252 거래일)
    - MDD (자산 곡선에 이미 기록된 낙폭의 최대값)
    - 승률, 평균 수익/손실(%), 수익 팩터
    - 연속 승/패, 평균 보유 기간, 총 수수료
    - 월별 수익률 (calculate_monthly_returns)

[ 0 나누기 규칙 ]
    결과에 NaN/inf가 들어가지 않도록 모든 비율은 정해진 값으로 대체한다.
    - 수익률 표준편차 0       → 샤프 0
    - 음수 수익률 없음        → 소르티노 0
    - 손실 거래 없음 + 이익>0 → 수익 팩터 PROFIT_FACTOR_CAP
    - 거래 없음              → 승률/수익 팩터 0

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run_backtest() 완료 시 호출
"""

import math
from dataclasses import asdict, dataclass
from typing import Any

import numpy as np
import pandas as pd

from backtest_system.core.models import ClosedTrade, EquityPoint
from backtest_system.utils.config import BacktestConfig

TRADING_DAYS_PER_YEAR = 252
DAYS_PER_YEAR = 365.25
PROFIT_FACTOR_CAP = 999.0


@dataclass(frozen=True)
class BacktestMetrics:
    """백테스트 성과 지표. summary()로 포맷된 리포트 출력 가능."""
    total_return: float = 0.0         # 총 수익률 (%)
    annualized_return: float = 0.0    # 연환산 수익률 (%)
    sharpe_ratio: float = 0.0         # 샤프 비율 (1 이상 양호)
    sortino_ratio: float = 0.0        # 소르티노 비율 (하락 변동성만 반영)
    max_drawdown: float = 0.0         # 최대 낙폭 MDD (%)
    win_rate: float = 0.0             # 승률 (%)
    avg_win: float = 0.0              # 수익 거래 평균 수익률 (%)
    avg_loss: float = 0.0             # 손실 거래 평균 수익률 (%)
    profit_factor: float = 0.0        # 총이익 / 총손실 (1 이상이면 수익)
    total_trades: int = 0             # 청산 거래 수
    winning_trades: int = 0           # pnl > 0
    losing_trades: int = 0            # pnl <= 0
    avg_holding_days: float = 0.0     # 평균 보유 기간 (달력일)
    max_consecutive_wins: int = 0     # 최대 연속 수익
    max_consecutive_losses: int = 0   # 최대 연속 손실
    final_equity: float = 0.0         # 최종 자산
    total_commission: float = 0.0     # 총 수수료

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리 변환."""
        return asdict(self)

    def summary(self) -> str:
        """성과 요약 문자열."""
        lines = [
            "=" * 50,
            "백테스트 성과 리포트",
            "=" * 50,
            f"총 수익률:       {self.total_return:>10.2f}%",
            f"연환산 수익률:    {self.annualized_return:>10.2f}%",
            f"샤프 비율:       {self.sharpe_ratio:>10.2f}",
            f"소르티노 비율:    {self.sortino_ratio:>10.2f}",
            f"최대 낙폭(MDD):  {self.max_drawdown:>10.2f}%",
            f"최종 자산:       {self.final_equity:>10,.2f}",
            "-" * 50,
            f"총 거래 횟수:    {self.total_trades:>10d}",
            f"승률:            {self.win_rate:>10.2f}%",
            f"수익 거래:       {self.winning_trades:>10d}",
            f"손실 거래:       {self.losing_trades:>10d}",
            f"평균 수익:       {self.avg_win:>10.2f}%",
            f"평균 손실:       {self.avg_loss:>10.2f}%",
            f"수익 팩터:       {self.profit_factor:>10.2f}",
            f"평균 보유 기간:   {self.avg_holding_days:>10.1f}일",
            f"총 수수료:       {self.total_commission:>10,.2f}",
            "-" * 50,
            f"최대 연속 수익:  {self.max_consecutive_wins:>10d}",
            f"최대 연속 손실:  {self.max_consecutive_losses:>10d}",
            "=" * 50,
        ]
        return "\n".join(lines)


def calculate_metrics(
    equity_curve: list[EquityPoint],
    trades: list[ClosedTrade],
    config: BacktestConfig,
) -> BacktestMetrics:
    """성과 지표 계산. engine.py에서 백테스트 완료 후 호출됨.

    Args:
        equity_curve: 봉마다 기록된 EquityPoint (날짜 오름차순)
        trades: 청산 순서대로 기록된 거래
        config: 초기 자금 참조용
    """
    initial = float(config.initial_capital)
    if not equity_curve:
        return BacktestMetrics(final_equity=initial)

    equities = np.array([p.equity for p in equity_curve], dtype=float)
    final_equity = float(equities[-1])

    # ─── 수익률 ──────────────────────────────────────────────────────────
    total_return = (final_equity - initial) / initial * 100
    span_days = (equity_curve[-1].date - equity_curve[0].date).days
    annualized_return = _annualized_return(initial, final_equity, span_days)

    # ─── 샤프 / 소르티노 ─────────────────────────────────────────────────
    # 첫 수익률은 초기 자금 대비
    previous = np.concatenate(([initial], equities[:-1]))
    with np.errstate(divide="ignore", invalid="ignore"):
        returns = np.where(previous > 0, (equities - previous) / previous, 0.0)

    sharpe = 0.0
    sortino = 0.0
    if len(returns) > 0:
        mean = float(np.mean(returns))
        std = float(np.std(returns))
        if std > 0:
            sharpe = mean / std * math.sqrt(TRADING_DAYS_PER_YEAR)
        negatives = returns[returns < 0]
        if len(negatives) > 0:
            downside = float(np.sqrt(np.mean(negatives ** 2)))
            if downside > 0:
                sortino = mean / downside * math.sqrt(TRADING_DAYS_PER_YEAR)

    # ─── MDD ─────────────────────────────────────────────────────────────
    max_drawdown = max(p.drawdown for p in equity_curve)

    # ─── 거래 기반 지표 ──────────────────────────────────────────────────
    trade_stats = _trade_statistics(trades)

    return BacktestMetrics(
        total_return=_finite(total_return),
        annualized_return=_finite(annualized_return),
        sharpe_ratio=_finite(sharpe),
        sortino_ratio=_finite(sortino),
        max_drawdown=_finite(max_drawdown),
        final_equity=final_equity,
        **trade_stats,
    )


def _annualized_return(initial: float, final: float, span_days: int) -> float:
    """(최종/초기)^(365.25/일수) - 1, 퍼센트. 기간 0이면 0, 자산 소진이면 -100."""
    if span_days <= 0:
        return 0.0
    if final <= 0:
        return -100.0
    try:
        return ((final / initial) ** (DAYS_PER_YEAR / span_days) - 1) * 100
    except OverflowError:
        return 0.0


def _trade_statistics(trades: list[ClosedTrade]) -> dict[str, Any]:
    """승률, 평균 손익, 수익 팩터, 연속 승패 등 거래 기반 지표."""
    if not trades:
        return {}

    winners = [t for t in trades if t.pnl > 0]
    losers = [t for t in trades if t.pnl <= 0]

    gross_profit = sum(t.pnl for t in winners)
    gross_loss = abs(sum(t.pnl for t in losers))
    if gross_loss > 0:
        profit_factor = gross_profit / gross_loss
    elif gross_profit > 0:
        profit_factor = PROFIT_FACTOR_CAP
    else:
        profit_factor = 0.0

    # 연속 승패
    consecutive_wins = 0
    consecutive_losses = 0
    max_wins = 0
    max_losses = 0
    for t in trades:
        if t.pnl > 0:
            consecutive_wins += 1
            consecutive_losses = 0
            max_wins = max(max_wins, consecutive_wins)
        else:
            consecutive_losses += 1
            consecutive_wins = 0
            max_losses = max(max_losses, consecutive_losses)

    return {
        "win_rate": len(winners) / len(trades) * 100,
        "avg_win": sum(t.pnl_percent for t in winners) / len(winners) if winners else 0.0,
        "avg_loss": sum(t.pnl_percent for t in losers) / len(losers) if losers else 0.0,
        "profit_factor": _finite(profit_factor),
        "total_trades": len(trades),
        "winning_trades": len(winners),
        "losing_trades": len(losers),
        "avg_holding_days": sum(t.holding_days for t in trades) / len(trades),
        "max_consecutive_wins": max_wins,
        "max_consecutive_losses": max_losses,
        "total_commission": sum(t.commission for t in trades),
    }


def _finite(value: float) -> float:
    return float(value) if math.isfinite(value) else 0.0


def calculate_monthly_returns(equity_curve: list[EquityPoint], initial_capital: float) -> dict[str, float]:
    """월별 수익률 (%). 키는 "YYYY-MM".

    각 월 마지막 자산을 전월 마지막 자산(첫 달은 초기 자금)과 비교한다.
    """
    if not equity_curve:
        return {}

    series = pd.Series(
        [p.equity for p in equity_curve],
        index=pd.to_datetime([p.date for p in equity_curve]),
    )
    month_end = series.groupby(series.index.to_period("M")).last()

    monthly: dict[str, float] = {}
    previous = float(initial_capital)
    for period, equity in month_end.items():
        change = (equity - previous) / previous * 100 if previous > 0 else 0.0
        monthly[str(period)] = _finite(change)
        previous = float(equity)
    return monthly

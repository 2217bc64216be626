"""
백테스트 결과 모델.

[ 역할 ]
    한 번의 실행 결과를 묶는 불변 객체.
    실제 사용된 설정/파라미터(기본값+오버라이드 적용 후), 성과 지표,
    자산 곡선, 거래 기록, 월별 수익률을 담는다.

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run_backtest() 가 생성
    - run_backtest.py 에서 summary() 출력, to_dict()로 JSON 저장
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from backtest_system.backtest.metrics import BacktestMetrics
from backtest_system.core.models import ClosedTrade, EquityPoint
from backtest_system.core.trading_strategy import StrategyParams
from backtest_system.utils.config import BacktestConfig


@dataclass(frozen=True)
class BacktestResult:
    """백테스트 실행 결과. to_dict()는 HTTP 응답으로 그대로 쓸 수 있는 형태."""
    id: str
    name: str
    symbol: str
    strategy: dict[str, str]                 # type / name / description
    config: BacktestConfig
    params: StrategyParams
    metrics: BacktestMetrics
    equity_curve: tuple[EquityPoint, ...]
    trade_log: tuple[ClosedTrade, ...]
    monthly_returns: dict[str, float] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        """JSON 직렬화 가능한 딕셔너리."""
        return {
            "id": self.id,
            "name": self.name,
            "symbol": self.symbol,
            "strategy": dict(self.strategy),
            "config": self.config.to_dict(),
            "params": self.params.to_dict(),
            "metrics": self.metrics.to_dict(),
            "equity_curve": [p.to_dict() for p in self.equity_curve],
            "trades": [t.to_dict() for t in self.trade_log],
            "monthly_returns": dict(self.monthly_returns),
            "created_at": self.created_at.isoformat(),
        }

    def summary(self) -> str:
        """헤더 + 성과 리포트 + 월별 수익률."""
        lines = [
            f"[{self.name}] {self.strategy.get('name', '')} / {self.symbol}",
            f"기간: {self.config.start_date} ~ {self.config.end_date}, "
            f"초기 자금: {self.config.initial_capital:,.0f}",
            self.metrics.summary(),
        ]
        if self.monthly_returns:
            lines.append("월별 수익률:")
            for month, ret in self.monthly_returns.items():
                lines.append(f"  {month}: {ret:>8.2f}%")
        return "\n".join(lines)

"""
시뮬레이션 원장(Ledger) 모듈.

[ 역할 ]
    봉 하나씩 시그널을 받아 가상 포지션을 열고/닫고, 현금과 자산 곡선을 관리.
    backtest/engine.py가 소유하며 실행마다 새로 만든다 (실행 간 공유 상태 없음).

[ 봉 처리 순서 - process_bar() ]
    1. 보유 포지션 청산 판정 (우선순위 고정)
         a. 손절가 터치 (롱: low <= stop)       → STOP   @ 손절가
         b. 목표가 도달 (롱: high >= target)    → TARGET @ 목표가
         c. 청산 시그널 (min_holding_days 이후) → SIGNAL @ 종가
         d. 보유 일수 >= max_holding_days       → TIME   @ 종가
       한 봉에서 여러 조건이 동시에 성립하면 a > b > c > d.
       청산가에는 불리한 방향 슬리피지와 수수료가 적용된다.
    2. 진입 시그널이면 빈 슬롯이 있을 때 포지션 사이징 후 진입 (종가 + 슬리피지)
       마지막 봉에서는 진입하지 않는다.
    3. 마지막 봉이면 남은 포지션 전부 종가로 TIME 청산
    4. 종가 기준 평가 자산과 낙폭을 EquityPoint로 기록

[ 시그널 해석 ]
    EXIT         → 모든 보유 포지션 청산 대상
    ENTER_SHORT  → 롱 포지션 청산 대상 + 숏 진입 시도
    ENTER_LONG   → 숏 포지션 청산 대상 + 롱 진입 시도

[ 불변 조건 ]
    - 보유 포지션 수 <= max_positions (슬롯 배열 크기로 보장)
    - equity = cash + Σ 포지션 평가액
    - 모든 청산 거래의 청산일 > 진입일
"""

import logging
import math

from backtest_system.core.models import (
    Bar,
    ClosedTrade,
    EquityPoint,
    ExitReason,
    OpenPosition,
    Side,
)
from backtest_system.core.trading_strategy import Signal, SignalType, StrategyParams
from backtest_system.risk.position_sizing import size_position, target_price
from backtest_system.utils.config import BacktestConfig

logger = logging.getLogger("backtest_system.backtest")


class PositionSlots:
    """고정 크기 포지션 슬롯 배열. 크기가 곧 동시 보유 한도."""

    def __init__(self, capacity: int):
        self._slots: list[OpenPosition | None] = [None] * capacity

    @property
    def capacity(self) -> int:
        return len(self._slots)

    @property
    def open_count(self) -> int:
        return sum(1 for p in self._slots if p is not None)

    @property
    def is_full(self) -> bool:
        return all(p is not None for p in self._slots)

    def acquire(self, position: OpenPosition) -> int:
        """빈 슬롯 중 가장 앞 번호에 포지션 배치. 슬롯 번호 반환."""
        for slot, current in enumerate(self._slots):
            if current is None:
                self._slots[slot] = position
                return slot
        raise RuntimeError("빈 슬롯이 없습니다.")

    def release(self, slot: int) -> OpenPosition:
        """슬롯 비우고 들어있던 포지션 반환."""
        position = self._slots[slot]
        if position is None:
            raise RuntimeError(f"슬롯 {slot}이 비어 있습니다.")
        self._slots[slot] = None
        return position

    def occupied(self) -> list[tuple[int, OpenPosition]]:
        """(슬롯 번호, 포지션) 목록. 슬롯 번호 순."""
        return [(slot, p) for slot, p in enumerate(self._slots) if p is not None]


class SimulationLedger:
    """가상 매매 원장. process_bar()를 봉 순서대로 호출한다."""

    def __init__(self, symbol: str, config: BacktestConfig, params: StrategyParams):
        self.symbol = symbol
        self.config = config
        self.params = params

        self.cash: float = float(config.initial_capital)
        self.slots = PositionSlots(config.max_positions)
        self.trades: list[ClosedTrade] = []           # 청산 순서대로 추가
        self.equity_curve: list[EquityPoint] = []     # 봉마다 하나
        self._peak_equity: float = float(config.initial_capital)
        self._slippage = config.slippage_bps / 10_000

    # ─── 봉 처리 ─────────────────────────────────────────────────────────

    def process_bar(
        self,
        index: int,
        bar: Bar,
        signal: Signal,
        atr: float | None,
        is_last: bool = False,
    ) -> None:
        """봉 하나 처리: 청산 → 진입 → (마지막 봉이면 강제 청산) → 자산 기록."""
        self._process_exits(index, bar, signal)

        if signal.is_entry and not is_last:
            self._try_enter(index, bar, signal, atr)

        if is_last:
            self.close_all(index, bar, ExitReason.TIME)

        self._record_equity(bar)

    def close_all(self, index: int, bar: Bar, reason: ExitReason) -> None:
        """보유 포지션 전부 종가로 청산."""
        for slot, position in self.slots.occupied():
            if position.entry_index >= index:
                continue
            self._close(slot, index, bar, bar.close, reason)

    def mark_to_market(self, price: float) -> float:
        """현금 + 보유 포지션 평가액."""
        return self.cash + sum(p.market_value(price) for _, p in self.slots.occupied())

    @property
    def open_positions(self) -> list[OpenPosition]:
        return [p for _, p in self.slots.occupied()]

    # ─── 청산 ────────────────────────────────────────────────────────────

    def _process_exits(self, index: int, bar: Bar, signal: Signal) -> None:
        for slot, position in self.slots.occupied():
            if position.entry_index >= index:
                continue
            decision = self._exit_decision(position, bar, signal)
            if decision is not None:
                price, reason = decision
                self._close(slot, index, bar, price, reason)

    def _exit_decision(
        self,
        position: OpenPosition,
        bar: Bar,
        signal: Signal,
    ) -> tuple[float, ExitReason] | None:
        """청산 가격과 사유. 우선순위 STOP > TARGET > SIGNAL > TIME."""
        if position.stop_hit(bar):
            return position.stop_price, ExitReason.STOP
        if position.target_hit(bar):
            return position.target_price, ExitReason.TARGET

        days_held = position.holding_days(bar.date)
        if self._signal_exits(position, signal) and days_held >= self.params.min_holding_days:
            return bar.close, ExitReason.SIGNAL
        if days_held >= self.params.max_holding_days:
            return bar.close, ExitReason.TIME
        return None

    @staticmethod
    def _signal_exits(position: OpenPosition, signal: Signal) -> bool:
        if signal.signal_type is SignalType.EXIT:
            return True
        if signal.signal_type is SignalType.ENTER_SHORT:
            return position.side is Side.LONG
        if signal.signal_type is SignalType.ENTER_LONG:
            return position.side is Side.SHORT
        return False

    def _close(self, slot: int, index: int, bar: Bar, raw_price: float, reason: ExitReason) -> None:
        position = self.slots.release(slot)
        exit_price = self._fill_price(raw_price, position.side, opening=False)
        notional = exit_price * position.quantity
        exit_commission = self._commission(notional)

        if position.side is Side.LONG:
            self.cash += notional - exit_commission
        else:
            self.cash -= notional + exit_commission

        direction = position.side.direction
        gross = direction * (exit_price - position.entry_price) * position.quantity
        pnl = gross - position.entry_commission - exit_commission
        pnl_percent = direction * (exit_price - position.entry_price) / position.entry_price * 100

        trade = ClosedTrade(
            symbol=position.symbol,
            side=position.side,
            entry_date=position.entry_date,
            exit_date=bar.date,
            entry_price=position.entry_price,
            exit_price=exit_price,
            quantity=position.quantity,
            pnl=pnl,
            pnl_percent=pnl_percent,
            holding_days=position.holding_days(bar.date),
            exit_reason=reason,
            commission=position.entry_commission + exit_commission,
        )
        self.trades.append(trade)
        logger.debug(
            f"[{bar.date}] 청산({reason.value}): {position.side.value} {position.quantity}주 "
            f"@ {exit_price:,.2f} (진입 {position.entry_price:,.2f}) → 손익 {pnl:+,.2f}"
        )

    # ─── 진입 ────────────────────────────────────────────────────────────

    def _try_enter(self, index: int, bar: Bar, signal: Signal, atr: float | None) -> None:
        side = Side.LONG if signal.signal_type is SignalType.ENTER_LONG else Side.SHORT

        if self.slots.is_full:
            logger.debug(f"[{bar.date}] 진입 생략: 최대 포지션 수 도달 ({self.slots.capacity})")
            return
        if atr is None or atr <= 0:
            logger.debug(f"[{bar.date}] 진입 생략: ATR 없음 또는 0")
            return

        entry_price = self._fill_price(bar.close, side, opening=True)
        equity = self.mark_to_market(bar.close)
        sized = size_position(
            equity=equity,
            entry_price=entry_price,
            atr=atr,
            risk_pct=self.config.risk_per_trade_pct,
            max_position_pct=self.config.position_size_pct,
            atr_multiplier=self.params.atr_multiplier,
            side=side,
        )

        shares = sized.shares
        if side is Side.LONG and shares > 0:
            shares = min(shares, self._affordable_shares(entry_price))
        if shares < 1:
            logger.debug(f"[{bar.date}] 진입 생략: 사이징 결과 0주 (자산 {equity:,.2f}, ATR {atr:.4f})")
            return

        stop = sized.stop_price
        if self.config.stop_loss_pct is not None:
            pct_stop = entry_price * (1 - side.direction * self.config.stop_loss_pct)
            stop = max(stop, pct_stop) if side is Side.LONG else min(stop, pct_stop)

        if self.config.take_profit_pct is not None:
            target = entry_price * (1 + side.direction * self.config.take_profit_pct)
        else:
            target = target_price(entry_price, sized.stop_price, self.params.reward_risk_ratio)

        notional = entry_price * shares
        commission = self._commission(notional)
        if side is Side.LONG:
            self.cash -= notional + commission
        else:
            self.cash += notional - commission

        position = OpenPosition(
            symbol=self.symbol,
            side=side,
            entry_date=bar.date,
            entry_price=entry_price,
            quantity=shares,
            stop_price=stop,
            target_price=target,
            entry_index=index,
            entry_commission=commission,
        )
        slot = self.slots.acquire(position)
        logger.debug(
            f"[{bar.date}] 진입: {side.value} {shares}주 @ {entry_price:,.2f} "
            f"(손절 {stop:,.2f}, 목표 {target:,.2f}, 슬롯 {slot}) - {signal.reason}"
        )

    def _affordable_shares(self, price: float) -> int:
        """수수료 포함해 현금으로 살 수 있는 최대 수량."""
        budget = self.cash - self.config.commission_per_trade
        unit_cost = price * (1 + self.config.commission_rate)
        if budget <= 0 or unit_cost <= 0:
            return 0
        return math.floor(budget / unit_cost)

    # ─── 체결 비용 ──────────────────────────────────────────────────────

    def _fill_price(self, price: float, side: Side, opening: bool) -> float:
        """불리한 방향 슬리피지 적용. 매수 체결은 위로, 매도 체결은 아래로."""
        buying = (side is Side.LONG) == opening
        if buying:
            return price * (1 + self._slippage)
        return price * (1 - self._slippage)

    def _commission(self, notional: float) -> float:
        return self.config.commission_per_trade + notional * self.config.commission_rate

    # ─── 자산 기록 ──────────────────────────────────────────────────────

    def _record_equity(self, bar: Bar) -> None:
        equity = self.mark_to_market(bar.close)
        self._peak_equity = max(self._peak_equity, equity)
        drawdown = (self._peak_equity - equity) / self._peak_equity * 100 if self._peak_equity > 0 else 0.0
        self.equity_curve.append(EquityPoint(
            date=bar.date,
            equity=equity,
            drawdown=drawdown,
            peak_equity=self._peak_equity,
            cash=self.cash,
            open_positions=self.slots.open_count,
        ))

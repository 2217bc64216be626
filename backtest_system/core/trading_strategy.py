"""
매매 전략 추상 클래스 및 전략 파라미터 정의.

[ 역할 ]
    지표 시계열을 받아 봉마다 진입/청산/홀드 시그널을 생성하는 인터페이스.
    전략 파라미터(StrategyParams)의 기본값 병합과 검증도 여기서 담당.

[ 구현체 ]
    - strategies/ema_crossover.py::EmaCrossoverStrategy
    - strategies/rsi_mean_reversion.py::RsiMeanReversionStrategy
    - strategies/macd_momentum.py::MacdMomentumStrategy
    - strategies/bollinger_breakout.py::BollingerBreakoutStrategy

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run_backtest()에서
      봉마다 evaluate()를 호출하여 시그널을 받아 Ledger에 전달

[ 데이터 흐름 ]
    IndicatorSeries + 봉 인덱스 → evaluate() → Signal 반환
    evaluate()는 params와 인덱스 i 이하의 지표 값만 사용하는 순수 함수여야 한다.
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from typing import Any, ClassVar

from backtest_system.core.errors import ConfigurationError
from backtest_system.indicators.technical import IndicatorSeries, first_valid_index


class StrategyType(Enum):
    """지원하는 전략 목록. strategies/__init__.py의 레지스트리 키."""
    EMA_CROSSOVER = "ema_crossover"
    RSI_MEAN_REVERSION = "rsi_mean_reversion"
    MACD_MOMENTUM = "macd_momentum"
    BOLLINGER_BREAKOUT = "bollinger_breakout"


class SignalType(Enum):
    """전략이 반환하는 시그널 종류."""
    ENTER_LONG = "enter_long"
    ENTER_SHORT = "enter_short"
    EXIT = "exit"
    HOLD = "hold"


@dataclass(frozen=True)
class Signal:
    """evaluate()의 반환값. Ledger에 전달되어 진입/청산으로 변환됨."""
    signal_type: SignalType
    reason: str = ""         # 시그널 발생 사유 (로깅용)
    strength: float = 0.0    # 0~1, 참고용

    @classmethod
    def hold(cls, reason: str = "") -> "Signal":
        return cls(SignalType.HOLD, reason=reason)

    @property
    def is_entry(self) -> bool:
        return self.signal_type in (SignalType.ENTER_LONG, SignalType.ENTER_SHORT)


@dataclass(frozen=True)
class StrategyParams:
    """전략 파라미터. 실행 시작 전에 기본값 병합과 검증을 마친 뒤 변경되지 않는다."""
    entry_rsi_threshold: float = 60.0   # 진입 시 RSI 상한
    exit_rsi_threshold: float = 75.0    # RSI 청산 기준
    ema_fast_period: int = 9
    ema_slow_period: int = 21
    atr_multiplier: float = 2.0         # 손절 거리 = ATR × 배수
    volume_threshold: float = 1.0       # 거래량 / 평균 거래량 최소값
    min_holding_days: int = 2           # 시그널 청산 전 최소 보유 일수
    max_holding_days: int = 10          # 시간 청산 기준 일수
    rsi_period: int = 14
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    atr_period: int = 14
    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9
    bollinger_period: int = 20
    bollinger_std_dev: float = 2.0
    volume_window: int = 20             # 평균 거래량 기간
    reward_risk_ratio: float = 2.0      # 목표가 = 손절 거리 × 비율
    allow_short: bool = False

    @classmethod
    def field_names(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    def with_overrides(self, overrides: dict[str, Any] | None) -> "StrategyParams":
        """오버라이드 적용한 새 인스턴스 반환. 알 수 없는 키는 ConfigurationError."""
        if not overrides:
            return self
        known = {f.name: f for f in fields(self)}
        converted: dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in known:
                raise ConfigurationError(key, f"알 수 없는 전략 파라미터. 사용 가능: {', '.join(known)}")
            converted[key] = _coerce(key, known[key].type, value)
        return replace(self, **converted)

    def validate(self) -> "StrategyParams":
        """파라미터 검증. 통과하면 self 반환."""
        for name in ("ema_fast_period", "ema_slow_period", "rsi_period", "atr_period",
                     "macd_fast", "macd_slow", "macd_signal", "bollinger_period", "volume_window"):
            if getattr(self, name) < 1:
                raise ConfigurationError(name, "기간은 1 이상이어야 합니다", getattr(self, name))
        if self.ema_fast_period >= self.ema_slow_period:
            raise ConfigurationError("ema_fast_period", "ema_slow_period보다 작아야 합니다", self.ema_fast_period)
        if self.macd_fast >= self.macd_slow:
            raise ConfigurationError("macd_fast", "macd_slow보다 작아야 합니다", self.macd_fast)
        for name in ("entry_rsi_threshold", "exit_rsi_threshold", "rsi_oversold", "rsi_overbought"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise ConfigurationError(name, "0~100 범위여야 합니다", value)
        for name in ("atr_multiplier", "reward_risk_ratio", "bollinger_std_dev"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(name, "0보다 커야 합니다", getattr(self, name))
        if self.volume_threshold < 0:
            raise ConfigurationError("volume_threshold", "0 이상이어야 합니다", self.volume_threshold)
        if self.max_holding_days < 1:
            raise ConfigurationError("max_holding_days", "1 이상이어야 합니다", self.max_holding_days)
        if not 0 <= self.min_holding_days <= self.max_holding_days:
            raise ConfigurationError(
                "min_holding_days", "0 이상, max_holding_days 이하여야 합니다", self.min_holding_days,
            )
        return self

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _coerce(key: str, type_name: Any, value: Any) -> Any:
    """YAML/CLI 에서 들어온 값을 필드 타입으로 변환."""
    type_name = getattr(type_name, "__name__", type_name)
    try:
        if type_name == "bool":
            if isinstance(value, str):
                return value.strip().lower() in ("true", "yes", "1")
            return bool(value)
        if type_name == "int":
            if isinstance(value, float) and not value.is_integer():
                raise ValueError(value)
            return int(value)
        return float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(key, f"{type_name} 타입이어야 합니다", value) from None


def resolve_params(*layers: dict[str, Any] | None) -> StrategyParams:
    """기본값 ← 전략 기본값 ← 사용자 오버라이드 순으로 병합 후 검증."""
    params = StrategyParams()
    for layer in layers:
        params = params.with_overrides(layer)
    return params.validate()


class TradingStrategy(ABC):
    """매매 전략 추상 클래스.

    새 전략을 만들려면 이 클래스를 상속받아 다음을 구현하면 된다:
    - INDICATORS: evaluate()가 읽는 지표 이름들
    - evaluate(): 봉 인덱스의 시그널 생성
    LOOKBACK은 직전 봉 값을 비교(교차 판정)하는 전략이면 1.
    """

    strategy_type: ClassVar[StrategyType | None] = None   # @register가 설정
    DEFAULT_PARAMS: ClassVar[dict[str, Any]] = {}
    DISPLAY_NAME: ClassVar[str] = ""
    DESCRIPTION: ClassVar[str] = ""
    INDICATORS: ClassVar[tuple[str, ...]] = ()
    LOOKBACK: ClassVar[int] = 0

    def __init__(self, params: StrategyParams | dict[str, Any] | None = None):
        if isinstance(params, StrategyParams):
            self.params = params.validate()
        else:
            self.params = resolve_params(self.DEFAULT_PARAMS, params)

    @property
    def name(self) -> str:
        if self.strategy_type is None:
            return type(self).__name__
        return self.strategy_type.value

    def warmup_bars(self) -> int:
        """시그널 평가를 시작할 수 있는 첫 봉 인덱스.

        사이징에 쓰는 ATR도 항상 포함한다.
        """
        names = set(self.INDICATORS) | {"atr"}
        return max(first_valid_index(n, self.params) for n in names) + self.LOOKBACK

    @abstractmethod
    def evaluate(self, index: int, indicators: IndicatorSeries) -> Signal:
        """봉 인덱스 index의 시그널 생성.

        Args:
            index: 평가할 봉 인덱스 (warmup_bars() 이상)
            indicators: compute_indicators()의 결과

        Returns:
            Signal: 진입/청산/홀드 시그널
        """
        ...

"""
설정 관리 모듈.

[ 역할 ]
    YAML/JSON 설정 파일을 읽어 Config로 만들고, 엔진용 BacktestConfig를 검증한다.
    BacktestConfig는 불변이며 요청별 변경은 with_overrides()로 새 객체를 만든다.

[ 설정 파일 구조 (config.yaml) ]
    strategy:         → StrategyConfig (전략 이름, 종목, 파라미터 오버라이드)
    backtest:         → BacktestConfig (자본금, 수수료, 슬리피지, 리스크 한도)
    data:             → DataConfig (데이터 소스)
    log_level, log_dir → utils/logger.py::setup_logger() 인자

[ 호출하는 곳 ]
    - run_backtest.py에서 Config.load()로 로드
    - backtest/engine.py에서 BacktestConfig.validate() 호출 (실행 전 검증)
    - backtest/service.py에서 with_overrides()로 요청별 부분 오버라이드 적용
"""

import json
import logging
import math
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import date, datetime
from pathlib import Path
from typing import Any

import yaml

from backtest_system.core.errors import ConfigurationError

logger = logging.getLogger("backtest_system.config")


@dataclass(frozen=True)
class BacktestConfig:
    """백테스트 설정. config.yaml의 backtest 섹션에 대응.

    한 번의 실행 동안 변경되지 않는다. 요청별 변경은 with_overrides()로 새 객체를 만든다.
    """
    start_date: str = "2024-01-01"
    end_date: str = "2024-12-31"
    initial_capital: float = 100_000
    position_size_pct: float = 0.10        # 포지션당 최대 투입 비율 (자산 대비)
    max_positions: int = 5                 # 동시 보유 포지션 수 한도
    commission_rate: float = 0.001         # 체결 금액 대비 수수료율
    commission_per_trade: float = 0.0      # 체결당 고정 수수료
    slippage_bps: float = 5.0              # 불리한 방향 슬리피지 (bp)
    stop_loss_pct: float | None = None     # 고정 비율 손절 (ATR 손절과 중 더 가까운 쪽 사용)
    take_profit_pct: float | None = None   # 고정 비율 익절 (없으면 손익비 기준)
    risk_per_trade_pct: float = 0.02       # 1회 거래 최대 위험 비율 (자산 대비)

    @property
    def start(self) -> date:
        return _parse_date("start_date", self.start_date)

    @property
    def end(self) -> date:
        return _parse_date("end_date", self.end_date)

    def __post_init__(self):
        # 생성자, YAML, 요청 오버라이드 어느 경로든 필드 타입을 맞춘다
        for f in fields(self):
            object.__setattr__(self, f.name, _coerce_field(f.name, getattr(self, f.name)))

    def with_overrides(self, overrides: dict[str, Any] | None) -> "BacktestConfig":
        """부분 오버라이드를 적용한 새 설정.

        알 수 없는 키, 숫자로 바꿀 수 없는 값은 ConfigurationError.
        """
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        unknown = [k for k in overrides if k not in known]
        if unknown:
            raise ConfigurationError(unknown[0], f"알 수 없는 백테스트 설정. 사용 가능: {', '.join(sorted(known))}")
        return replace(self, **overrides)

    def validate(self) -> "BacktestConfig":
        """설정 검증. 시뮬레이션 시작 전에 호출되며 통과하면 self 반환."""
        if self.end < self.start:
            raise ConfigurationError("end_date", f"start_date({self.start_date}) 이후여야 합니다", self.end_date)
        if self.initial_capital <= 0:
            raise ConfigurationError("initial_capital", "0보다 커야 합니다", self.initial_capital)
        if not 0 < self.position_size_pct <= 1:
            raise ConfigurationError("position_size_pct", "0 초과 1 이하여야 합니다", self.position_size_pct)
        if not 0 < self.risk_per_trade_pct <= 1:
            raise ConfigurationError("risk_per_trade_pct", "0 초과 1 이하여야 합니다", self.risk_per_trade_pct)
        if self.max_positions < 1:
            raise ConfigurationError("max_positions", "1 이상이어야 합니다", self.max_positions)
        if self.commission_rate < 0:
            raise ConfigurationError("commission_rate", "0 이상이어야 합니다", self.commission_rate)
        if self.commission_per_trade < 0:
            raise ConfigurationError("commission_per_trade", "0 이상이어야 합니다", self.commission_per_trade)
        if not 0 <= self.slippage_bps < 10_000:
            raise ConfigurationError("slippage_bps", "0 이상 10000 미만이어야 합니다", self.slippage_bps)
        if self.stop_loss_pct is not None and not 0 < self.stop_loss_pct < 1:
            raise ConfigurationError("stop_loss_pct", "0 초과 1 미만이어야 합니다", self.stop_loss_pct)
        if self.take_profit_pct is not None and self.take_profit_pct <= 0:
            raise ConfigurationError("take_profit_pct", "0보다 커야 합니다", self.take_profit_pct)
        return self

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _parse_date(field_name: str, value: Any) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ConfigurationError(field_name, "YYYY-MM-DD 형식이어야 합니다", value) from None


_DATE_FIELDS = ("start_date", "end_date")
_INT_FIELDS = ("max_positions",)
_OPTIONAL_FIELDS = ("stop_loss_pct", "take_profit_pct")


def _coerce_field(key: str, value: Any) -> Any:
    """BacktestConfig 필드 값 변환.

    날짜는 ISO 문자열로, 나머지는 유한한 float (max_positions는 int)로 바꾼다.
    JSON 요청의 "50000" 같은 문자열 숫자도 받는다.
    """
    if key in _DATE_FIELDS:
        if isinstance(value, datetime):
            value = value.date()
        return value.isoformat() if isinstance(value, date) else str(value)
    if value is None and key in _OPTIONAL_FIELDS:
        return None
    if isinstance(value, bool):
        raise ConfigurationError(key, "숫자여야 합니다", value)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(key, "숫자여야 합니다", value) from None
    if not math.isfinite(number):
        raise ConfigurationError(key, "유한한 숫자여야 합니다", value)
    if key in _INT_FIELDS:
        if not number.is_integer():
            raise ConfigurationError(key, "정수여야 합니다", value)
        return int(number)
    return number


@dataclass
class StrategyConfig:
    """config.yaml의 strategy 섹션. params에는 기본값에서 바꿀 값만 넣는다."""
    name: str = "ema_crossover"
    symbol: str = "SAMPLE"
    params: dict[str, Any] = field(default_factory=dict)


@dataclass
class DataConfig:
    """데이터 소스 설정. config.yaml의 data 섹션에 대응."""
    source: str = "sample"                 # sample / csv / yahoo
    csv_dir: str = "data"                  # --source csv 일 때 {csv_dir}/{SYMBOL}.csv
    max_retries: int = 3                   # yahoo 재시도 횟수
    retry_delay: int = 5                   # yahoo 재시도 간격 (초)


@dataclass
class Config:
    """설정 파일 전체. Config.load()로 확장자에 맞게 읽는다."""
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)
    data: DataConfig = field(default_factory=DataConfig)
    log_level: str = "INFO"
    log_dir: str = "logs"

    @classmethod
    def load(cls, path: str | Path) -> "Config":
        """.json이면 from_json, 그 외는 from_yaml."""
        path = Path(path)
        if path.suffix.lower() == ".json":
            return cls.from_json(path)
        return cls.from_yaml(path)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        with open(Path(path), "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
        return cls.from_dict(raw)

    @classmethod
    def from_json(cls, path: str | Path) -> "Config":
        with open(Path(path), "r", encoding="utf-8") as f:
            raw = json.load(f)
        return cls.from_dict(raw)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Config":
        """파싱된 설정 딕셔너리 → Config.

        strategy 섹션에 params 키가 없으면 name/symbol 외의 키를 전략 파라미터로 본다.
        backtest/data 섹션의 모르는 키는 경고 후 무시한다.
        """
        strategy_raw = raw.get("strategy") or {}
        if "params" in strategy_raw:
            params = dict(strategy_raw["params"] or {})
        else:
            params = {k: v for k, v in strategy_raw.items() if k not in ("name", "symbol")}

        return cls(
            strategy=StrategyConfig(
                name=strategy_raw.get("name", StrategyConfig.name),
                symbol=str(strategy_raw.get("symbol", StrategyConfig.symbol)),
                params=params,
            ),
            backtest=BacktestConfig().with_overrides(_known_keys("backtest", BacktestConfig, raw)),
            data=DataConfig(**_known_keys("data", DataConfig, raw)),
            log_level=raw.get("log_level", "INFO"),
            log_dir=raw.get("log_dir", "logs"),
        )

    def to_backtest_config(self) -> BacktestConfig:
        """엔진에 넘길 검증된 BacktestConfig."""
        return self.backtest.validate()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def save_yaml(self, path: str | Path) -> None:
        """YAML로 저장. 상위 디렉토리가 없으면 만든다."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, allow_unicode=True, sort_keys=False)


def _known_keys(section: str, section_cls: type, raw: dict[str, Any]) -> dict[str, Any]:
    values = raw.get(section) or {}
    known = {f.name for f in fields(section_cls)}
    ignored = sorted(k for k in values if k not in known)
    if ignored:
        logger.warning(f"설정 파일 {section} 섹션의 알 수 없는 키 무시: {ignored}")
    return {k: v for k, v in values.items() if k in known}

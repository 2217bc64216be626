"""
전략 모듈.

[ 전략 등록 방식 ]
    @register(StrategyType.XXX) 데코레이터를 붙이면 STRATEGY_REGISTRY에 자동 등록.
    지원 전략은 core/trading_strategy.py::StrategyType 열거형으로 고정되어 있고,
    열거형에 없는 이름은 ConfigurationError로 거부한다 (기본 전략으로 대체하지 않음).

[ 새 전략 추가 방법 ]
    1. StrategyType에 값 추가
    2. 이 디렉토리에 새 .py 파일 생성, TradingStrategy 상속 클래스 작성
    3. @register(StrategyType.새값) 데코레이터 추가
    → run_backtest.py / service.py 수정 불필요.
"""

from dataclasses import dataclass
from importlib import import_module
from pathlib import Path
from typing import Any

from backtest_system.core.errors import ConfigurationError
from backtest_system.core.trading_strategy import (
    StrategyParams,
    StrategyType,
    TradingStrategy,
    resolve_params,
)

# 전략 타입 → 전략 클래스 매핑
STRATEGY_REGISTRY: dict[StrategyType, type[TradingStrategy]] = {}


@dataclass(frozen=True)
class StrategyInfo:
    """레지스트리 조회 결과. 화면 표시용 이름/설명과 기본 파라미터."""
    strategy_type: StrategyType
    name: str
    description: str
    default_params: StrategyParams

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.strategy_type.value,
            "name": self.name,
            "description": self.description,
        }


def register(strategy_type: StrategyType):
    """전략 클래스를 STRATEGY_REGISTRY에 등록하는 데코레이터."""
    def decorator(cls: type[TradingStrategy]):
        cls.strategy_type = strategy_type
        STRATEGY_REGISTRY[strategy_type] = cls
        return cls
    return decorator


def parse_strategy_type(name: str | StrategyType) -> StrategyType:
    """문자열 식별자를 StrategyType으로 변환.

    Raises:
        ConfigurationError: 지원하지 않는 전략 이름
    """
    if isinstance(name, StrategyType):
        return name
    try:
        return StrategyType(str(name).strip().lower())
    except ValueError:
        available = ", ".join(list_strategies())
        raise ConfigurationError("strategy", f"알 수 없는 전략. 사용 가능: {available}", name) from None


def create_strategy(
    name: str | StrategyType,
    params: StrategyParams | dict[str, Any] | None = None,
) -> TradingStrategy:
    """이름으로 전략 인스턴스를 생성.

    Args:
        name: 전략 식별자 (예: "ema_crossover")
        params: 전략 파라미터 (각 전략의 DEFAULT_PARAMS를 오버라이드)

    Raises:
        ConfigurationError: 등록되지 않은 전략 이름 또는 잘못된 파라미터
    """
    strategy_type = parse_strategy_type(name)
    if strategy_type not in STRATEGY_REGISTRY:
        raise ConfigurationError("strategy", "구현체가 등록되지 않은 전략", strategy_type.value)
    return STRATEGY_REGISTRY[strategy_type](params=params)


def get_strategy_info(name: str | StrategyType) -> StrategyInfo:
    """전략의 표시 이름, 설명, 기본 파라미터 조회."""
    strategy_type = parse_strategy_type(name)
    cls = STRATEGY_REGISTRY[strategy_type]
    return StrategyInfo(
        strategy_type=strategy_type,
        name=cls.DISPLAY_NAME,
        description=cls.DESCRIPTION,
        default_params=resolve_params(cls.DEFAULT_PARAMS),
    )


def list_strategies() -> list[str]:
    """등록된 전략 이름 목록 반환."""
    return sorted(t.value for t in STRATEGY_REGISTRY)


def _auto_discover():
    """이 디렉토리의 모든 전략 모듈을 자동 임포트하여 @register가 실행되게 한다."""
    strategies_dir = Path(__file__).parent
    for py_file in sorted(strategies_dir.glob("*.py")):
        if py_file.name.startswith("_"):
            continue
        import_module(f"backtest_system.strategies.{py_file.stem}")


# 모듈 로드 시 자동 탐색
_auto_discover()

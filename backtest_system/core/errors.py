"""
백테스트 예외 정의.

[ 역할 ]
    시뮬레이션 시작 전에 검출되는 치명적 오류를 표현.
    수치적 예외 상황(ATR 0, 수익률 분산 0, 손실 거래 없음)은 예외가 아니라
    각 모듈에서 정해진 기본값으로 처리하므로 여기에 없다.

[ 분류 ]
    BacktestError              - 최상위 예외
      ├── ConfigurationError   - 잘못된 설정/파라미터/전략 이름
      └── DataError            - 잘못된 OHLCV 데이터 (컬럼 누락, 날짜 중복)
            └── InsufficientDataError - 워밍업에 필요한 봉 수 부족, 데이터 없음

[ 호출하는 곳 ]
    - core/trading_strategy.py, backtest/engine.py 에서 검증 실패 시 raise
    - backtest/service.py, run_backtest.py 에서 잡아서 로깅 후 재전파/출력
"""


class BacktestError(Exception):
    """백테스트 관련 모든 예외의 부모 클래스."""


class ConfigurationError(BacktestError, ValueError):
    """설정 오류. 어떤 필드가 어떤 조건을 위반했는지 함께 보관한다."""

    def __init__(self, field: str, requirement: str, value: object = None):
        self.field = field
        self.requirement = requirement
        self.value = value
        message = f"잘못된 설정 '{field}': {requirement}"
        if value is not None:
            message += f" (입력값: {value!r})"
        super().__init__(message)


class DataError(BacktestError):
    """OHLCV 데이터 형식 오류."""


class InsufficientDataError(DataError):
    """봉 수 부족. required/actual로 필요한 개수와 실제 개수를 알려준다."""

    def __init__(self, required: int, actual: int, detail: str = ""):
        self.required = required
        self.actual = actual
        message = f"데이터 부족: 최소 {required}개 봉 필요, 실제 {actual}개"
        if detail:
            message += f" ({detail})"
        super().__init__(message)

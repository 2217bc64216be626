"""
=============================================================================
전략 백테스트 시스템 (Backtest System)
=============================================================================

[ 시스템 전체 구조 ]

    run_backtest.py (진입점)
         │
         ├── utils/config.py        ← config.yaml 설정 로드
         ├── utils/logger.py        ← 로깅
         │
         ├── data/, ingestion/      ← OHLCV 제공 (샘플, CSV, Yahoo Finance)
         │
         └── backtest/service.py    ← 요청 → 결과 (단건 / 병렬 일괄)
               │
               └── backtest/engine.py   ← 백테스트 실행 엔진
                     │
                     ├── indicators/technical.py  ← EMA/RSI/ATR/MACD/볼린저
                     ├── strategies/              ← 시그널 생성
                     ├── backtest/ledger.py       ← 포지션 슬롯/현금/자산 곡선
                     │     └── risk/position_sizing.py
                     └── backtest/metrics.py      ← 성과 지표 계산


[ 핵심 추상 클래스 (core/) - 모든 구현체의 부모 ]

    core/data_provider.py    → data/providers.py::InMemoryDataProvider, CsvDataProvider
                             → ingestion/yahoo_finance.py::YahooFinanceProvider

    core/trading_strategy.py → strategies/ema_crossover.py 외 3개


[ 데이터 흐름 ]

    1. config.yaml에서 백테스트 설정과 전략 파라미터 로드
    2. DataProvider가 기간 내 OHLCV를 한 번에 제공
    3. 지표를 전체 계산 (각 봉 값은 그 봉까지의 데이터만 사용)
    4. 봉마다 TradingStrategy.evaluate()로 시그널 생성
    5. SimulationLedger가 청산 → 진입 → 평가 순으로 처리
    6. metrics.py가 거래 기록과 자산 곡선으로 성과 지표 계산
"""

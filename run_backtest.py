"""
백테스트 실행 스크립트 (시스템 진입점).

[ 사용법 ]
    # 기본 실행 (config.yaml의 전략/종목 사용, 샘플 데이터)
    python run_backtest.py

    # 전략/종목 지정
    python run_backtest.py --strategy rsi_mean_reversion --symbol AAPL --source yahoo

    # 파라미터 오버라이드
    python run_backtest.py --strategy ema_crossover -p ema_fast_period=5 -p allow_short=true

    # CSV 데이터 사용 (data/AAPL.csv)
    python run_backtest.py --source csv --csv-dir data --symbol AAPL

    # 여러 전략 비교 (병렬 실행)
    python run_backtest.py --compare ema_crossover macd_momentum bollinger_breakout

    # 결과 JSON 저장
    python run_backtest.py --output result.json

    # 등록된 전략 목록 확인
    python run_backtest.py --list
"""

import argparse
import json
import logging
import sys
from pathlib import Path

import yaml

from backtest_system.backtest.metrics import BacktestMetrics
from backtest_system.backtest.result import BacktestResult
from backtest_system.backtest.service import BacktestRequest, run_backtest_request, run_batch
from backtest_system.core.data_provider import DataProvider
from backtest_system.core.errors import BacktestError
from backtest_system.data.providers import CsvDataProvider, InMemoryDataProvider
from backtest_system.data.sample import generate_sample_data
from backtest_system.ingestion.yahoo_finance import YahooFinanceProvider
from backtest_system.strategies import get_strategy_info, list_strategies
from backtest_system.utils.config import Config
from backtest_system.utils.logger import setup_logger

logger = logging.getLogger("backtest_system.cli")


def parse_param(param_str: str) -> tuple[str, object]:
    """-p key=value 인자 파싱. 값은 YAML 스칼라 규칙으로 변환 (5 → int, 2.5 → float, true → bool)."""
    key, sep, raw = param_str.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"key=value 형식이어야 합니다: {param_str!r}")
    raw = raw.strip()
    try:
        value = yaml.safe_load(raw) if raw else ""
    except yaml.YAMLError:
        value = raw
    return key.strip(), value


def build_provider(config: Config, source: str, symbol: str) -> DataProvider:
    """데이터 소스 이름으로 DataProvider 생성."""
    if source == "sample":
        print("샘플 데이터 생성 중...")
        backtest = config.to_backtest_config()
        df = generate_sample_data(symbol, backtest.start, backtest.end)
        print(f"  {symbol}: {len(df)}일 데이터")
        return InMemoryDataProvider({symbol: df})

    if source == "csv":
        return CsvDataProvider(config.data.csv_dir)

    if source == "yahoo":
        return YahooFinanceProvider(
            max_retries=config.data.max_retries,
            retry_delay=config.data.retry_delay,
        )

    raise BacktestError(f"알 수 없는 데이터 소스: {source}")


def print_single_result(result: BacktestResult) -> None:
    """단일 전략 결과 출력."""
    print()
    print(result.summary())

    trades = result.trade_log
    if trades:
        print("\n최근 거래 (최대 5건):")
        for t in trades[-5:]:
            print(
                f"  [{t.entry_date} → {t.exit_date}] {t.side.value} {t.quantity}주 "
                f"@ {t.entry_price:,.2f} → {t.exit_price:,.2f} ({t.exit_reason.value}) "
                f"{t.pnl:+,.2f}"
            )


def print_comparison(results: list[BacktestResult], config: Config) -> None:
    """여러 전략 비교 결과 출력."""
    period = f"{config.backtest.start_date} ~ {config.backtest.end_date}"
    names = [r.strategy["type"] for r in results]
    col_width = max(14, max(len(n) for n in names) + 2)
    width = 20 + col_width * len(names)

    print(f"\n{'=' * width}")
    print(f"전략 비교 결과 ({results[0].symbol}, {period})")
    print(f"{'=' * width}")

    # 헤더
    header = f"{'':>20}" + "".join(f"{n:>{col_width}}" for n in names)
    print(header)
    print("-" * len(header))

    # 지표 행
    rows = [
        ("총 수익률", lambda m: f"{m.total_return:.2f}%"),
        ("연환산 수익률", lambda m: f"{m.annualized_return:.2f}%"),
        ("샤프 비율", lambda m: f"{m.sharpe_ratio:.2f}"),
        ("소르티노 비율", lambda m: f"{m.sortino_ratio:.2f}"),
        ("최대 낙폭(MDD)", lambda m: f"{m.max_drawdown:.2f}%"),
        ("총 거래 횟수", lambda m: f"{m.total_trades}"),
        ("승률", lambda m: f"{m.win_rate:.1f}%"),
        ("수익 팩터", lambda m: f"{m.profit_factor:.2f}"),
        ("평균 수익", lambda m: f"{m.avg_win:.2f}%"),
        ("평균 손실", lambda m: f"{m.avg_loss:.2f}%"),
        ("최대 연속 수익", lambda m: f"{m.max_consecutive_wins}"),
        ("최대 연속 손실", lambda m: f"{m.max_consecutive_losses}"),
    ]

    metrics: list[BacktestMetrics] = [r.metrics for r in results]
    for label, fmt in rows:
        row = f"{label:>20}" + "".join(f"{fmt(m):>{col_width}}" for m in metrics)
        print(row)

    print(f"{'=' * width}")


def save_output(path: str, payload: object) -> None:
    """결과를 JSON 파일로 저장."""
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    with open(output, "w", encoding="utf-8") as f:
        json.dump(payload, f, ensure_ascii=False, indent=2)
    print(f"\n결과 저장: {output}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="전략 백테스트 실행")
    parser.add_argument("--config", type=str, default="config.yaml", help="설정 파일 경로")
    parser.add_argument("--strategy", type=str, default=None, help="전략 이름 (config.yaml 대신 지정)")
    parser.add_argument("--symbol", type=str, default=None, help="종목 코드 (config.yaml 대신 지정)")
    parser.add_argument("-p", "--param", type=parse_param, action="append", default=[], help="파라미터 오버라이드 (예: -p ema_fast_period=5)")
    parser.add_argument("--source", type=str, default=None, choices=["sample", "csv", "yahoo"], help="데이터 소스")
    parser.add_argument("--csv-dir", type=str, default=None, help="CSV 데이터 디렉토리 (--source csv)")
    parser.add_argument("--compare", nargs="+", metavar="STRATEGY", help="여러 전략 비교 (예: --compare ema_crossover macd_momentum)")
    parser.add_argument("--list", action="store_true", help="등록된 전략 목록 출력")
    parser.add_argument("--output", type=str, default=None, help="결과 JSON 저장 경로")
    args = parser.parse_args(argv)

    # 전략 목록 출력
    if args.list:
        print("등록된 전략:")
        for name in list_strategies():
            info = get_strategy_info(name)
            print(f"  - {name:<20} {info.name}: {info.description}")
        return 0

    try:
        # 설정 로드
        config_path = Path(args.config)
        if config_path.exists():
            config = Config.load(config_path)
        else:
            print(f"설정 파일 없음: {config_path}, 기본값 사용")
            config = Config()

        if args.csv_dir:
            config.data.csv_dir = args.csv_dir
        source = args.source or config.data.source
        symbol = args.symbol or config.strategy.symbol

        strategy_params = dict(config.strategy.params)
        strategy_params.update(dict(args.param))

        setup_logger(level=config.log_level, log_dir=config.log_dir)
        base_config = config.to_backtest_config()
        provider = build_provider(config, source, symbol)

        # ─── 비교 모드 ───────────────────────────────────────────────────
        if args.compare:
            print(f"\n{len(args.compare)}개 전략 비교 실행...")
            # 비교 모드에서는 전략별 기본 파라미터 위에 공통 오버라이드만 적용
            requests = [
                BacktestRequest(symbol=symbol, strategy=name, params=strategy_params)
                for name in args.compare
            ]
            results = run_batch(requests, provider, base_config=base_config)
            print_comparison(results, config)
            if args.output:
                save_output(args.output, [r.to_dict() for r in results])
            return 0

        # ─── 단일 실행 모드 ─────────────────────────────────────────────
        strategy_name = args.strategy or config.strategy.name
        print(f"\n전략: {strategy_name} / 종목: {symbol} / 데이터: {source}")
        if args.param:
            print(f"파라미터 오버라이드: {dict(args.param)}")

        request = BacktestRequest(symbol=symbol, strategy=strategy_name, params=strategy_params)
        result = run_backtest_request(request, provider, base_config=base_config)
        print_single_result(result)
        if args.output:
            save_output(args.output, result.to_dict())
        return 0

    except BacktestError as e:
        logger.error(f"백테스트 실행 실패: {e}")
        print(f"\n오류: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

#!/usr/bin/env python3
"""
Backtest Runner

Loads historical OHLCV files, runs a backtest with the indicator signal
source and optionally grid-searches parameters. Results are printed and can
be exported as JSON.

Data files are named SYMBOL__MARKET.csv (e.g. BTCUSDT__crypto.csv) with the
columns timestamp, open, high, low, close, volume.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from loguru import logger
from pydantic import ValidationError as PydanticValidationError
from tqdm import tqdm

from src.api.schemas.api_models import (
    BacktestConfigModel,
    OptimizationConstraintsModel,
    OptimizationParameterModel,
)
from src.backtesting import BacktestEngine, EventBus, EventType
from src.core.exceptions.backtest import BacktestException
from src.core.models.backtest import BacktestConfig, BacktestResult
from src.core.models.optimization import OptimizationConstraints, OptimizationParameter
from src.infrastructure.data import CSVDataLoader, IndicatorContextProvider
from src.optimization import total_combinations
from src.strategies import IndicatorSignalSource

# Optimization entries of the config file, not backtest fields
OPTIMIZATION_KEYS = {"optimize", "constraints"}


def setup_logging(debug: bool = False):
    """Configure logging with loguru."""
    logger.remove()

    level = "DEBUG" if debug else "INFO"
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=level,
    )


def load_config_file(path: str | None) -> dict:
    return json.loads(Path(path).read_text()) if path else {}


def build_config(args: argparse.Namespace, file_values: dict) -> BacktestConfig:
    """Merge the JSON config file with command-line overrides."""
    values = {key: value for key, value in file_values.items() if key not in OPTIMIZATION_KEYS}

    overrides = {
        "symbols": args.symbols,
        "markets": args.markets,
        "start_date": args.start_date,
        "end_date": args.end_date,
        "initial_capital": args.capital,
        "commission": args.commission,
        "slippage": args.slippage,
        "risk_per_trade": args.risk,
        "max_position_size": args.max_position,
        "optimization_metric": args.metric,
    }
    values.update({key: value for key, value in overrides.items() if value is not None})
    return BacktestConfigModel(**values).to_config()


def build_optimization(
    args: argparse.Namespace, file_values: dict
) -> tuple[list[OptimizationParameter], OptimizationConstraints]:
    """
    Grid axes and constraints from the config file's "optimize" and
    "constraints" entries plus the command line. Command-line axes replace
    file axes of the same name.
    """
    axes = {
        item["name"]: OptimizationParameterModel(**item).to_parameter()
        for item in file_values.get("optimize", [])
    }
    for definition in args.optimize:
        parameter = OptimizationParameter.from_string(definition)
        axes[parameter.name] = parameter

    constraint_values = dict(file_values.get("constraints", {}))
    if args.max_drawdown is not None:
        constraint_values["max_drawdown"] = args.max_drawdown
    if args.min_trades is not None:
        constraint_values["min_trades"] = args.min_trades
    constraints = OptimizationConstraintsModel(**constraint_values).to_constraints()
    return list(axes.values()), constraints


def track_optimization_progress(event_bus: EventBus, pbar: tqdm) -> None:
    """Advance ``pbar`` once per evaluated combination, failed ones included."""

    def on_iteration(event) -> None:
        pbar.update(1)

    event_bus.subscribe(EventType.OPTIMIZATION_PROGRESS, on_iteration)
    event_bus.subscribe(EventType.ITERATION_FAILED, on_iteration)


def print_summary(result: BacktestResult) -> None:
    metrics = result.metrics
    print("\n=== Backtest Summary ===")
    print(f"Period:            {result.start_date:%Y-%m-%d} -> {result.end_date:%Y-%m-%d}")
    print(f"Initial capital:   {result.initial_capital:,.2f}")
    print(f"Final capital:     {result.final_capital:,.2f}")
    print(f"Total return:      {result.total_return:.2f}%")
    print(f"Annualized return: {result.annualized_return:.2f}%")
    print(f"Trades:            {metrics.total_trades} (win rate {metrics.win_rate:.1f}%)")
    print(f"Profit factor:     {metrics.profit_factor:.2f}")
    print(f"Max drawdown:      {metrics.max_drawdown:.2f}%")
    print(f"Sharpe ratio:      {metrics.sharpe_ratio:.2f}")


def main():
    parser = argparse.ArgumentParser(
        description="Run a strategy backtest or parameter optimization on CSV data",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Single backtest
  python scripts/run_backtest.py --data-dir data --symbols BTCUSDT --start-date 2024-01-01 --end-date 2024-06-30

  # Grid search over risk and confidence using 4 workers
  python scripts/run_backtest.py --data-dir data --config config.json \\
      --optimize risk_per_trade:1:3:1 --optimize min_confidence:0.6:0.8:0.1 --workers 4
        """,
    )

    parser.add_argument("--data-dir", type=str, required=True, help="Directory of SYMBOL__MARKET.csv files")
    parser.add_argument("--config", type=str, help="JSON file with backtest configuration")
    parser.add_argument("--symbols", nargs="+", help="Symbols to trade")
    parser.add_argument("--markets", nargs="+", help="Markets to trade (default: crypto)")
    parser.add_argument("--start-date", type=str, help="Start date (ISO format)")
    parser.add_argument("--end-date", type=str, help="End date (ISO format)")
    parser.add_argument("--capital", type=float, help="Initial capital (default: 10000)")
    parser.add_argument("--commission", type=float, help="Commission in percent")
    parser.add_argument("--slippage", type=float, help="Slippage in percent")
    parser.add_argument("--risk", type=float, help="Risk per trade in percent of equity")
    parser.add_argument("--max-position", type=float, help="Max position size in percent of equity")
    parser.add_argument("--metric", type=str, help="Optimization objective (default: composite)")

    parser.add_argument(
        "--optimize",
        action="append",
        default=[],
        metavar="NAME:MIN:MAX:STEP",
        help="Parameter axis to grid-search (repeatable)",
    )
    parser.add_argument("--workers", type=int, default=1, help="Concurrent optimization runs")
    parser.add_argument("--time-budget", type=float, help="Stop scheduling after N seconds")
    parser.add_argument("--min-trades", type=int, help="Discard combinations with fewer trades")
    parser.add_argument("--max-drawdown", type=float, help="Discard combinations above this drawdown (%%)")
    parser.add_argument("--top", type=int, default=10, help="Optimization results to print (default: 10)")

    parser.add_argument("--output", type=str, help="Write results as JSON to this file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    args = parser.parse_args()
    setup_logging(args.debug)

    try:
        file_values = load_config_file(args.config)
        config = build_config(args, file_values)
        parameters, constraints = build_optimization(args, file_values)
    except (
        PydanticValidationError,
        BacktestException,
        json.JSONDecodeError,
        KeyError,
        OSError,
    ) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    try:
        market_data = asyncio.run(CSVDataLoader().load_directory(Path(args.data_dir)))
        signal_source = IndicatorSignalSource(min_confidence=config.min_confidence)
        event_bus = EventBus()
        engine = BacktestEngine(
            market_data,
            signal_source,
            config=config,
            context_provider=IndicatorContextProvider(market_data),
            event_bus=event_bus,
        )

        if parameters:
            total = total_combinations(parameters)
            with tqdm(total=total, desc="Optimizing", unit="run") as pbar:
                track_optimization_progress(event_bus, pbar)
                results = engine.run_optimization(
                    parameters,
                    constraints=constraints,
                    max_workers=args.workers,
                    time_budget=args.time_budget,
                )

            print(f"\n=== Top {min(args.top, len(results))} of {len(results)} combinations ===")
            for result in results[: args.top]:
                print(
                    f"#{result.rank:<3} score={result.score:10.4f} "
                    f"return={result.total_return:8.2f}% trades={result.metrics.total_trades:<4} "
                    f"{result.parameters}"
                )
        else:
            result = engine.run_backtest()
            print_summary(result)

        if args.output:
            Path(args.output).write_text(json.dumps(engine.export_data(), indent=2, default=str))
            logger.success(f"Results written to {args.output}")
        return 0

    except BacktestException as e:
        logger.error(f"Backtest failed: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Backtest failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

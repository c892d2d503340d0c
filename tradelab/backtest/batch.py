from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from time import perf_counter
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger

from tradelab.backtest.engine import BacktestEngine
from tradelab.backtest.grid_search import expand_param_grid
from tradelab.config import settings as app_settings
from tradelab.core.exceptions import (
    ConfigError,
    DataValidationError,
    StrategyNotFoundError,
    TradeLabError,
)
from tradelab.data.source import BarSource, CsvBarSource, as_date
from tradelab.logging_utils import setup_logging
from tradelab.strats.registry import StrategyRegistry, build_default_registry

_REQUIRED = ("symbol", "startDate", "endDate", "strategyId")


@dataclass
class BatchJob:
    job_id: int
    symbol: str
    start_date: str
    end_date: str
    initial_cash: float
    strategy_id: str
    params: Dict[str, Any] = field(default_factory=dict)
    source_api: Optional[str] = None
    interval: Optional[str] = None


def _load_config(path: Path) -> List[Dict[str, Any]]:
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"cannot read batch config {path}: {exc}") from exc
    if isinstance(data, dict) and "backtests" in data:
        data = data["backtests"]
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list) and all(isinstance(item, dict) for item in data):
        return data
    raise ConfigError("Batch config must be a mapping or a list of mappings")


def _jobs_for_entry(
    entry: Dict[str, Any], registry: StrategyRegistry, first_id: int
) -> List[BatchJob]:
    missing = [key for key in _REQUIRED if entry.get(key) in (None, "")]
    if missing:
        raise ConfigError(f"missing required fields: {', '.join(missing)}")
    strategy_id = str(entry["strategyId"])
    if strategy_id not in registry:
        raise StrategyNotFoundError(strategy_id)
    start, end = as_date(entry["startDate"]), as_date(entry["endDate"])

    base_params = dict(entry.get("strategyParams") or {})
    grid = entry.get("paramGrid") or {}
    if not isinstance(grid, dict):
        raise ConfigError("paramGrid must map parameter names to lists of values")
    initial_cash = float(entry.get("initialCash", app_settings.default_initial_cash))
    return [
        BatchJob(
            job_id=first_id + offset,
            symbol=str(entry["symbol"]),
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            initial_cash=initial_cash,
            strategy_id=strategy_id,
            params={**base_params, **combo},
            source_api=entry.get("sourceApi"),
            interval=entry.get("interval"),
        )
        for offset, combo in enumerate(expand_param_grid(grid))
    ]


def build_jobs(
    entries: List[Dict[str, Any]], registry: StrategyRegistry
) -> List[BatchJob]:
    """Expand config entries into jobs, skipping entries that cannot run."""
    jobs: List[BatchJob] = []
    for idx, entry in enumerate(entries, start=1):
        try:
            jobs.extend(_jobs_for_entry(entry, registry, len(jobs) + 1))
        except (TradeLabError, TypeError, ValueError) as exc:
            logger.warning("[batch] skipping entry {}: {}", idx, exc)
    return jobs


async def _execute_job(engine: BacktestEngine, job: BatchJob) -> Dict[str, Any]:
    result = await engine.run_backtest(
        job.symbol,
        job.start_date,
        job.end_date,
        job.initial_cash,
        job.strategy_id,
        job.params,
        source_api=job.source_api,
        interval=job.interval,
    )
    payload = {
        "jobId": job.job_id,
        "symbol": job.symbol,
        "strategyId": job.strategy_id,
        "startDate": job.start_date,
        "endDate": job.end_date,
        "params": result.parameters_used or job.params,
        "metrics": {
            "initialPortfolioValue": result.initial_portfolio_value,
            "finalPortfolioValue": result.final_portfolio_value,
            "totalProfitOrLoss": result.total_profit_or_loss,
            "profitOrLossPercentage": result.profit_or_loss_percentage,
            "totalTrades": result.total_trades,
            "dataPointsProcessed": result.data_points_processed,
            "sharpeRatio": result.sharpe_ratio,
            "maxDrawdown": result.max_drawdown,
        },
    }
    logger.info(
        "[batch] job={} strategy={} symbol={} params={} pnl={:.2f}",
        job.job_id,
        job.strategy_id,
        job.symbol,
        payload["params"],
        result.total_profit_or_loss,
    )
    return payload


async def execute_jobs(
    jobs: List[BatchJob], engine: BacktestEngine
) -> List[Dict[str, Any]]:
    results: List[Dict[str, Any]] = []
    for job in jobs:
        try:
            results.append(await _execute_job(engine, job))
        except Exception as exc:
            logger.exception("[batch] job={} failed: {}", job.job_id, exc)
    return results


def run_batch(
    config_path: Path | str,
    *,
    registry: Optional[StrategyRegistry] = None,
    bar_source: Optional[BarSource] = None,
) -> List[Dict[str, Any]]:
    """
    Run every backtest described in a YAML or JSON file.

    Returns one summary dict per job that ran. Entries or jobs that fail are
    logged and skipped.

    Raises:
        ConfigError: When the file cannot be read or has the wrong shape.
    """
    path = Path(config_path)
    registry = registry or build_default_registry()
    bar_source = bar_source or CsvBarSource(app_settings.data_dir)
    jobs = build_jobs(_load_config(path), registry)
    logger.info("[batch] starting config={} jobs={}", path, len(jobs))

    started = perf_counter()
    engine = BacktestEngine(registry, bar_source)
    results = asyncio.run(execute_jobs(jobs, engine))
    logger.info(
        "[batch] completed config={} succeeded={}/{} duration_ms={:.1f}",
        path,
        len(results),
        len(jobs),
        (perf_counter() - started) * 1000.0,
    )
    return results


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run a batch of strategy backtests")
    parser.add_argument(
        "--config", required=True, help="Path to YAML/JSON batch definition"
    )
    parser.add_argument(
        "--data-dir",
        default=None,
        help="Directory of <SYMBOL>.csv bar files (defaults to TRADELAB_DATA_DIR)",
    )
    args = parser.parse_args(argv)

    setup_logging()
    source = CsvBarSource(args.data_dir or app_settings.data_dir)
    try:
        results = run_batch(Path(args.config), bar_source=source)
    except (ConfigError, DataValidationError) as exc:
        parser.exit(2, f"error: {exc}\n")
    indent = app_settings.batch_indent if app_settings.batch_pretty else None
    print(json.dumps(results, default=str, indent=indent))


if __name__ == "__main__":
    main()

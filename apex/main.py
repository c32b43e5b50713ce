"""Apex backtester — command-line entry point.

Runs a strategy JSON against a market data file and prints the results
as JSON.  With ``--log-dir`` (or ``APEX_LOG_ARTIFACTS``) each intermediate
artifact is written to ``<log_dir>/<name>.json``.
"""

import json
import logging
import os
import pathlib
import sys
from typing import Any

logger = logging.getLogger("apex")


def _artifact_writer(log_dir: pathlib.Path):
    """Sink that writes each artifact to its own JSON file."""
    log_dir.mkdir(parents=True, exist_ok=True)

    def write(name: str, data: Any) -> None:
        path = log_dir / f"{name}.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
        logger.debug("Wrote artifact %s", path)

    return write


def _progress_logger():
    """Log progress at every new 10 % step."""
    state = {"step": -1}

    def report(pct: float) -> None:
        step = int(pct // 10)
        if step > state["step"]:
            state["step"] = step
            logger.info("Progress: %d%%", int(pct))

    return report


def _run_cli(argv: list[str] | None = None) -> int:
    """Parse CLI arguments and run one backtest."""
    import argparse

    from apex.backtest.engine import InsufficientDataError, run_backtest
    from apex.config import load_config, load_strategy
    from apex.data.loader import load_market_data, load_reference_candles

    parser = argparse.ArgumentParser(description="Apex crypto strategy backtester")
    parser.add_argument("--strategy", required=True, help="Strategy JSON file")
    parser.add_argument("--data", required=True, help="Market data JSON file")
    parser.add_argument("--reference", help="Reference asset (e.g. BTC) candle JSON file")
    parser.add_argument("--log-dir", help="Directory for intermediate artifacts")
    parser.add_argument("--env", help="Path to a .env file")
    parser.add_argument("--output", help="Write results here instead of stdout")
    args = parser.parse_args(argv)

    config = load_config(args.env)
    logging.basicConfig(
        level=config.logging_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        strategy = load_strategy(args.strategy)
        market = load_market_data(args.data)
        reference = load_reference_candles(args.reference) if args.reference else None
    except (OSError, ValueError) as exc:
        logger.error("Could not load inputs: %s", exc)
        return 2

    log_dir = args.log_dir or (os.path.join("logs", "backtest") if config.log_artifacts else None)
    on_log = _artifact_writer(pathlib.Path(log_dir)) if log_dir else None

    try:
        results = run_backtest(
            strategy,
            market.primary,
            config.to_settings(),
            on_progress=_progress_logger(),
            reference_candles=reference,
            logging_enabled=on_log is not None,
            on_log=on_log,
            all_reports=market.reports,
            yield_every=config.yield_every,
        )
    except InsufficientDataError as exc:
        logger.error("%s", exc)
        return 1

    if results is None:
        return 1

    payload = json.dumps(results.to_dict(), indent=2)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(payload)
        logger.info("Results written to %s", args.output)
    else:
        print(payload)
    return 0


def main() -> None:
    sys.exit(_run_cli())


if __name__ == "__main__":
    main()

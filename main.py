#!/usr/bin/env python3
"""
Partition Reattribution - Main Entry Point
==========================================
Command-line interface for attributing a privacy-protected integer
partition back onto named records.

Usage:
    python main.py data/private.csv -b Naive
    python main.py data/private.csv -b FromFile -f data/bounds.csv -a Scoped -t 5
    python main.py data/private.csv -b HistoricalDistance -h data/history.csv
"""

import argparse
import logging
import logging.handlers
import sys
import os
from datetime import datetime
from typing import List, Optional

from core.config import (
    ATTRIBUTION_STRATEGIES,
    BOUND_STRATEGIES,
    ROW_ERROR_POLICIES,
    Config,
)
from core.pipeline import ReattributionPipeline, TrialResult


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    log_dir: Optional[str] = None
) -> logging.Logger:
    """
    Set up logging with console and optional file output.

    Console logs go to stderr so that trial output on stdout stays parseable.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file name. If None, auto-generated.
        log_dir: Directory for log files; no file logging if None

    Returns:
        Configured root logger
    """
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, log_level.upper()))

    # Console handler
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, log_level.upper()))
    console_format = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%H:%M:%S'
    )
    console_handler.setFormatter(console_format)
    logger.addHandler(console_handler)

    # File handler (rotating)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        if log_file is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            log_file = f"reattribution_{timestamp}.log"

        log_path = os.path.join(log_dir, log_file)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10*1024*1024,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_format = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(name)s:%(lineno)d - %(message)s'
        )
        file_handler.setFormatter(file_format)
        logger.addHandler(file_handler)
        logger.info(f"Logging to file: {log_path}")

    return logger


def parse_bool(value: str) -> bool:
    """Parse a true/false command-line value."""
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes", "on"):
        return True
    if lowered in ("false", "0", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got {value!r}")


def positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {number}")
    return number


def build_parser() -> argparse.ArgumentParser:
    # -h is the historical file, so help lives on --help only
    parser = argparse.ArgumentParser(
        description="Integer partition reattribution - attribute a protected partition to named records",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
        epilog="""
Examples:
    # Naive bounds, basic attribution
    python main.py data/private.csv -b Naive

    # Bounds from a file, scoped attribution, five trials
    python main.py data/private.csv -b FromFile -f data/bounds.csv -a Scoped -t 5

    # Bounds from historical data with a config file for budgets
    python main.py data/private.csv -b HistoricalDistance -h data/history.csv \\
        --config configs/default.ini
        """
    )

    parser.add_argument("--help", action="help", help="Show this help message and exit")

    parser.add_argument(
        "input",
        metavar="INPUT",
        help="Private data input file (CSV with name,count)"
    )
    parser.add_argument(
        "-b", "--bounds",
        dest="bounds_strategy",
        choices=BOUND_STRATEGIES,
        required=True,
        help="Strategy for partition bounds generation"
    )
    parser.add_argument(
        "-a", "--attr",
        dest="attribution_strategy",
        choices=ATTRIBUTION_STRATEGIES,
        default="Basic",
        help="Strategy for attribution (default: Basic)"
    )
    parser.add_argument(
        "-h", "--historical",
        dest="historical",
        default=None,
        help="Historical data file (required for HistoricalDistance)"
    )
    parser.add_argument(
        "-f", "--bfile",
        dest="bfile",
        default=None,
        help="Predetermined bounds file (required for FromFile and Scoped)"
    )
    parser.add_argument(
        "-t", "--trials",
        type=positive_int,
        default=1,
        help="Number of trial loops to run (default: 1)"
    )
    parser.add_argument(
        "-s", "--sparsity",
        type=parse_bool,
        default=False,
        metavar="BOOL",
        help="Whether to use sparsity control (default: false)"
    )

    # Optional overrides
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to configuration INI file with stage budgets"
    )
    parser.add_argument(
        "--on-bad-row",
        choices=ROW_ERROR_POLICIES,
        default=None,
        help="Handling of unparseable CSV rows (default: substitute)"
    )
    parser.add_argument(
        "--public-utility-bound",
        action="store_true",
        default=None,
        help="Use the public total count as utility_max during attribution"
    )

    # Logging options
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level (default: INFO)"
    )
    parser.add_argument(
        "--log-dir",
        type=str,
        default=None,
        help="Directory for log files (default: console only)"
    )

    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments and check conditional requirements."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.bounds_strategy == "HistoricalDistance" and not args.historical:
        parser.error("-h/--historical is required when --bounds is HistoricalDistance")
    if args.bounds_strategy == "FromFile" and not args.bfile:
        parser.error("-f/--bfile is required when --bounds is FromFile")
    if args.attribution_strategy == "Scoped" and not args.bfile:
        parser.error("-f/--bfile is required when --attr is Scoped")

    return args


def apply_overrides(config: Config, args: argparse.Namespace) -> Config:
    """Apply command-line overrides to configuration."""
    config.run.input_path = args.input
    config.run.bounds_strategy = args.bounds_strategy
    config.run.attribution_strategy = args.attribution_strategy
    config.run.historical_path = args.historical
    config.run.bounds_path = args.bfile
    config.run.num_trials = args.trials
    config.run.sparsity_control = args.sparsity

    if args.on_bad_row is not None:
        config.run.on_bad_row = args.on_bad_row

    if args.public_utility_bound is not None:
        config.privacy.public_utility_bound = args.public_utility_bound

    return config


def print_config_summary(config: Config, logger: logging.Logger):
    """Print configuration summary."""
    logger.info("=" * 60)
    logger.info("Configuration Summary")
    logger.info("=" * 60)
    logger.info(f"Private data input:       {config.run.input_path}")
    logger.info(f"Bounds strategy:          {config.run.bounds_strategy}")
    logger.info(f"Attribution strategy:     {config.run.attribution_strategy}")
    logger.info(f"Sparsity control:         {config.run.sparsity_control}")
    logger.info(f"Trials:                   {config.run.num_trials}")
    logger.info(f"Bad row policy:           {config.run.on_bad_row}")
    logger.info(f"Public utility bound:     {config.privacy.public_utility_bound}")
    logger.info("=" * 60)


def emit_trial(trial: TrialResult) -> None:
    """Write the three output lines of a trial to stdout."""
    for line in trial.lines():
        print(line)
    sys.stdout.flush()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    args = parse_args(argv)

    logger = setup_logging(
        log_level=args.log_level,
        log_dir=args.log_dir
    )

    try:
        # Budgets are constructed before any input is read
        if args.config:
            logger.info(f"Loading configuration from: {args.config}")
            config = Config.from_ini(args.config)
        else:
            config = Config()

        config = apply_overrides(config, args)

        logger.info("Validating configuration...")
        config.validate()

        print_config_summary(config, logger)

        pipeline = ReattributionPipeline(config)

        start_time = datetime.now()
        result = pipeline.run(on_trial=emit_trial)
        duration = (datetime.now() - start_time).total_seconds()

        logger.info("=" * 60)
        logger.info("Processing Complete")
        logger.info("=" * 60)
        logger.info(f"Duration:                 {duration:.2f} seconds")
        logger.info(f"Records:                  {result.total_records}")
        logger.info(f"Bad rows:                 {result.bad_rows}")
        logger.info(f"Trials:                   {len(result.trials)}")
        logger.info("=" * 60)

        return 0

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Error: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())

"""Command-line interface for levelcontrasts."""

import argparse
import datetime
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from .config import load_config
from .contrasts.base import ContrastConfig
from .contrasts.covariates import load_table, standardize_covariates
from .contrasts.directions import DirectionTable
from .contrasts.engine import ContrastEngine, baselines_to_frame
from .contrasts.errors import ContrastError
from .contrasts.relevel import level_set
from .report import generate_html_report, write_table
from .version import __version__

logger = logging.getLogger("levelcontrasts")

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}


def _split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _parse_flip(values: Optional[List[str]]) -> List[Tuple[str, str]]:
    pairs = []
    for value in values or []:
        parts = value.split(":")
        if len(parts) != 2 or not all(p.strip() for p in parts):
            raise argparse.ArgumentTypeError(f"--flip expects LEVEL_A:LEVEL_B, got '{value}'")
        pairs.append((parts[0].strip(), parts[1].strip()))
    return pairs


def create_parser() -> argparse.ArgumentParser:
    """Create and return the argument parser for the levelcontrasts CLI."""
    parser = argparse.ArgumentParser(
        description="levelcontrasts: pairwise contrasts between levels of a categorical variable."
    )

    # General Options
    general_group = parser.add_argument_group("General Options")
    general_group.add_argument(
        "--version",
        action="version",
        version=f"levelcontrasts {__version__}",
        help="Show the current version and exit",
    )
    general_group.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARN", "ERROR"],
        default="INFO",
        help="Set the logging level",
    )
    general_group.add_argument(
        "--log-file", help="Path to a file to write logs to (in addition to stderr)."
    )
    general_group.add_argument(
        "-c",
        "--config",
        help="Path to configuration file",
        default=None,
    )

    # Core Input/Output
    io_group = parser.add_argument_group("Core Input/Output")
    io_group.add_argument(
        "-i", "--input", required=True, help="Input table (TSV/CSV, header row required)"
    )
    io_group.add_argument(
        "-o",
        "--output-file",
        default="stdout",
        help="Contrast table output path or 'stdout'/'-' (default: stdout)",
    )
    io_group.add_argument("--baseline-output", help="Baseline estimate table output path")
    io_group.add_argument("--html-report", help="Write an HTML report to this path")

    # Model
    model_group = parser.add_argument_group("Model")
    model_group.add_argument(
        "-f",
        "--formula",
        required=True,
        help="Model formula, e.g. 'events ~ group + age' (compositional: '~ group + age')",
    )
    model_group.add_argument(
        "--column", required=True, help="Categorical column whose levels are compared"
    )
    model_group.add_argument(
        "--family",
        choices=["count_log", "compositional_log_ratio"],
        default=None,
        help="Model family (default from config: count_log)",
    )
    model_group.add_argument(
        "--features",
        help="Comma-separated count columns forming the composition (compositional family)",
    )
    model_group.add_argument("--offset-column", help="Exposure column for the count model offset")
    model_group.add_argument(
        "--prevalence-filter",
        type=float,
        default=None,
        help="Minimum fraction of samples with non-zero abundance per feature",
    )
    model_group.add_argument(
        "--winsorize",
        action="store_true",
        default=None,
        help="Winsorize transformed features before fitting (compositional family)",
    )
    model_group.add_argument(
        "--outlier-pct", type=float, default=None, help="Tail fraction clipped when winsorizing"
    )
    model_group.add_argument(
        "--standardize",
        help="Comma-separated numeric covariates to standardize before fitting",
    )

    # Contrasts
    contrast_group = parser.add_argument_group("Contrasts")
    contrast_group.add_argument(
        "--levels",
        help="Comma-separated level order (default: sorted levels). "
        "Without --directions, the earlier level of each pair is the base.",
    )
    contrast_group.add_argument(
        "--directions",
        help="TSV/CSV file with 'base' and 'other' columns assigning each pair's direction",
    )
    contrast_group.add_argument(
        "--flip",
        action="append",
        metavar="LEVEL_A:LEVEL_B",
        help="Reverse the generated direction of a pair (repeatable; ignored with --directions)",
    )
    contrast_group.add_argument(
        "--baselines",
        action="store_true",
        help="Also estimate the intercept with each level as reference",
    )
    contrast_group.add_argument(
        "--correction-method",
        choices=["fdr", "bonferroni"],
        default=None,
        help="Multiple testing correction (default from config: fdr)",
    )
    contrast_group.add_argument(
        "--correction-scope",
        choices=["response", "all"],
        default=None,
        help="Correction family: all responses together (default) or per response",
    )
    contrast_group.add_argument(
        "--alpha", type=float, default=None, help="Significance threshold (default: 0.05)"
    )

    # Performance
    perf_group = parser.add_argument_group("Performance")
    perf_group.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Parallel refits (1 = sequential, -1 = all CPUs)",
    )
    perf_group.add_argument(
        "--executor",
        choices=["thread", "process"],
        default=None,
        help="Worker pool type for parallel refits",
    )

    return parser


def parse_args(args_list=None):
    """Parse command line arguments.

    Parameters
    ----------
    args_list : list, optional
        List of arguments to parse. If None, uses sys.argv

    Returns
    -------
    argparse.Namespace
        Parsed arguments
    """
    parser = create_parser()
    return parser.parse_args(args_list)


def build_config(args: argparse.Namespace, cfg: Dict[str, Any]) -> ContrastConfig:
    """Layer CLI arguments over the loaded configuration dict."""
    overrides = {
        "family": args.family,
        "correction_method": args.correction_method,
        "correction_scope": args.correction_scope,
        "alpha": args.alpha,
        "prevalence_filter": args.prevalence_filter,
        "winsorize": args.winsorize,
        "outlier_pct": args.outlier_pct,
        "offset_column": args.offset_column,
        "workers": args.workers,
        "executor": args.executor,
    }
    merged = dict(cfg)
    merged.update({k: v for k, v in overrides.items() if v is not None})
    features = _split_list(args.features)
    if features:
        merged["feature_columns"] = features
    return ContrastConfig.from_dict(merged)


def configure_logging(log_level: str, log_file: Optional[str] = None) -> None:
    """Set the package log level and optionally add a file handler."""
    logger.setLevel(LOG_LEVEL_MAP[log_level])

    if log_file:
        log_file_path = Path(log_file)
        log_file_path.parent.mkdir(parents=True, exist_ok=True)

        fh = logging.FileHandler(log_file)
        fh.setLevel(LOG_LEVEL_MAP[log_level])
        fh.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
            )
        )
        logger.addHandler(fh)
        logger.debug(f"Logging to file enabled: {log_file}")


def main(argv: Optional[List[str]] = None) -> int:
    """Run main entry point for the levelcontrasts CLI.

    Steps:
        1. Parse arguments.
        2. Configure logging and load config.
        3. Load the input table, standardize requested covariates.
        4. Build the direction table (file, or generated from the level order).
        5. Run the contrast engine (and baselines if requested).
        6. Write the contrast table, baseline table and HTML report.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )

    start_time: datetime.datetime = datetime.datetime.now()

    args = parse_args(argv)
    configure_logging(args.log_level, args.log_file)
    logger.info(f"Run started at {start_time.isoformat()}")
    logger.debug(f"CLI arguments: {args}")

    try:
        cfg: Dict[str, Any] = load_config(args.config)
        logger.debug(f"Configuration loaded: {cfg}")
        config = build_config(args, cfg)

        data = load_table(args.input)
        if args.column not in data.columns:
            logger.error(f"Column '{args.column}' not found in {args.input}")
            return 1
        # Levels from the command line and direction files are strings
        data[args.column] = data[args.column].map(lambda v: None if pd.isna(v) else str(v))

        standardize = _split_list(args.standardize)
        if standardize:
            data = standardize_covariates(data, standardize)

        order = _split_list(args.levels) or level_set(data, args.column)
        if args.directions:
            if args.flip:
                logger.warning("--flip is ignored when --directions is given.")
            directions = DirectionTable.from_file(args.directions)
        else:
            directions = DirectionTable.from_order(order, flip=_parse_flip(args.flip))

        engine = ContrastEngine.from_names(config.family, config)
        result = engine.run(data, args.formula, args.column, directions, order=order)
        contrast_df = result.to_frame()

        baseline_df = None
        if args.baselines:
            baseline_df = baselines_to_frame(
                engine.baselines(data, args.formula, args.column, order=order)
            )

        # Nothing is written until every fit has succeeded
        write_table(contrast_df, args.output_file)
        if baseline_df is not None:
            if args.baseline_output:
                write_table(baseline_df, args.baseline_output)
            else:
                logger.warning("--baselines given without --baseline-output; table not written.")

        if args.html_report:
            generate_html_report(
                contrast_df,
                args.html_report,
                summary={
                    "column": args.column,
                    "formula": args.formula,
                    "family": result.family,
                    "levels": ", ".join(map(str, result.levels)),
                    "fits": result.n_fits,
                    "directed_contrasts": result.n_directed,
                    "correction": f"{config.correction_method} ({config.correction_scope})",
                    "alpha": config.alpha,
                },
                baselines=baseline_df,
            )
    except (ContrastError, ValueError, FileNotFoundError, argparse.ArgumentTypeError) as e:
        logger.error(f"Contrast analysis failed: {e}")
        return 1

    elapsed = datetime.datetime.now() - start_time
    logger.info(f"Run finished in {elapsed.total_seconds():.1f}s")
    return 0


if __name__ == "__main__":
    sys.exit(main())

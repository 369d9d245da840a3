from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime
from pathlib import Path

import pandas as pd

from . import data as data_module
from . import eda, modeling, preprocessing, summary
from .config import ProjectPaths, get_project_paths
from .logging_utils import configure_logging

logger = logging.getLogger(__name__)


def _paths(args: argparse.Namespace) -> ProjectPaths:
    return get_project_paths(root=args.project_root, data_dir=args.data_dir)


def _read_clean(paths: ProjectPaths) -> pd.DataFrame:
    if not paths.clean_table.exists():
        raise FileNotFoundError(
            f"Cleaned dataset not found at {paths.clean_table}. Run 'load-data' first."
        )
    return pd.read_parquet(paths.clean_table)


def stage_load(args: argparse.Namespace) -> pd.DataFrame:
    paths = _paths(args)
    tables = data_module.load_tables(paths.data)
    merged = data_module.merge_tables(tables)
    logger.info("BMI before cleaning: %s", data_module.summarise_missing(merged, "BMXBMI"))

    clean = preprocessing.clean_nhanes(merged)
    logger.info("Cleaned dataset: %s", preprocessing.describe_clean(clean))
    logger.info("Age in cleaned dataset: %s", data_module.summarise_missing(clean, "age"))

    clean.to_parquet(paths.clean_table, index=False)
    print(f"Saved cleaned dataset to {paths.clean_table}")
    return clean


def stage_summarize(args: argparse.Namespace, df: pd.DataFrame | None = None) -> summary.SummaryTable:
    paths = _paths(args)
    if df is None:
        df = _read_clean(paths)

    table = summary.compute_summary(df)
    formatted = table.format()
    print("\n=== Summary by age group and sex ===")
    print(formatted.to_string())

    formatted.to_csv(paths.outputs / "summary_table.csv")
    table.stats.to_csv(paths.outputs / "summary_stats_long.csv", index=False)
    print(f"Saved summary table to {paths.outputs / 'summary_table.csv'}")
    return table


def stage_fit(args: argparse.Namespace, df: pd.DataFrame | None = None) -> dict:
    paths = _paths(args)
    if df is None:
        df = _read_clean(paths)

    results = modeling.fit_models(df)
    for result in results.values():
        print(f"\n=== {result.name}: {result.formula} ===")
        print(result.summary_text())

    metrics = modeling.persist_results(results, paths.models)
    results_path = paths.outputs / "model_results.json"
    with open(results_path, "w", encoding="utf-8") as fh:
        json.dump(metrics, fh, indent=2)
    print(f"Saved model summaries under {paths.models}")
    return results


def stage_eda(args: argparse.Namespace, df: pd.DataFrame | None = None) -> dict:
    paths = _paths(args)
    if df is None:
        df = _read_clean(paths)

    figures = eda.render_all(df, paths.figures)
    print(f"EDA figures written to {paths.figures}")
    return figures


def stage_all(args: argparse.Namespace) -> None:
    clean = stage_load(args)
    stage_summarize(args, clean)
    stage_fit(args, clean)
    stage_eda(args, clean)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="NHANES cholesterol and glucose regression analysis pipeline.",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory holding the five NHANES CSV extracts (default: <project>/data)",
    )
    parser.add_argument(
        "--project-root",
        type=Path,
        default=None,
        help="Project root; outputs are written under <root>/outputs",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level (default: INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    load_parser = subparsers.add_parser("load-data", help="Join and clean the raw extracts")
    load_parser.set_defaults(func=stage_load)

    summary_parser = subparsers.add_parser("summarize", help="Print the stratified summary table")
    summary_parser.set_defaults(func=stage_summarize)

    fit_parser = subparsers.add_parser("fit-models", help="Fit the OLS models and save summaries")
    fit_parser.set_defaults(func=stage_fit)

    eda_parser = subparsers.add_parser("run-eda", help="Render the exploratory figures")
    eda_parser.set_defaults(func=stage_eda)

    all_parser = subparsers.add_parser("run-all", help="Execute the full pipeline sequentially")
    all_parser.set_defaults(func=stage_all)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    paths = _paths(args)
    configure_logging(
        log_dir=paths.logs,
        run_id=datetime.now().strftime("%Y%m%d_%H%M%S"),
        level=args.log_level,
    )
    args.func(args)


if __name__ == "__main__":
    main()

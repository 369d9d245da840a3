from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable

import pandas as pd

from .config import get_project_paths
from .exceptions import SchemaError, SourceError

logger = logging.getLogger(__name__)

ID_COLUMN = "SEQN"

# Join order matters: DEMO is the primary table, the rest are left-joined onto it.
DATA_FILES = {
    "DEMO": "demographics.csv",
    "EXAM": "examination.csv",
    "LAB": "laboratory.csv",
    "DIET": "dietary.csv",
    "QUES": "questionnaire.csv",
}


def load_table(
    path: Path,
    columns: Iterable[str] | None = None,
    *,
    strict: bool = True,
) -> pd.DataFrame:
    """Load one delimited NHANES extract into a DataFrame."""

    path = Path(path)
    if not path.exists():
        raise SourceError(f"Missing expected NHANES file: {path}")
    try:
        df = pd.read_csv(path)
    except (pd.errors.EmptyDataError, pd.errors.ParserError, UnicodeDecodeError) as exc:
        raise SourceError(f"Could not parse {path.name} as a table: {exc}") from exc
    except OSError as exc:
        raise SourceError(f"Could not read {path}: {exc}") from exc

    if ID_COLUMN not in df.columns:
        raise SchemaError(f"Identifier column {ID_COLUMN!r} not found in {path.name}")

    if columns is not None:
        wanted = [ID_COLUMN] + [col for col in columns if col != ID_COLUMN]
        missing_cols = sorted(set(wanted) - set(df.columns))
        if missing_cols and strict:
            raise SchemaError(f"Columns not found in {path.name}: {missing_cols}")
        if missing_cols:
            logger.warning(
                "%s: missing expected columns %s, continuing with available columns.",
                path.name,
                missing_cols,
            )
        df = df[[col for col in wanted if col in df.columns]]

    logger.debug("Loaded %s: %d rows x %d columns", path.name, *df.shape)
    return df


def load_tables(data_dir: Path | None = None) -> Dict[str, pd.DataFrame]:
    """Load the five NHANES extracts keyed by source name."""

    base_dir = Path(data_dir) if data_dir is not None else get_project_paths().data
    tables = {}
    for name, filename in DATA_FILES.items():
        tables[name] = load_table(base_dir / filename)
        logger.info("%s: %d participants", name, len(tables[name]))
    return tables


def _check_unique_ids(name: str, df: pd.DataFrame) -> None:
    if ID_COLUMN not in df.columns:
        raise SchemaError(f"Identifier column {ID_COLUMN!r} not found in table {name}")
    duplicated = df[ID_COLUMN][df[ID_COLUMN].duplicated()]
    if not duplicated.empty:
        raise SchemaError(
            f"Table {name} has {duplicated.nunique()} duplicated {ID_COLUMN} values "
            f"(e.g. {duplicated.iloc[0]!r}); the join would duplicate subjects"
        )


def merge_tables(tables: Dict[str, pd.DataFrame]) -> pd.DataFrame:
    """Left-join every secondary table onto the demographics table by SEQN.

    Every subject of the primary table appears exactly once; columns from a
    secondary table with no matching SEQN are left null.
    """

    required = list(DATA_FILES)
    missing = [name for name in required if name not in tables]
    if missing:
        raise SchemaError(f"Missing tables for merge: {missing}")

    primary, *secondary = required
    for name in required:
        _check_unique_ids(name, tables[name])

    merged = tables[primary]
    for name in secondary:
        merged = merged.merge(
            tables[name],
            on=ID_COLUMN,
            how="left",
            suffixes=("", f"_{name.lower()}"),
        )

    logger.info("Merged dataset: %d participants, %d columns", *merged.shape)
    return merged


def summarise_missing(df: pd.DataFrame, column: str) -> Dict[str, float]:
    """Describe a column and count its nulls."""

    if column not in df.columns:
        raise SchemaError(f"Column {column!r} not found")
    series = df[column]
    stats = series.describe()
    summary = {
        "rows": int(len(series)),
        "nulls": int(series.isna().sum()),
    }
    for key in ("mean", "std", "min", "25%", "50%", "75%", "max"):
        if key in stats.index:
            summary[key] = float(stats[key])
    return summary

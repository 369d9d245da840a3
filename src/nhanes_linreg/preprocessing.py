from __future__ import annotations

import logging
from typing import Callable, Dict, List, Mapping, Sequence, Tuple

import numpy as np
import pandas as pd

from .data import ID_COLUMN
from .exceptions import SchemaError

logger = logging.getLogger(__name__)

RENAME_COLUMNS = {
    "SEQN": ID_COLUMN,
    "RIDAGEYR": "age",
    "RIAGENDR": "sex_code",
    "INDFMPIR": "income_poverty_ratio",
    "BMXBMI": "bmi",
    "LBXTC": "cholesterol",
    "LBXGLU": "glucose",
    "DR1TPROT": "protein_intake",
    "DR1TSUGR": "sugar_intake",
    "DIQ010": "diabetes_code",
}

BMI_LOWER = 10.0
BMI_UPPER = 80.0

REQUIRED_COLUMNS = ["bmi", "cholesterol", "protein_intake"]

SEX_MAP = {1: "Male", 2: "Female"}
DIABETES_MAP = {1: "Yes", 2: "No"}

Predicate = Callable[[pd.Series], pd.Series]
Bands = Sequence[Tuple[Predicate, str]]


def _otherwise(values: pd.Series) -> pd.Series:
    return pd.Series(True, index=values.index)


# Evaluated top to bottom, first match wins, so a boundary value lands in the higher band.
AGE_GROUP_BANDS: Bands = [
    (lambda age: age < 18, "Pediatric"),
    (_otherwise, "Adult"),
]
AGE_GROUP_LEVELS = ["Adult", "Pediatric"]

BMI_BANDS: Bands = [
    (lambda bmi: bmi < 18.5, "Underweight"),
    (lambda bmi: bmi < 25, "Normal"),
    (lambda bmi: bmi < 30, "Overweight"),
    (_otherwise, "Obese"),
]

SES_BANDS: Bands = [
    (lambda ratio: ratio < 1.3, "Low"),
    (lambda ratio: ratio < 3.5, "Middle"),
    (_otherwise, "High"),
]


def select_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Keep the analysis columns and give them semantic names."""

    missing = [col for col in RENAME_COLUMNS if col not in df.columns]
    if missing:
        raise SchemaError(f"Columns not found in merged table: {missing}")
    return df[list(RENAME_COLUMNS)].rename(columns=RENAME_COLUMNS)


def filter_bmi_range(
    df: pd.DataFrame,
    lower: float = BMI_LOWER,
    upper: float = BMI_UPPER,
) -> pd.DataFrame:
    """Drop rows whose BMI is not strictly inside (lower, upper); null BMI is dropped too."""

    mask = (df["bmi"] > lower) & (df["bmi"] < upper)
    logger.info("BMI filter (%s, %s): kept %d of %d rows", lower, upper, int(mask.sum()), len(df))
    return df.loc[mask].copy()


def map_codes(codes: pd.Series, mapping: Mapping[int, str]) -> pd.Series:
    """Map NHANES integer codes to labels; unmapped codes become null."""

    # dict lookup treats 1 and 1.0 alike, so int and float code columns both map.
    labels = codes.map(lambda code: mapping.get(code))
    return pd.Series(
        pd.Categorical(labels, categories=list(dict.fromkeys(mapping.values()))),
        index=codes.index,
        name=codes.name,
    )


def assign_band(
    values: pd.Series,
    bands: Bands,
    levels: List[str] | None = None,
    ordered: bool = True,
) -> pd.Series:
    """Label each value with the first band whose predicate holds.

    Null values stay null. ``levels`` fixes the category order and defaults
    to the band order.
    """

    labels = pd.Series(np.nan, index=values.index, dtype=object)
    unassigned = values.notna()
    for predicate, label in bands:
        hit = unassigned & predicate(values).fillna(False).astype(bool)
        labels[hit] = label
        unassigned &= ~hit

    categories = levels if levels is not None else [label for _, label in bands]
    return pd.Series(
        pd.Categorical(labels, categories=categories, ordered=ordered),
        index=values.index,
    )


def apply_value_labels(df: pd.DataFrame) -> pd.DataFrame:
    """Map sex and diabetes codes to descriptive labels."""

    df = df.copy()
    df["sex"] = map_codes(df["sex_code"], SEX_MAP)
    df["diabetes"] = map_codes(df["diabetes_code"], DIABETES_MAP)
    return df


def derive_categories(df: pd.DataFrame) -> pd.DataFrame:
    """Add age group, BMI category and socioeconomic category."""

    df = df.copy()
    df["age_group"] = assign_band(df["age"], AGE_GROUP_BANDS, levels=AGE_GROUP_LEVELS, ordered=False)
    df["bmi_category"] = assign_band(df["bmi"], BMI_BANDS)
    df["ses_category"] = assign_band(df["income_poverty_ratio"], SES_BANDS)
    return df


def drop_incomplete(df: pd.DataFrame, required: Sequence[str] = tuple(REQUIRED_COLUMNS)) -> pd.DataFrame:
    """Drop rows missing any required numeric field."""

    complete = df.dropna(subset=list(required))
    logger.info(
        "Completeness filter on %s: kept %d of %d rows",
        list(required),
        len(complete),
        len(df),
    )
    return complete


def clean_nhanes(merged: pd.DataFrame) -> pd.DataFrame:
    """Run the cleaning and recoding steps on the merged table.

    Projection, BMI range filter, code labels, derived bands, then the
    completeness filter. The input frame is never modified.
    """

    df = select_columns(merged)
    df = filter_bmi_range(df)
    df = apply_value_labels(df)
    df = derive_categories(df)
    df = drop_incomplete(df)
    return df.reset_index(drop=True)


def describe_clean(df: pd.DataFrame) -> Dict[str, int]:
    """Level counts of the derived categories, for logging."""

    counts: Dict[str, int] = {"rows": int(len(df))}
    for col in ["sex", "age_group", "bmi_category", "ses_category", "diabetes"]:
        for level, count in df[col].value_counts(sort=False).items():
            counts[f"{col}={level}"] = int(count)
    return counts

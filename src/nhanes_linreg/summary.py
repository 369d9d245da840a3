"""Stratified descriptive summary ("Table 1") of the cleaned NHANES table."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from .exceptions import ConfigError

logger = logging.getLogger(__name__)

SUMMARY_VARIABLES = [
    "age",
    "bmi",
    "cholesterol",
    "protein_intake",
    "sugar_intake",
    "ses_category",
]
CATEGORICAL_VARIABLES = ["ses_category"]
STRATA = ["age_group", "sex"]

STAT_COLUMNS = ["stratum", "variable", "level", "n", "mean", "sd", "count", "percent"]


@dataclass(frozen=True)
class SummaryTable:
    """Long-form statistics per stratum plus a p-value per variable."""

    stats: pd.DataFrame
    p_values: pd.Series
    strata: List[str]

    def block(self, stratum: str) -> pd.DataFrame:
        return self.stats[self.stats["stratum"] == stratum].reset_index(drop=True)

    def format(self) -> pd.DataFrame:
        """Render the table with one column per stratum, like a medical Table 1."""

        rows: List[Tuple[str, List[str]]] = []
        n_row = self.stats[self.stats["variable"] == "n"].set_index("stratum")["count"]
        rows.append(("n", [str(int(n_row[s])) for s in self.strata]))

        for variable in self.stats["variable"].drop_duplicates():
            if variable == "n":
                continue
            subset = self.stats[self.stats["variable"] == variable]
            if subset["level"].isna().all():
                cells = []
                for s in self.strata:
                    rec = subset[subset["stratum"] == s].iloc[0]
                    cells.append(_mean_sd(rec["mean"], rec["sd"]))
                rows.append((f"{variable} (mean (SD))", cells))
                continue
            rows.append((f"{variable} (%)", [""] * len(self.strata)))
            for level in subset["level"].drop_duplicates():
                cells = []
                for s in self.strata:
                    rec = subset[(subset["stratum"] == s) & (subset["level"] == level)].iloc[0]
                    cells.append(f"{int(rec['count'])} ({rec['percent']:.1f})")
                rows.append((f"   {level}", cells))

        table = pd.DataFrame(
            [cells for _, cells in rows],
            index=[label for label, _ in rows],
            columns=self.strata,
        )
        p_column = []
        for label in table.index:
            variable = label.split(" (")[0]
            p = self.p_values.get(variable, np.nan) if not label.startswith(" ") else np.nan
            p_column.append(_format_p(p))
        table["p"] = p_column
        return table


def _mean_sd(mean: float, sd: float) -> str:
    if pd.isna(mean):
        return ""
    if pd.isna(sd):
        return f"{mean:.2f} (NA)"
    return f"{mean:.2f} ({sd:.2f})"


def _format_p(p: float) -> str:
    if pd.isna(p):
        return ""
    return "<0.001" if p < 0.001 else f"{p:.3f}"


def _levels(series: pd.Series) -> List[str]:
    if isinstance(series.dtype, pd.CategoricalDtype):
        return [str(level) for level in series.cat.categories]
    return sorted(str(level) for level in series.dropna().unique())


def stratum_label(values: Sequence[str]) -> str:
    return ":".join(values)


def _continuous_p_value(groups: List[pd.Series]) -> float:
    non_empty = [g for g in groups if len(g) > 0]
    if len(non_empty) < 2 or sum(len(g) for g in non_empty) <= len(non_empty):
        return np.nan
    return float(stats.f_oneway(*non_empty).pvalue)


def _categorical_p_value(table: pd.DataFrame) -> float:
    table = table.loc[table.sum(axis=1) > 0, table.sum(axis=0) > 0]
    if table.shape[0] < 2 or table.shape[1] < 2:
        return np.nan
    return float(stats.chi2_contingency(table.to_numpy()).pvalue)


def compute_summary(
    df: pd.DataFrame,
    variables: Sequence[str] = tuple(SUMMARY_VARIABLES),
    strata: Sequence[str] = tuple(STRATA),
    categorical: Sequence[str] = tuple(CATEGORICAL_VARIABLES),
) -> SummaryTable:
    """Summarise ``variables`` within every combination of ``strata`` levels.

    Continuous variables get mean and SD, categorical variables a count and
    percentage per level. Strata with no rows are kept with zero counts.
    """

    missing_strata = [col for col in strata if col not in df.columns]
    if missing_strata:
        raise ConfigError(f"Stratification columns not found: {missing_strata}")
    missing_vars = [col for col in variables if col not in df.columns]
    if missing_vars:
        raise ConfigError(f"Summary variables not found: {missing_vars}")

    level_sets = [_levels(df[col]) for col in strata]
    combos = list(itertools.product(*level_sets))
    labels = [stratum_label(combo) for combo in combos]

    # Compare strata as strings so numeric and categorical grouping columns behave alike.
    keys = {col: df[col].astype(str).where(df[col].notna()) for col in strata}
    records = []
    subsets = {}
    for combo, label in zip(combos, labels):
        mask = np.ones(len(df), dtype=bool)
        for col, level in zip(strata, combo):
            mask &= (keys[col] == level).to_numpy()
        subset = df.loc[mask]
        subsets[label] = subset
        records.append(
            {"stratum": label, "variable": "n", "level": None, "n": len(subset), "count": len(subset)}
        )
        for variable in variables:
            values = subset[variable]
            if variable in categorical:
                observed = values.dropna().astype(str)
                total = len(observed)
                for level in _levels(df[variable]):
                    count = int((observed == level).sum())
                    records.append(
                        {
                            "stratum": label,
                            "variable": variable,
                            "level": level,
                            "n": total,
                            "count": count,
                            "percent": 100.0 * count / total if total else 0.0,
                        }
                    )
            else:
                numeric = pd.to_numeric(values, errors="coerce").dropna()
                records.append(
                    {
                        "stratum": label,
                        "variable": variable,
                        "level": None,
                        "n": len(subset),
                        "mean": float(numeric.mean()) if len(numeric) else np.nan,
                        "sd": float(numeric.std(ddof=1)) if len(numeric) > 1 else np.nan,
                        "count": int(len(numeric)),
                    }
                )

    stats_df = pd.DataFrame.from_records(records, columns=STAT_COLUMNS)

    p_values = {}
    for variable in variables:
        if variable in categorical:
            counts = (
                stats_df[stats_df["variable"] == variable]
                .pivot(index="stratum", columns="level", values="count")
                .fillna(0)
            )
            p_values[variable] = _categorical_p_value(counts)
        else:
            groups = [pd.to_numeric(subsets[s][variable], errors="coerce").dropna() for s in labels]
            p_values[variable] = _continuous_p_value(groups)

    logger.info("Summary table: %d strata x %d variables", len(labels), len(variables))
    return SummaryTable(stats=stats_df, p_values=pd.Series(p_values, dtype=float), strata=labels)

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Sequence, Tuple

import joblib
import pandas as pd
import statsmodels.formula.api as smf
from statsmodels.regression.linear_model import RegressionResultsWrapper

from .exceptions import FitError, SchemaError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelSpec:
    """An OLS model: response, the columns it reads, and its patsy formula."""

    name: str
    response: str
    variables: Tuple[str, ...]
    formula: str
    n_predictors: int

    @property
    def min_rows(self) -> int:
        return self.n_predictors + 1


MODEL_SPECS: Dict[str, ModelSpec] = {
    # Does protein intake and BMI affect cholesterol?
    "cholesterol_model": ModelSpec(
        name="cholesterol_model",
        response="cholesterol",
        variables=("protein_intake", "age", "sex", "bmi"),
        formula="cholesterol ~ protein_intake + age + sex + bmi",
        n_predictors=4,
    ),
    # Does the effect of sugar on glucose differ between adults and children?
    "glucose_model": ModelSpec(
        name="glucose_model",
        response="glucose",
        variables=("sugar_intake", "age_group"),
        formula="glucose ~ sugar_intake * age_group",
        n_predictors=3,
    ),
}


@dataclass
class ModelResult:
    name: str
    formula: str
    nobs: int
    coefficients: pd.DataFrame
    rsquared: float
    rsquared_adj: float
    fvalue: float
    f_pvalue: float
    results: RegressionResultsWrapper

    def summary_text(self) -> str:
        return self.results.summary(title=self.name).as_text()

    def metrics(self) -> Dict[str, float]:
        return {
            "nobs": self.nobs,
            "rsquared": self.rsquared,
            "rsquared_adj": self.rsquared_adj,
            "fvalue": self.fvalue,
            "f_pvalue": self.f_pvalue,
        }


def model_frame(df: pd.DataFrame, spec: ModelSpec) -> pd.DataFrame:
    """Rows complete for this model's variables only."""

    columns = [spec.response, *spec.variables]
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise SchemaError(f"{spec.name}: columns not found: {missing}")

    frame = df[columns].dropna().copy()
    for col in frame.columns:
        if isinstance(frame[col].dtype, pd.CategoricalDtype):
            # Unobserved levels would add all-zero dummy columns.
            frame[col] = frame[col].cat.remove_unused_categories()
    return frame


def coefficient_table(results: RegressionResultsWrapper) -> pd.DataFrame:
    conf_int = results.conf_int()
    table = pd.DataFrame(
        {
            "coef": results.params,
            "std_err": results.bse,
            "t": results.tvalues,
            "p_value": results.pvalues,
            "ci_lower": conf_int[0],
            "ci_upper": conf_int[1],
        }
    )
    table.index.name = "term"
    return table


def fit_ols(df: pd.DataFrame, spec: ModelSpec) -> ModelResult:
    """Fit one OLS model on the rows that are complete for it."""

    frame = model_frame(df, spec)
    if len(frame) < spec.min_rows:
        raise FitError(
            f"{spec.name}: {len(frame)} complete rows, need at least {spec.min_rows}"
        )
    logger.info("Fitting %s on %d complete rows: %s", spec.name, len(frame), spec.formula)

    results = smf.ols(spec.formula, data=frame).fit()
    return ModelResult(
        name=spec.name,
        formula=spec.formula,
        nobs=int(results.nobs),
        coefficients=coefficient_table(results),
        rsquared=float(results.rsquared),
        rsquared_adj=float(results.rsquared_adj),
        fvalue=float(results.fvalue),
        f_pvalue=float(results.f_pvalue),
        results=results,
    )


def fit_models(
    df: pd.DataFrame,
    specs: Sequence[ModelSpec] | None = None,
) -> Dict[str, ModelResult]:
    """Fit each model independently; one model's missing data never affects another."""

    if specs is None:
        specs = list(MODEL_SPECS.values())
    return {spec.name: fit_ols(df, spec) for spec in specs}


def persist_results(
    results: Dict[str, ModelResult],
    models_dir: Path,
) -> Dict[str, Dict[str, float]]:
    """Write coefficients, text summary and pickled fit for every model."""

    metrics: Dict[str, Dict[str, float]] = {}
    for name, result in results.items():
        model_dir = Path(models_dir) / name
        model_dir.mkdir(parents=True, exist_ok=True)

        joblib.dump(result.results, model_dir / "results.pkl")
        result.coefficients.to_csv(model_dir / "coefficients.csv")
        (model_dir / "summary.txt").write_text(result.summary_text(), encoding="utf-8")
        metrics[name] = result.metrics()
        logger.debug("Saved %s artifacts to %s", name, model_dir)

    return metrics

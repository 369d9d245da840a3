from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, List

import matplotlib
matplotlib.use('Agg')  # Use non-GUI backend to avoid tkinter errors
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
import statsmodels.formula.api as smf

from .exceptions import SchemaError

logger = logging.getLogger(__name__)

CORRELATION_VARIABLES = [
    "age",
    "bmi",
    "cholesterol",
    "glucose",
    "protein_intake",
    "sugar_intake",
]

AGE_GROUP_PALETTE = {"Adult": "#2c3e50", "Pediatric": "#e74c3c"}
SEX_PALETTE = {"Male": "#4e79a7", "Female": "#f28e2b"}
HISTOGRAM_BINS = 30


def save_plot(fig: plt.Figure, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    if fig.get_layout_engine() is None:
        fig.tight_layout()
    fig.savefig(output_path, dpi=150)
    plt.close(fig)
    logger.debug("Saved figure %s", output_path)


def _require(df: pd.DataFrame, columns: Iterable[str]) -> None:
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise SchemaError(f"Columns required for plotting not found: {missing}")


def _levels(series: pd.Series) -> List[str]:
    if isinstance(series.dtype, pd.CategoricalDtype):
        return list(series.cat.categories)
    return sorted(series.dropna().unique())


def compute_clinical_correlation(df: pd.DataFrame) -> pd.DataFrame:
    """Pearson correlation over rows complete for all clinical variables."""

    _require(df, CORRELATION_VARIABLES)
    complete = df[CORRELATION_VARIABLES].dropna()
    logger.info("Correlation matrix on %d complete rows", len(complete))
    return complete.corr()


def _add_legend(ax: plt.Axes, title: str) -> None:
    if ax.get_legend_handles_labels()[0]:
        ax.legend(title=title, fontsize="small")


def draw_bmi_density(df: pd.DataFrame, ax: plt.Axes) -> None:
    # One layer per age group; a density needs at least two points.
    for age_group, color in AGE_GROUP_PALETTE.items():
        values = df.loc[df["age_group"] == age_group, "bmi"].dropna()
        if len(values) < 2:
            continue
        sns.kdeplot(
            x=values,
            color=color,
            fill=True,
            alpha=0.5,
            warn_singular=False,
            label=age_group,
            ax=ax,
        )
    ax.set_title("BMI Distribution by Age Group")
    ax.set_xlabel("BMI")
    ax.set_ylabel("Density")
    _add_legend(ax, "Age group")


def draw_cholesterol_vs_protein(df: pd.DataFrame, ax: plt.Axes) -> None:
    # Points per sex with a linear fit and 95% confidence band for the mean.
    for sex, color in SEX_PALETTE.items():
        subset = df.loc[df["sex"] == sex, ["protein_intake", "cholesterol"]].dropna()
        if subset.empty:
            continue
        ax.scatter(
            subset["protein_intake"],
            subset["cholesterol"],
            color=color,
            alpha=0.2,
            s=20,
            label=sex,
        )
        if len(subset) < 3 or subset["protein_intake"].nunique() < 2:
            continue
        fit = smf.ols("cholesterol ~ protein_intake", data=subset).fit()
        grid = pd.DataFrame(
            {"protein_intake": np.linspace(subset["protein_intake"].min(), subset["protein_intake"].max(), 100)}
        )
        pred = fit.get_prediction(grid).summary_frame(alpha=0.05)
        ax.plot(grid["protein_intake"], pred["mean"], color=color, linewidth=2)
        ax.fill_between(
            grid["protein_intake"],
            pred["mean_ci_lower"],
            pred["mean_ci_upper"],
            color=color,
            alpha=0.2,
        )
    ax.set_title("Cholesterol vs. Protein Intake")
    ax.set_xlabel("Protein intake (g)")
    ax.set_ylabel("Total cholesterol (mg/dL)")
    _add_legend(ax, "Sex")


def draw_glucose_by_diabetes(df: pd.DataFrame, ax: plt.Axes) -> None:
    plot_data = df.dropna(subset=["glucose", "diabetes"])
    if not plot_data.empty:
        sns.boxplot(
            data=plot_data,
            x="diabetes",
            y="glucose",
            hue="diabetes",
            palette="Set2",
            notch=True,
            legend=False,
            ax=ax,
        )
    ax.set_title("Glucose Metric by Diagnosis")
    ax.set_xlabel("Diabetes")
    ax.set_ylabel("Plasma Glucose (mg/dL)")


def draw_bmi_by_ses(df: pd.DataFrame, ax: plt.Axes) -> None:
    # Full level grid, so a level with no rows still gets a (zero) bar.
    pairs = df[["ses_category", "bmi_category"]].dropna()
    counts = pd.crosstab(pairs["ses_category"], pairs["bmi_category"]) if not pairs.empty else pd.DataFrame()
    counts = counts.reindex(
        index=_levels(df["ses_category"]),
        columns=_levels(df["bmi_category"]),
        fill_value=0,
    )
    proportions = counts.div(counts.sum(axis=1), axis=0).fillna(0.0).astype(float)
    if not proportions.empty:
        colors = sns.color_palette("viridis", n_colors=max(len(proportions.columns), 1))
        proportions.plot(kind="bar", stacked=True, color=colors, width=0.8, ax=ax)
    ax.set_title("BMI Distribution across SES")
    ax.set_xlabel("SES")
    ax.set_ylabel("Proportion")
    ax.set_ylim(0, 1)
    ax.tick_params(axis="x", labelrotation=0)
    _add_legend(ax, "BMI category")


def draw_cholesterol_facets(df: pd.DataFrame, axes: np.ndarray) -> None:
    """Cholesterol histograms, sex in rows and age group in columns, shared bins."""

    values = df["cholesterol"].dropna()
    bins = np.histogram_bin_edges(values, bins=HISTOGRAM_BINS) if len(values) else HISTOGRAM_BINS
    for i, sex in enumerate(_levels(df["sex"])):
        for j, age_group in enumerate(_levels(df["age_group"])):
            ax = axes[i, j]
            subset = df.loc[(df["sex"] == sex) & (df["age_group"] == age_group), "cholesterol"].dropna()
            ax.hist(subset, bins=bins, color="steelblue", edgecolor="white")
            ax.set_title(f"{sex} | {age_group}", fontsize="medium")
            ax.set_xlabel("Cholesterol" if i == axes.shape[0] - 1 else "")
            ax.set_ylabel("Count" if j == 0 else "")


def _facet_shape(df: pd.DataFrame) -> tuple[int, int]:
    return max(len(_levels(df["sex"])), 1), max(len(_levels(df["age_group"])), 1)


def plot_bmi_density(df: pd.DataFrame, output_path: Path) -> None:
    _require(df, ["bmi", "age_group"])
    fig, ax = plt.subplots(figsize=(8, 5))
    draw_bmi_density(df, ax)
    save_plot(fig, output_path)


def plot_cholesterol_vs_protein(df: pd.DataFrame, output_path: Path) -> None:
    _require(df, ["protein_intake", "cholesterol", "sex"])
    fig, ax = plt.subplots(figsize=(8, 5))
    draw_cholesterol_vs_protein(df, ax)
    save_plot(fig, output_path)


def plot_overview(df: pd.DataFrame, output_path: Path) -> None:
    """BMI density stacked above the cholesterol/protein scatter."""

    _require(df, ["bmi", "age_group", "protein_intake", "cholesterol", "sex"])
    fig, (top, bottom) = plt.subplots(2, 1, figsize=(8, 10))
    draw_bmi_density(df, top)
    draw_cholesterol_vs_protein(df, bottom)
    save_plot(fig, output_path)


def plot_correlation_heatmap(
    corr: pd.DataFrame,
    output_path: Path,
    upper_only: bool = True,
) -> None:
    mask = np.tril(np.ones(corr.shape, dtype=bool), k=-1) if upper_only else np.zeros(corr.shape, dtype=bool)
    # Undefined correlations (no complete rows, constant columns) are left blank.
    mask = mask | corr.isna().to_numpy()
    fig, ax = plt.subplots(figsize=(8, 7))
    if mask.all():
        ax.text(0.5, 0.5, "No complete rows", ha="center", va="center", transform=ax.transAxes)
        ax.set_axis_off()
        ax.set_title("Clinical Variable Correlations")
        save_plot(fig, output_path)
        return
    sns.heatmap(
        corr,
        mask=mask,
        cmap="coolwarm",
        center=0,
        vmin=-1,
        vmax=1,
        annot=True,
        fmt=".2f",
        square=True,
        linewidths=0.5,
        cbar_kws={"shrink": 0.8},
        ax=ax,
    )
    ax.set_title("Clinical Variable Correlations")
    ax.tick_params(axis="x", labelrotation=45)
    save_plot(fig, output_path)


def plot_glucose_by_diabetes(df: pd.DataFrame, output_path: Path) -> None:
    _require(df, ["glucose", "diabetes"])
    fig, ax = plt.subplots(figsize=(6, 5))
    draw_glucose_by_diabetes(df, ax)
    save_plot(fig, output_path)


def plot_bmi_by_ses(df: pd.DataFrame, output_path: Path) -> None:
    _require(df, ["ses_category", "bmi_category"])
    fig, ax = plt.subplots(figsize=(7, 5))
    draw_bmi_by_ses(df, ax)
    save_plot(fig, output_path)


def plot_cholesterol_facets(df: pd.DataFrame, output_path: Path) -> None:
    _require(df, ["cholesterol", "sex", "age_group"])
    nrows, ncols = _facet_shape(df)
    fig, axes = plt.subplots(nrows, ncols, figsize=(4 * ncols, 3 * nrows), sharex=True, sharey=True, squeeze=False)
    draw_cholesterol_facets(df, axes)
    fig.suptitle("Cholesterol Distribution Facets")
    save_plot(fig, output_path)


def plot_dashboard(df: pd.DataFrame, output_path: Path) -> None:
    """Glucose boxplot and SES bars, cholesterol facets, then density and scatter."""

    _require(
        df,
        ["glucose", "diabetes", "ses_category", "bmi_category", "cholesterol",
         "sex", "age_group", "bmi", "protein_intake"],
    )
    fig = plt.figure(figsize=(14, 18), layout="constrained")
    top, middle, bottom = fig.subfigures(3, 1, height_ratios=[1, 1.2, 1])

    left, right = top.subplots(1, 2)
    draw_glucose_by_diabetes(df, left)
    draw_bmi_by_ses(df, right)

    nrows, ncols = _facet_shape(df)
    facet_axes = middle.subplots(nrows, ncols, sharex=True, sharey=True, squeeze=False)
    draw_cholesterol_facets(df, facet_axes)
    middle.suptitle("Cholesterol Distribution Facets")

    left, right = bottom.subplots(1, 2)
    draw_bmi_density(df, left)
    draw_cholesterol_vs_protein(df, right)
    save_plot(fig, output_path)


def render_all(df: pd.DataFrame, fig_dir: Path) -> Dict[str, Path]:
    """Render every exploratory chart into ``fig_dir``."""

    fig_dir = Path(fig_dir)
    outputs = {
        "overview": fig_dir / "bmi_density_cholesterol_protein.png",
        "correlation_upper": fig_dir / "clinical_correlation_upper.png",
        "correlation_full": fig_dir / "clinical_correlation_full.png",
        "glucose_by_diabetes": fig_dir / "glucose_by_diabetes.png",
        "bmi_by_ses": fig_dir / "bmi_category_by_ses.png",
        "cholesterol_facets": fig_dir / "cholesterol_facets.png",
        "dashboard": fig_dir / "dashboard.png",
    }

    corr = compute_clinical_correlation(df)
    plot_overview(df, outputs["overview"])
    plot_correlation_heatmap(corr, outputs["correlation_upper"], upper_only=True)
    plot_correlation_heatmap(corr, outputs["correlation_full"], upper_only=False)
    plot_glucose_by_diabetes(df, outputs["glucose_by_diabetes"])
    plot_bmi_by_ses(df, outputs["bmi_by_ses"])
    plot_cholesterol_facets(df, outputs["cholesterol_facets"])
    plot_dashboard(df, outputs["dashboard"])

    logger.info("Rendered %d figures to %s", len(outputs), fig_dir)
    return outputs

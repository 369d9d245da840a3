from __future__ import annotations

from pathlib import Path
from typing import Dict

import numpy as np
import pandas as pd
import pytest

from nhanes_linreg import data as data_module
from nhanes_linreg import preprocessing


def make_nhanes_tables(n: int = 80, seed: int = 7) -> Dict[str, pd.DataFrame]:
    """Synthetic NHANES extracts with a few rows that the cleaning must drop."""

    rng = np.random.default_rng(seed)
    seqn = np.arange(1, n + 1)

    pir = rng.uniform(0.0, 5.0, n).round(2)
    pir[::9] = np.nan
    demo = pd.DataFrame(
        {
            "SEQN": seqn,
            "RIDAGEYR": rng.integers(2, 80, n),
            "RIAGENDR": np.where(seqn % 2 == 0, 2, 1),
            "INDFMPIR": pir,
            "RIDRETH3": rng.integers(1, 7, n),
        }
    )

    bmi = rng.normal(27, 5, n).clip(12, 60).round(1)
    bmi[0] = 9.5
    bmi[1] = 85.0
    bmi[2] = np.nan
    exam = pd.DataFrame({"SEQN": seqn, "BMXBMI": bmi, "BMXWT": rng.normal(75, 15, n).round(1)})

    glucose = rng.normal(100, 20, n).round(0)
    glucose[5::11] = np.nan
    cholesterol = rng.normal(190, 35, n).round(0)
    cholesterol[3] = np.nan
    # The last five subjects have no laboratory record at all.
    lab = pd.DataFrame({"SEQN": seqn, "LBXTC": cholesterol, "LBXGLU": glucose}).iloc[:-5]

    diet = pd.DataFrame(
        {
            "SEQN": seqn,
            "DR1TPROT": np.abs(rng.normal(80, 25, n)).round(1),
            "DR1TSUGR": np.abs(rng.normal(100, 40, n)).round(1),
        }
    )
    ques = pd.DataFrame({"SEQN": seqn, "DIQ010": rng.choice([1, 2, 2, 2, 9], n)})

    return {"DEMO": demo, "EXAM": exam, "LAB": lab, "DIET": diet, "QUES": ques}


@pytest.fixture
def raw_tables() -> Dict[str, pd.DataFrame]:
    return make_nhanes_tables()


@pytest.fixture
def data_dir(tmp_path: Path, raw_tables: Dict[str, pd.DataFrame]) -> Path:
    directory = tmp_path / "data"
    directory.mkdir()
    for name, filename in data_module.DATA_FILES.items():
        raw_tables[name].to_csv(directory / filename, index=False)
    return directory


@pytest.fixture
def merged(raw_tables: Dict[str, pd.DataFrame]) -> pd.DataFrame:
    return data_module.merge_tables(raw_tables)


@pytest.fixture
def clean(merged: pd.DataFrame) -> pd.DataFrame:
    return preprocessing.clean_nhanes(merged)

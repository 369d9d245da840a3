import json

import pandas as pd
import pytest

from nhanes_linreg import cli


def _run(tmp_path, data_dir, *command):
    cli.main(["--data-dir", str(data_dir), "--project-root", str(tmp_path), *command])


def test_run_all_produces_outputs(tmp_path, data_dir, capsys):
    _run(tmp_path, data_dir, "run-all")
    outputs = tmp_path / "outputs"

    clean = pd.read_parquet(outputs / "nhanes_clean.parquet")
    assert ((clean["bmi"] > 10) & (clean["bmi"] < 80)).all()
    assert (outputs / "summary_table.csv").exists()

    metrics = json.loads((outputs / "model_results.json").read_text(encoding="utf-8"))
    assert set(metrics) == {"cholesterol_model", "glucose_model"}
    assert len(list((outputs / "figures").glob("*.png"))) == 7
    assert list((outputs / "logs").glob("*.log"))

    printed = capsys.readouterr().out
    assert "Summary by age group and sex" in printed
    assert "OLS Regression Results" in printed or "cholesterol_model" in printed


def test_single_stages_read_the_cleaned_table(tmp_path, data_dir):
    _run(tmp_path, data_dir, "load-data")
    _run(tmp_path, data_dir, "summarize")
    _run(tmp_path, data_dir, "fit-models")
    assert (tmp_path / "outputs" / "models" / "glucose_model" / "coefficients.csv").exists()


def test_stage_without_cleaned_table_fails(tmp_path, data_dir):
    with pytest.raises(FileNotFoundError, match="load-data"):
        _run(tmp_path, data_dir, "fit-models")


def test_command_is_required():
    with pytest.raises(SystemExit):
        cli.main([])

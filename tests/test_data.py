import pandas as pd
import pytest

from nhanes_linreg import data as data_module
from nhanes_linreg.exceptions import SchemaError, SourceError


def _single_row_tables(secondary_seqn=1):
    return {
        "DEMO": pd.DataFrame({"SEQN": [1], "RIDAGEYR": [40]}),
        "EXAM": pd.DataFrame({"SEQN": [secondary_seqn], "BMXBMI": [24.0]}),
        "LAB": pd.DataFrame({"SEQN": [secondary_seqn], "LBXTC": [180.0]}),
        "DIET": pd.DataFrame({"SEQN": [secondary_seqn], "DR1TPROT": [70.0]}),
        "QUES": pd.DataFrame({"SEQN": [secondary_seqn], "DIQ010": [2]}),
    }


def test_merge_matching_rows_populates_all_columns():
    merged = data_module.merge_tables(_single_row_tables())
    assert merged.shape == (1, 6)
    assert merged.notna().all(axis=None)


def test_merge_non_matching_secondary_leaves_nulls():
    merged = data_module.merge_tables(_single_row_tables(secondary_seqn=99))
    assert len(merged) == 1
    assert merged.loc[0, "SEQN"] == 1
    assert merged.loc[0, "RIDAGEYR"] == 40
    assert merged[["BMXBMI", "LBXTC", "DR1TPROT", "DIQ010"]].isna().all(axis=None)


def test_merge_keeps_every_primary_subject_once(raw_tables):
    merged = data_module.merge_tables(raw_tables)
    assert len(merged) == len(raw_tables["DEMO"])
    assert merged["SEQN"].is_unique
    # subjects without a laboratory record are kept with null lab values
    assert merged.tail(5)["LBXTC"].isna().all()


def test_merge_rejects_duplicate_ids(raw_tables):
    raw_tables["DIET"] = pd.concat([raw_tables["DIET"], raw_tables["DIET"].head(1)])
    with pytest.raises(SchemaError, match="duplicated"):
        data_module.merge_tables(raw_tables)


def test_merge_requires_all_tables(raw_tables):
    del raw_tables["QUES"]
    with pytest.raises(SchemaError, match="QUES"):
        data_module.merge_tables(raw_tables)


def test_load_tables_reads_all_sources(data_dir):
    tables = data_module.load_tables(data_dir)
    assert list(tables) == list(data_module.DATA_FILES)
    assert all("SEQN" in df.columns for df in tables.values())


def test_load_table_missing_file(tmp_path):
    with pytest.raises(SourceError):
        data_module.load_table(tmp_path / "nope.csv")


def test_load_table_empty_file(tmp_path):
    path = tmp_path / "empty.csv"
    path.write_text("")
    with pytest.raises(SourceError):
        data_module.load_table(path)


def test_load_table_without_identifier(tmp_path):
    path = tmp_path / "exam.csv"
    pd.DataFrame({"ID": [1], "BMXBMI": [22.0]}).to_csv(path, index=False)
    with pytest.raises(SchemaError, match="SEQN"):
        data_module.load_table(path)


def test_load_table_column_projection(tmp_path):
    path = tmp_path / "exam.csv"
    pd.DataFrame({"SEQN": [1], "BMXBMI": [22.0], "BMXWT": [70.0]}).to_csv(path, index=False)
    df = data_module.load_table(path, ["BMXBMI"])
    assert list(df.columns) == ["SEQN", "BMXBMI"]
    with pytest.raises(SchemaError):
        data_module.load_table(path, ["BMXWAIST"])
    relaxed = data_module.load_table(path, ["BMXWAIST", "BMXWT"], strict=False)
    assert list(relaxed.columns) == ["SEQN", "BMXWT"]


def test_summarise_missing_counts_nulls(merged):
    result = data_module.summarise_missing(merged, "BMXBMI")
    assert result["rows"] == len(merged)
    assert result["nulls"] == 1
    assert result["min"] == 9.5
    assert result["max"] == 85.0


def test_load_table_malformed_rows(tmp_path):
    path = tmp_path / "lab.csv"
    path.write_text("SEQN,LBXTC\n1,180\n2,190,7,8\n")
    with pytest.raises(SourceError, match="lab.csv"):
        data_module.load_table(path)


def test_load_table_not_utf8(tmp_path):
    path = tmp_path / "ques.csv"
    path.write_bytes(b"SEQN,DIQ010\n1,\xff\xfe\x80\n")
    with pytest.raises(SourceError, match="ques.csv"):
        data_module.load_table(path)

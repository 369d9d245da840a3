"""
NHANES cholesterol and glucose regression analysis package.

Joins the NHANES demographic, examination, laboratory, dietary and
questionnaire extracts, cleans and recodes the clinical variables, and
produces a stratified summary table, two OLS models and a set of
exploratory figures.
"""

__all__ = [
    "config",
    "data",
    "preprocessing",
    "summary",
    "modeling",
    "eda",
    "exceptions",
    "cli",
]

__version__ = "0.1.0"

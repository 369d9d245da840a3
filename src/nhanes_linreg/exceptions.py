"""Error types raised by the NHANES analysis pipeline.

Every error is fatal for a run: stages raise, nothing is retried.
"""

from __future__ import annotations


class NhanesAnalysisError(Exception):
    """Base class for all pipeline errors."""


class SourceError(NhanesAnalysisError, OSError):
    """An input file is missing, unreadable, or not parseable as a table."""


class SchemaError(NhanesAnalysisError, ValueError):
    """An expected column is absent or a source violates the join key contract."""


class FitError(NhanesAnalysisError, ValueError):
    """Not enough complete rows to fit a regression model."""


class ConfigError(NhanesAnalysisError, ValueError):
    """A configured grouping or summary variable is missing from the table."""

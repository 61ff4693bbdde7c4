from __future__ import annotations


class EngineError(Exception):
    """Base class for misuse of the scoring engine (never raised for bad data)."""


class DimensionError(EngineError, ValueError):
    """Raised when an unknown aggregation dimension is requested."""


class ComparisonError(EngineError, ValueError):
    """Raised when the firm comparison is asked to sort by an unknown column."""

"""Utility modules for the request optimizer."""

from .stats import pearson_correlation, percentile

__all__ = [
    "pearson_correlation",
    "percentile",
]

"""Derived views over stored funding history: APR and series integrity."""

from funding_arb.analytics.apr import AprCalculator, compute_apr_from_records
from funding_arb.analytics.integrity import IntegrityChecker, IntegrityReport

__all__ = [
    "AprCalculator",
    "IntegrityChecker",
    "IntegrityReport",
    "compute_apr_from_records",
]

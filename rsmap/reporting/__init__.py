"""Reporting module for plausibility testing."""

from rsmap.reporting.plausibility import PlausibilityReport, plausibility_test

__all__ = [
    "PlausibilityReport",
    "plausibility_test",
]

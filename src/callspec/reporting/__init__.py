"""Check evaluation and pass/fail/error reporting."""

from callspec.reporting.reporter import AssertionReporter, check, default_reporter

__all__ = [
    "AssertionReporter",
    "check",
    "default_reporter",
]

"""Stable constants shared across callspec components."""

from __future__ import annotations

from typing import Final

# Keyword under which post-check procedures receive the produced value.
RESULT_BINDING: Final[str] = "result"

# Attributes stamped onto instrumented wrappers.
IDENTITY_ATTRIBUTE: Final[str] = "__callspec_identity__"
WRAPPED_ATTRIBUTE: Final[str] = "__callspec_wrapped__"
INSTRUMENTED_ATTRIBUTE: Final[str] = "__callspec_wrapper__"

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
REPORT_SCHEMA_VERSION: Final[int] = 1

# Config discovery.
DEFAULT_CONFIG_FILE: Final[str] = "callspec.toml"
PYPROJECT_FILE: Final[str] = "pyproject.toml"
ENV_PREFIX: Final[str] = "CALLSPEC_"

# Reporter bounds.
DEFAULT_MAX_HISTORY: Final[int] = 1000
DEFAULT_MAX_DETAIL_LENGTH: Final[int] = 2048

__all__ = [
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_MAX_DETAIL_LENGTH",
    "DEFAULT_MAX_HISTORY",
    "ENV_PREFIX",
    "IDENTITY_ATTRIBUTE",
    "INSTRUMENTED_ATTRIBUTE",
    "PYPROJECT_FILE",
    "REPORT_SCHEMA_VERSION",
    "RESULT_BINDING",
    "WRAPPED_ATTRIBUTE",
]

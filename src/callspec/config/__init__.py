"""Configuration loading and validation."""

from callspec.config.loader import (
    ConfigLoadError,
    dump_effective_config,
    load_config,
    normalize_paths,
)
from callspec.config.schema import (
    DEFAULT_CONFIG,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    assert_valid_config,
    default_config,
    merge_config,
    reporting_options,
    validate_config,
)

__all__ = [
    "DEFAULT_CONFIG",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "load_config",
    "merge_config",
    "normalize_paths",
    "reporting_options",
    "validate_config",
]

"""
callspec — config schema, defaults and validation.

File: src/callspec/config/schema.py

Schema (``schema_version = 1``)
- ``[reporting]``: ``record_passes``, ``max_history``, ``max_detail_length``,
  ``export_path`` (empty disables export).
- ``[observability]``: ``log_level``, ``log_dir`` (empty disables the file
  sink), ``log_to_stderr``, ``json``.

Validation walks sections and keys in sorted order and reports every problem
at once as ``ConfigValidationIssue(path, message)``. Unknown sections and keys
are issues too, so a misspelled key never falls back to its default silently.
"""

from __future__ import annotations

import copy
from collections.abc import Callable, Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, TypedDict

from callspec.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_MAX_DETAIL_LENGTH,
    DEFAULT_MAX_HISTORY,
)

_LOG_LEVELS: Final[tuple[str, ...]] = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")

# (section, key) pairs holding filesystem paths; the loader anchors them.
PATH_FIELDS: Final[tuple[tuple[str, str], ...]] = (
    ("reporting", "export_path"),
    ("observability", "log_dir"),
)

# Options forwarded to ``AssertionReporter.configure``.
_REPORTER_KEYS: Final[tuple[str, ...]] = ("record_passes", "max_history", "max_detail_length")


class MetaConfig(TypedDict):
    schema_version: int


class ReportingConfig(TypedDict):
    record_passes: bool
    max_history: int
    max_detail_length: int
    export_path: str


class ObservabilityConfig(TypedDict):
    log_level: str
    log_dir: str
    log_to_stderr: bool
    json: bool


class CallspecConfig(TypedDict):
    meta: MetaConfig
    reporting: ReportingConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[CallspecConfig] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "reporting": {
        "record_passes": False,
        "max_history": DEFAULT_MAX_HISTORY,
        "max_detail_length": DEFAULT_MAX_DETAIL_LENGTH,
        "export_path": "",
    },
    "observability": {
        "log_level": "WARNING",
        "log_dir": "",
        "log_to_stderr": False,
        "json": True,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """One problem found in a config table, addressed by dotted path."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return not self.issues


class ConfigValidationError(ValueError):
    """A config table failed validation; ``issues`` lists every problem."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "- <root>: rejected"))


class _Invalid(Exception):
    """Internal signal from a field check; never escapes this module."""


# A field check returns the normalized value or raises ``_Invalid``.
_FieldCheck = Callable[[object], object]


def _type_name(value: object) -> str:
    return type(value).__name__


def _boolean(value: object) -> object:
    if not isinstance(value, bool):
        raise _Invalid(f"expected bool, got {_type_name(value)}")
    return value


def _integer(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise _Invalid(f"expected integer, got {_type_name(value)}")
    return value


def _positive(value: object) -> object:
    number = _integer(value)
    if number <= 0:
        raise _Invalid(f"must be a positive integer, got {number}")
    return number


def _text(value: object) -> str:
    if not isinstance(value, str):
        raise _Invalid(f"expected string, got {_type_name(value)}")
    return value.strip()


def _log_level(value: object) -> object:
    level = _text(value).upper()
    if level not in _LOG_LEVELS:
        raise _Invalid(f"unsupported log level {value!r}; use one of {', '.join(_LOG_LEVELS)}")
    return level


def _schema_version(value: object) -> object:
    version = _integer(value)
    if version != CONFIG_SCHEMA_VERSION:
        raise _Invalid(migration_guidance(version))
    return version


_SCHEMA: Final[Mapping[str, Mapping[str, _FieldCheck]]] = {
    "meta": {"schema_version": _schema_version},
    "reporting": {
        "record_passes": _boolean,
        "max_history": _positive,
        "max_detail_length": _positive,
        "export_path": _text,
    },
    "observability": {
        "log_level": _log_level,
        "log_dir": _text,
        "log_to_stderr": _boolean,
        "json": _boolean,
    },
}


def default_config() -> dict[str, Any]:
    """A fresh, mutable copy of ``DEFAULT_CONFIG``."""

    return copy.deepcopy(dict(DEFAULT_CONFIG))


def migration_guidance(found_version: int) -> str:
    """Explain how to resolve a ``meta.schema_version`` mismatch."""

    if found_version > CONFIG_SCHEMA_VERSION:
        return (
            f"schema version {found_version} is newer than supported {CONFIG_SCHEMA_VERSION}; "
            "upgrade callspec"
        )
    return (
        f"schema version {found_version} is older than supported {CONFIG_SCHEMA_VERSION}; "
        "rewrite the config for the current schema"
    )


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Return ``base`` with ``overlay`` merged in; nested tables merge key by key.

    Neither argument is modified; the result shares no mutable state with them.
    """

    merged: dict[str, Any] = {}
    for key in sorted({*base, *overlay}):
        if key not in overlay:
            merged[key] = _copy_value(base[key])
            continue
        lower, upper = base.get(key), overlay[key]
        if isinstance(lower, Mapping) and isinstance(upper, Mapping):
            merged[key] = merge_config(lower, upper)
        else:
            merged[key] = _copy_value(upper)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Check ``config`` against the schema.

    On success ``result.config`` holds the normalized tables (stripped strings,
    upper-cased log level); otherwise it is ``None`` and ``result.issues`` says why.
    """

    normalized: dict[str, Any] = {}
    issues = tuple(_walk(config, normalized))
    return ConfigValidationResult(config=None if issues else normalized, issues=issues)


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return the normalized config or raise ``ConfigValidationError``."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def reporting_options(config: Mapping[str, Any]) -> dict[str, Any]:
    """Keyword arguments for ``AssertionReporter.configure`` from a validated config."""

    reporting = config.get("reporting", {})
    return {key: reporting[key] for key in _REPORTER_KEYS if key in reporting}


def _walk(config: object, normalized: dict[str, Any]) -> Iterator[ConfigValidationIssue]:
    if not isinstance(config, Mapping):
        yield ConfigValidationIssue("<root>", f"expected table, got {_type_name(config)}")
        return
    for section in sorted(config):
        fields = _SCHEMA.get(section)
        table = config[section]
        if fields is None:
            yield ConfigValidationIssue(
                str(section), f"unknown section; expected one of {sorted(_SCHEMA)}"
            )
            continue
        if not isinstance(table, Mapping):
            yield ConfigValidationIssue(section, f"expected table, got {_type_name(table)}")
            continue
        clean = normalized.setdefault(section, {})
        for key in sorted(table):
            path = f"{section}.{key}"
            check = fields.get(key)
            if check is None:
                yield ConfigValidationIssue(path, f"unknown key; expected one of {sorted(fields)}")
                continue
            try:
                clean[key] = check(table[key])
            except _Invalid as exc:
                yield ConfigValidationIssue(path, str(exc))


def _copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return merge_config({}, value)
    return copy.deepcopy(value)


__all__ = [
    "DEFAULT_CONFIG",
    "PATH_FIELDS",
    "CallspecConfig",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "MetaConfig",
    "ObservabilityConfig",
    "ReportingConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "reporting_options",
    "validate_config",
]

"""
callspec — layered config loading.

File: src/callspec/config/loader.py

Layers, lowest first
1. Built-in defaults (``config.schema.DEFAULT_CONFIG``).
2. A TOML file: an explicit path, else ``callspec.toml`` in the search
   directory, else the ``[tool.callspec]`` table of ``pyproject.toml``.
3. ``CALLSPEC_<SECTION>_<KEY>`` environment variables, typed after the default
   value of the key they override.
4. Dotted-key CLI overrides (``{"reporting.max_history": 10}``).

The file layer is validated on its own so that errors point at the file;
the merged result is validated again. Relative paths are resolved against the
directory of the config file (the search directory when no file exists).
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

from callspec.config.schema import (
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
)
from callspec.constants import DEFAULT_CONFIG_FILE, ENV_PREFIX, PYPROJECT_FILE

_TRUE_WORDS: Final[frozenset[str]] = frozenset({"1", "true", "yes", "on", "y", "t"})
_FALSE_WORDS: Final[frozenset[str]] = frozenset({"0", "false", "no", "off", "n", "f"})

# Keys that describe the file format rather than runtime behavior.
_FILE_ONLY_KEYS: Final[frozenset[tuple[str, str]]] = frozenset({("meta", "schema_version")})


class ConfigLoadError(ValueError):
    """Raised when a config file cannot be read or an override cannot be coerced."""


@dataclass(frozen=True, slots=True)
class ConfigSource:
    """The file layer: where it came from and the table it contributed."""

    path: Path | None
    table: Mapping[str, Any] = field(default_factory=dict)

    @property
    def anchor(self) -> Path | None:
        return None if self.path is None else self.path.parent


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
    search_dir: str | Path | None = None,
) -> dict[str, Any]:
    """Return the effective config: CLI > env > file > defaults.

    An explicit ``config_path`` must exist; a ``pyproject.toml`` path contributes
    its ``[tool.callspec]`` table.
    """

    directory = Path.cwd() if search_dir is None else Path(search_dir).expanduser()
    directory = directory.resolve()
    source = discover_config_file(config_path, directory)

    config = assert_valid_config(merge_config(default_config(), source.table))
    config = merge_config(config, env_overrides(os.environ if environ is None else environ))
    config = merge_config(config, _dotted_to_nested(cli_overrides or {}))
    config = assert_valid_config(config)
    return normalize_paths(config, base_dir=source.anchor or directory)


def discover_config_file(config_path: str | Path | None, directory: Path) -> ConfigSource:
    """Locate and read the file layer."""

    if config_path is not None:
        explicit = Path(config_path).expanduser().resolve()
        if not explicit.is_file():
            raise ConfigLoadError(f"config file not found: {explicit}")
        table = _read_toml(explicit)
        if explicit.name == PYPROJECT_FILE:
            table = _tool_section(table, explicit)
        return ConfigSource(explicit, table)

    dedicated = directory / DEFAULT_CONFIG_FILE
    if dedicated.is_file():
        return ConfigSource(dedicated, _read_toml(dedicated))
    pyproject = directory / PYPROJECT_FILE
    if pyproject.is_file():
        return ConfigSource(pyproject, _tool_section(_read_toml(pyproject), pyproject))
    return ConfigSource(None)


def env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    """Collect ``CALLSPEC_*`` overrides for every known scalar key."""

    overrides: dict[str, Any] = {}
    for section, key, default in _known_keys():
        name = f"{ENV_PREFIX}{section.upper()}_{key.upper()}"
        if name not in environ:
            continue
        value = _coerce(environ[name], default, f"{name} ({section}.{key})")
        overrides.setdefault(section, {})[key] = value
    return overrides


def normalize_paths(config: Mapping[str, Any], *, base_dir: Path) -> dict[str, Any]:
    """Resolve non-empty path fields against ``base_dir``; empty strings stay empty."""

    resolved = merge_config({}, config)
    for section, key in PATH_FIELDS:
        raw = resolved.get(section, {}).get(key)
        if isinstance(raw, str) and raw:
            candidate = Path(os.path.expandvars(raw)).expanduser()
            if not candidate.is_absolute():
                candidate = base_dir / candidate
            resolved[section][key] = Path(os.path.normpath(candidate)).as_posix()
    return resolved


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Compact JSON with sorted keys, stable across runs."""

    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _read_toml(path: Path) -> dict[str, Any]:
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _tool_section(document: Mapping[str, Any], path: Path) -> dict[str, Any]:
    tool = document.get("tool", {})
    section = tool.get("callspec", {}) if isinstance(tool, Mapping) else None
    if not isinstance(section, Mapping):
        raise ConfigLoadError(f"[tool.callspec] in {path} must be a table")
    return dict(section)


def _known_keys() -> Iterator[tuple[str, str, object]]:
    defaults = default_config()
    for section in sorted(defaults):
        for key, default in sorted(defaults[section].items()):
            if (section, key) not in _FILE_ONLY_KEYS:
                yield section, key, default


def _coerce(raw: str, default: object, label: str) -> object:
    text = raw.strip()
    if isinstance(default, bool):
        word = text.lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        raise ConfigLoadError(f"{label} must be a boolean (true/false, yes/no, on/off, 1/0)")
    if isinstance(default, int):
        try:
            return int(text)
        except ValueError as exc:
            raise ConfigLoadError(f"{label} must be an integer, got {raw!r}") from exc
    return text


def _dotted_to_nested(overrides: Mapping[str, object]) -> dict[str, Any]:
    nested: dict[str, Any] = {}
    for dotted in sorted(overrides):
        parts = [part for part in dotted.split(".") if part]
        if not parts:
            raise ConfigLoadError(f"invalid override key {dotted!r}")
        cursor = nested
        for part in parts[:-1]:
            cursor = cursor.setdefault(part, {})
            if not isinstance(cursor, dict):
                raise ConfigLoadError(f"override {dotted!r} conflicts with a scalar override")
        cursor[parts[-1]] = overrides[dotted]
    return nested


__all__ = [
    "ConfigLoadError",
    "ConfigSource",
    "discover_config_file",
    "dump_effective_config",
    "env_overrides",
    "load_config",
    "normalize_paths",
]

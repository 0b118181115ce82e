"""Command-line interface router for callspec."""

from __future__ import annotations

import argparse
import ast
import importlib
import json
import sys
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from callspec.api import configure, run_validated
from callspec.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
)
from callspec.domain.errors import ContractViolation, FaultDuringCheck
from callspec.main import ExitCode
from callspec.observability.logging import shutdown_logging
from callspec.registry.spec_registry import default_registry
from callspec.reporting.reporter import default_reporter


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = ExitCode.CONFIG_ERROR

    def __str__(self) -> str:
        return self.message


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="callspec",
        description=(
            "callspec — runtime pre/post checks for instrumented Python callables.\n\n"
            "Common workflows:\n"
            "  callspec run pkg.mod:func 3 'abc'   Call func(3, 'abc') with checks active\n"
            "  callspec specs pkg.mod              List checks registered by importing pkg.mod\n"
            "  callspec config                     Show the effective configuration\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to callspec TOML config (default: ./callspec.toml or ./pyproject.toml).",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Call a target with validation active",
        description=(
            "Import MODULE, call CALLABLE with the given arguments inside a validated\n"
            "extent and report the outcome. Arguments are Python literals; anything\n"
            "that does not parse as a literal is passed as a string."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    run_parser.add_argument("target", help="Callable to invoke, as MODULE:CALLABLE")
    run_parser.add_argument("args", nargs="*", default=[], help="Positional arguments")
    run_parser.add_argument(
        "--kw",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Keyword argument (repeatable)",
    )
    run_parser.add_argument(
        "--unvalidated",
        action="store_true",
        help="Call the target without activating checks",
    )
    run_parser.add_argument(
        "--report",
        default=None,
        help="Write the check report to this path (.json, .yaml or .yml)",
    )
    run_parser.set_defaults(handler=_cmd_run)

    # specs ---------------------------------------------------------------
    specs_parser = subparsers.add_parser(
        "specs",
        parents=[common],
        help="List checks registered by importing a module",
    )
    specs_parser.add_argument("module", help="Dotted module name to import")
    specs_parser.set_defaults(handler=_cmd_specs)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Show the effective configuration",
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return int(ExitCode.CONFIG_ERROR)

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return int(exc.exit_code)
    finally:
        shutdown_logging()
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_run(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    configure(config)
    target = _resolve_target(args.target)
    call_args = tuple(_parse_literal(raw) for raw in args.args)
    call_kwargs = _parse_keywords(args.kw)

    reporter = default_reporter()
    reporter.reset()
    validated = not args.unvalidated
    value: object = None
    error: str | None = None
    status = "ok"
    exit_code = ExitCode.SUCCESS
    try:
        if validated:
            value = run_validated(target, *call_args, **call_kwargs)
        else:
            value = target(*call_args, **call_kwargs)
    except ContractViolation as exc:
        status, exit_code, error = "contract_violation", ExitCode.CONTRACT_VIOLATION, str(exc)
    except FaultDuringCheck as exc:
        status, exit_code, error = "fault_during_check", ExitCode.TARGET_FAILURE, str(exc)
    except Exception as exc:
        status, exit_code = "target_failure", ExitCode.TARGET_FAILURE
        error = f"{type(exc).__name__}: {exc}"

    report_target = args.report or config["reporting"]["export_path"] or None
    report_path = reporter.export(report_target) if report_target else None

    if args.json:
        _emit_json(
            {
                "command": "run",
                "target": args.target,
                "validated": validated,
                "status": status,
                "exit_code": int(exit_code),
                "result": None if error is not None else repr(value),
                "error": error,
                "counts": reporter.counts(),
                "report": None if report_path is None else report_path.as_posix(),
            }
        )
        return int(exit_code)

    if error is None:
        print(repr(value))
    else:
        print(f"{status}: {error}", file=sys.stderr)
    if validated:
        print(f"checks: {reporter.summary()}", file=sys.stderr)
    if report_path is not None:
        print(f"report: {report_path.as_posix()}", file=sys.stderr)
    return int(exit_code)


def _cmd_specs(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    configure(config)
    registry = default_registry()
    before = {entry.key for entry in registry.entries()}
    _import_module(args.module)
    added = [entry for entry in registry.entries() if entry.key not in before]

    if args.json:
        _emit_json(
            {
                "command": "specs",
                "module": args.module,
                "entries": [entry.to_dict() for entry in added],
            }
        )
        return int(ExitCode.SUCCESS)

    if not added:
        print(f"no checks registered by importing {args.module}")
        return int(ExitCode.SUCCESS)
    for entry in added:
        procedure = entry.to_dict()["procedure"]
        print(f"{entry.role.value:<4} {entry.identity}{entry.shape}  -> {procedure}")
    return int(ExitCode.SUCCESS)


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    if args.json:
        _emit_json({"command": "config", "config": config})
        return int(ExitCode.SUCCESS)
    print(json.dumps(json.loads(dump_effective_config(config)), indent=2, sort_keys=True))
    return int(ExitCode.SUCCESS)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    try:
        return load_config(args.config_path)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=ExitCode.CONFIG_ERROR) from exc


def _import_module(name: str) -> Any:
    cwd = str(Path.cwd())
    if cwd not in sys.path:
        sys.path.insert(0, cwd)
    try:
        return importlib.import_module(name)
    except ImportError as exc:
        raise CLIError(f"cannot import module {name!r}: {exc}") from exc


def _resolve_target(spec: str) -> Callable[..., Any]:
    module_name, separator, attribute_path = spec.partition(":")
    if not separator or not module_name or not attribute_path:
        raise CLIError(f"target must look like MODULE:CALLABLE, got {spec!r}")
    resolved: Any = _import_module(module_name)
    for part in attribute_path.split("."):
        try:
            resolved = getattr(resolved, part)
        except AttributeError as exc:
            raise CLIError(f"{module_name!r} has no attribute path {attribute_path!r}") from exc
    if not callable(resolved):
        raise CLIError(f"{spec!r} is not callable")
    return resolved


def _parse_literal(raw: str) -> object:
    try:
        return ast.literal_eval(raw)
    except (ValueError, SyntaxError):
        return raw


def _parse_keywords(items: Sequence[str]) -> dict[str, object]:
    parsed: dict[str, object] = {}
    for item in items:
        name, separator, raw = item.partition("=")
        name = name.strip()
        if not separator or not name.isidentifier():
            raise CLIError(f"--kw expects NAME=VALUE, got {item!r}")
        parsed[name] = _parse_literal(raw)
    return parsed


__all__ = ["CLIError", "build_parser", "run_cli"]

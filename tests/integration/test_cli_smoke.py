"""
callspec — CLI subprocess smoke contracts

File: tests/integration/test_cli_smoke.py

Purpose
- Enforce CLI behavior for `python -m callspec` run/specs/config against a
  throwaway module of instrumented targets.
- Verify exit codes, JSON payloads and report side effects.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest
import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"

TARGETS_MODULE = '''
import math

from callspec import check, instrument, post_spec, pre_spec


@instrument
def shifted_root(x):
    return math.sqrt(x) + 1


@pre_spec(shifted_root)
def _root_pre(x):
    check(x >= 0, "needs a non-negative input")


@post_spec(shifted_root)
def _root_post(x, *, result):
    check(math.isfinite(result), "result must be finite")


@instrument
def divide(a, b):
    return a / b


@pre_spec(divide)
def _divide_pre(a, b):
    check(isinstance(b, (int, float)))


@instrument
def lookup(key, *, table="default"):
    return f"{table}:{key}"


@pre_spec(lookup)
def _lookup_pre(key, *, table="default"):
    raise KeyError(table)
'''


def _run_cli(
    workdir: Path, *args: str, env_extra: dict[str, str] | None = None
) -> subprocess.CompletedProcess[str]:
    env = {key: value for key, value in os.environ.items() if not key.startswith("CALLSPEC_")}
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = os.pathsep.join([str(SRC_PATH), str(workdir)])
    env["PYTHONPATH"] = (
        src_pythonpath
        if not existing_pythonpath
        else f"{src_pythonpath}{os.pathsep}{existing_pythonpath}"
    )
    env.update(env_extra or {})
    return subprocess.run(
        [sys.executable, "-m", "callspec", *args],
        cwd=workdir,
        text=True,
        capture_output=True,
        check=False,
        env=env,
    )


def _write(path: Path, contents: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8")


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    _write(tmp_path / "demo_targets.py", TARGETS_MODULE)
    return tmp_path


def test_run_success_prints_result_and_summary(workdir: Path) -> None:
    completed = _run_cli(workdir, "run", "demo_targets:shifted_root", "1")

    assert completed.returncode == 0, completed.stderr
    assert completed.stdout.strip() == "2.0"
    assert "checks: 2 passed, 0 failed, 0 errored" in completed.stderr


def test_run_post_check_violation_exits_one(workdir: Path) -> None:
    completed = _run_cli(workdir, "run", "demo_targets:shifted_root", "1e400", "--json")

    assert completed.returncode == 1, completed.stderr
    payload = json.loads(completed.stdout)
    assert payload["status"] == "contract_violation"
    assert payload["exit_code"] == 1
    assert payload["result"] is None
    assert "result must be finite" in payload["error"]
    assert payload["counts"] == {"pass": 1, "fail": 1, "error": 0}


def test_unvalidated_run_skips_checks(workdir: Path) -> None:
    completed = _run_cli(
        workdir, "run", "demo_targets:shifted_root", "1e400", "--unvalidated", "--json"
    )

    assert completed.returncode == 0, completed.stderr
    payload = json.loads(completed.stdout)
    assert payload["validated"] is False
    assert payload["result"] == "inf"
    assert payload["counts"] == {"pass": 0, "fail": 0, "error": 0}


def test_target_failure_exits_three(workdir: Path) -> None:
    completed = _run_cli(workdir, "run", "demo_targets:divide", "1", "0")

    assert completed.returncode == 3
    assert "target_failure: ZeroDivisionError" in completed.stderr


def test_fault_during_check_exits_three(workdir: Path) -> None:
    completed = _run_cli(
        workdir, "run", "demo_targets:lookup", "'k'", "--kw", "table='units'", "--json"
    )

    assert completed.returncode == 3
    payload = json.loads(completed.stdout)
    assert payload["status"] == "fault_during_check"
    assert "raised KeyError" in payload["error"]
    assert payload["counts"]["error"] == 1


@pytest.mark.parametrize(
    ("target", "needle"),
    [
        ("demo_targets", "MODULE:CALLABLE"),
        ("missing_module:func", "cannot import module"),
        ("demo_targets:absent", "no attribute path"),
    ],
)
def test_bad_targets_exit_two(workdir: Path, target: str, needle: str) -> None:
    completed = _run_cli(workdir, "run", target)

    assert completed.returncode == 2
    assert needle in completed.stderr


def test_invalid_config_exits_two(workdir: Path) -> None:
    _write(workdir / "callspec.toml", "[reporting]\nmax_history = 0\n")

    completed = _run_cli(workdir, "run", "demo_targets:shifted_root", "1")

    assert completed.returncode == 2
    assert "reporting.max_history" in completed.stderr


def test_missing_subcommand_exits_two(workdir: Path) -> None:
    assert _run_cli(workdir).returncode == 2


def test_report_file_is_written(workdir: Path) -> None:
    completed = _run_cli(
        workdir, "run", "demo_targets:shifted_root", "4", "--report", "out/checks.yaml"
    )

    assert completed.returncode == 0, completed.stderr
    report = yaml.safe_load((workdir / "out" / "checks.yaml").read_text(encoding="utf-8"))
    assert report["counts"]["pass"] == 2
    assert "report: " in completed.stderr


def test_config_export_path_writes_report(workdir: Path) -> None:
    _write(workdir / "callspec.toml", '[reporting]\nexport_path = "reports/last.json"\n')

    completed = _run_cli(workdir, "run", "demo_targets:shifted_root", "9", "--json")

    assert completed.returncode == 0, completed.stderr
    payload = json.loads(completed.stdout)
    assert payload["report"] == (workdir.resolve() / "reports" / "last.json").as_posix()
    report = json.loads((workdir / "reports" / "last.json").read_text(encoding="utf-8"))
    assert report["counts"]["total"] == 2


def test_specs_lists_registered_checks(workdir: Path) -> None:
    completed = _run_cli(workdir, "specs", "demo_targets", "--json")

    assert completed.returncode == 0, completed.stderr
    payload = json.loads(completed.stdout)
    entries = payload["entries"]
    assert [(entry["identity"], entry["role"]) for entry in entries] == [
        ("demo_targets.shifted_root", "pre"),
        ("demo_targets.shifted_root", "post"),
        ("demo_targets.divide", "pre"),
        ("demo_targets.lookup", "pre"),
    ]


def test_specs_text_output(workdir: Path) -> None:
    completed = _run_cli(workdir, "specs", "demo_targets")

    assert completed.returncode == 0, completed.stderr
    lines = completed.stdout.strip().splitlines()
    assert len(lines) == 4
    assert lines[0].startswith("pre  demo_targets.shifted_root")


def test_config_reflects_environment_overrides(workdir: Path) -> None:
    completed = _run_cli(
        workdir, "config", "--json", env_extra={"CALLSPEC_REPORTING_MAX_HISTORY": "12"}
    )

    assert completed.returncode == 0, completed.stderr
    payload = json.loads(completed.stdout)
    assert payload["config"]["reporting"]["max_history"] == 12
    assert payload["config"]["observability"]["log_level"] == "WARNING"

"""Unit tests for check evaluation, aggregation and report export."""

from __future__ import annotations

import json
import threading
from typing import TYPE_CHECKING

import pytest
import yaml

from callspec.domain.errors import CheckFailed, ContractViolation
from callspec.domain.models import CallableIdentity, CheckOutcome, CheckStatus, SpecRole
from callspec.reporting.reporter import AssertionReporter, check, default_reporter

if TYPE_CHECKING:
    from pathlib import Path

IDENTITY = CallableIdentity("pkg.mod.func")


def _evaluate(reporter: AssertionReporter, thunk: object) -> CheckOutcome:
    return reporter.evaluate(thunk, role=SpecRole.PRE, identity=IDENTITY)  # type: ignore[arg-type]


def _fail() -> None:
    check(1 > 2)


def test_default_reporter_is_built_at_import() -> None:
    reporter = default_reporter()

    assert isinstance(reporter, AssertionReporter)
    assert reporter is default_reporter()


def test_check_passes_silently_on_truthy_condition() -> None:
    check(True)
    check([1])


def test_check_cites_calling_line() -> None:
    with pytest.raises(CheckFailed) as excinfo:
        _fail()

    assert excinfo.value.expression == "check(1 > 2)"
    assert excinfo.value.location is not None
    assert excinfo.value.location.endswith(
        f":{_fail.__code__.co_firstlineno + 1}"
    )
    assert "check(1 > 2)" in excinfo.value.message


def test_check_uses_explicit_message() -> None:
    with pytest.raises(CheckFailed, match="custom"):
        check(0, "custom")


def test_evaluate_classifies_outcomes() -> None:
    reporter = AssertionReporter()

    passed = _evaluate(reporter, lambda: None)
    failed = _evaluate(reporter, _fail)
    errored = _evaluate(reporter, lambda: {}["missing"])

    assert passed.status is CheckStatus.PASS
    assert failed.status is CheckStatus.FAIL
    assert errored.status is CheckStatus.ERROR
    assert isinstance(errored.cause, KeyError)
    assert errored.detail.startswith("KeyError")
    assert reporter.counts() == {"pass": 1, "fail": 1, "error": 1}
    assert reporter.summary() == "1 passed, 1 failed, 1 errored"


def test_truthy_non_bool_return_passes() -> None:
    reporter = AssertionReporter()

    assert _evaluate(reporter, lambda: 0).status is CheckStatus.PASS
    assert _evaluate(reporter, lambda: False).status is CheckStatus.FAIL


def test_nested_spec_failure_is_reraised() -> None:
    reporter = AssertionReporter()
    inner = CheckOutcome(CheckStatus.FAIL, SpecRole.POST, CallableIdentity("pkg.inner"))

    def thunk() -> None:
        raise ContractViolation(inner)

    with pytest.raises(ContractViolation) as excinfo:
        _evaluate(reporter, thunk)

    assert excinfo.value.outcome is inner
    assert reporter.counts() == {"pass": 0, "fail": 0, "error": 0}


def test_history_skips_passes_unless_requested() -> None:
    quiet = AssertionReporter()
    verbose = AssertionReporter(record_passes=True)
    for reporter in (quiet, verbose):
        _evaluate(reporter, lambda: None)
        _evaluate(reporter, _fail)

    assert [item.status for item in quiet.outcomes()] == [CheckStatus.FAIL]
    assert [item.status for item in verbose.outcomes()] == [CheckStatus.PASS, CheckStatus.FAIL]


def test_history_is_bounded_and_detail_clipped() -> None:
    reporter = AssertionReporter(max_history=2, max_detail_length=30)

    for index in range(5):
        _evaluate(reporter, lambda index=index: check(False, f"failure {index} " + "x" * 50))

    outcomes = reporter.outcomes()
    assert len(outcomes) == 2
    assert outcomes[-1].detail.startswith("failure 4")
    assert outcomes[-1].detail.endswith("...[truncated]")
    assert len(outcomes[-1].detail) == 30
    assert reporter.counts()["fail"] == 5


def test_configure_and_reset() -> None:
    reporter = AssertionReporter()
    reporter.configure(record_passes=True, max_history=1)
    _evaluate(reporter, _fail)
    _evaluate(reporter, lambda: None)

    assert [item.status for item in reporter.outcomes()] == [CheckStatus.PASS]

    reporter.reset()

    assert reporter.outcomes() == ()
    assert reporter.counts() == {"pass": 0, "fail": 0, "error": 0}


@pytest.mark.parametrize("value", [0, -1, True])
def test_invalid_bounds_are_rejected(value: int) -> None:
    with pytest.raises(ValueError, match="max_history"):
        AssertionReporter(max_history=value)


def test_counts_are_thread_safe() -> None:
    reporter = AssertionReporter()

    def worker() -> None:
        for _ in range(200):
            _evaluate(reporter, lambda: None)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert reporter.counts()["pass"] == 1600


def test_export_json_and_yaml(tmp_path: Path) -> None:
    reporter = AssertionReporter()
    _evaluate(reporter, lambda: None)
    _evaluate(reporter, _fail)

    json_path = reporter.export(tmp_path / "reports" / "checks.json")
    yaml_path = reporter.export(tmp_path / "checks.yaml")

    as_json = json.loads(json_path.read_text(encoding="utf-8"))
    as_yaml = yaml.safe_load(yaml_path.read_text(encoding="utf-8"))

    assert as_json["schema_version"] == 1
    assert as_json["counts"] == {"pass": 1, "fail": 1, "error": 0, "total": 2}
    assert as_json["outcomes"][0]["status"] == "fail"
    assert as_json["outcomes"][0]["identity"] == "pkg.mod.func"
    assert as_yaml["counts"] == as_json["counts"]
    assert as_yaml["outcomes"] == as_json["outcomes"]

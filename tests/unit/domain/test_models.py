"""Unit tests for identities, invocation records, outcomes and failure messages."""

from __future__ import annotations

import functools

import pytest

from callspec.domain.errors import ContractViolation, FaultDuringCheck, SpecFailure
from callspec.domain.models import (
    CallableIdentity,
    CheckOutcome,
    CheckStatus,
    InvocationRecord,
    SpecRole,
)


def sample(x: int) -> int:
    return x


class Holder:
    def method(self) -> None:
        return None


def test_identity_normalizes_module_separator() -> None:
    assert CallableIdentity.parse("pkg.mod:Cls.meth") == CallableIdentity("pkg.mod.Cls.meth")
    assert str(CallableIdentity("  pkg.func ")) == "pkg.func"


@pytest.mark.parametrize("text", ["", "   ", ".pkg", "pkg.", ":func"])
def test_identity_rejects_malformed_names(text: str) -> None:
    with pytest.raises(ValueError, match="invalid callable identity"):
        CallableIdentity(text)


def test_identity_requires_string() -> None:
    with pytest.raises(TypeError, match="must be a string"):
        CallableIdentity(42)  # type: ignore[arg-type]


def test_identity_of_functions_and_methods() -> None:
    assert CallableIdentity.of(sample) == CallableIdentity(f"{__name__}.sample")
    assert CallableIdentity.of(Holder.method) == CallableIdentity(f"{__name__}.Holder.method")
    assert CallableIdentity.of(Holder().method) == CallableIdentity.of(Holder.method)
    assert CallableIdentity.of(staticmethod(sample)) == CallableIdentity.of(sample)


def test_identity_of_unwraps_wrapper_chains() -> None:
    @functools.wraps(sample)
    def shim(x: int) -> int:
        return sample(x)

    assert CallableIdentity.of(shim) == CallableIdentity.of(sample)


def test_identity_of_rejects_unnamed_callables() -> None:
    with pytest.raises(TypeError, match="expected a callable"):
        CallableIdentity.of(3)
    with pytest.raises(TypeError, match="qualified name"):
        CallableIdentity.of(functools.partial(sample, 1))


def test_identity_coerce_accepts_all_forms() -> None:
    expected = CallableIdentity.of(sample)

    assert CallableIdentity.coerce(expected) is expected
    assert CallableIdentity.coerce(str(expected)) == expected
    assert CallableIdentity.coerce(sample) == expected


def test_invocation_record_kwargs_are_read_only() -> None:
    source = {"scale": 2}
    record = InvocationRecord(CallableIdentity("pkg.f"), (1,), source)
    source["scale"] = 3

    assert record.kwargs["scale"] == 2
    with pytest.raises(TypeError):
        record.kwargs["scale"] = 4  # type: ignore[index]


def test_with_result_keeps_arguments() -> None:
    record = InvocationRecord(CallableIdentity("pkg.f"), (1, 2), {"k": "v"})

    finished = record.with_result(None)

    assert not record.has_result
    assert finished.has_result
    assert finished.result is None
    assert finished.args == (1, 2)
    assert dict(finished.kwargs) == {"k": "v"}


def test_outcome_export_has_stable_keys() -> None:
    outcome = CheckOutcome(
        CheckStatus.ERROR,
        SpecRole.POST,
        CallableIdentity("pkg.f"),
        detail="KeyError: 'x'",
        location="mod.py:3",
        cause=KeyError("x"),
    )

    assert list(outcome.to_dict()) == ["status", "role", "identity", "detail", "location", "cause"]
    assert outcome.to_dict()["cause"] == "KeyError"
    assert not outcome.passed


def test_contract_violation_message_and_types() -> None:
    outcome = CheckOutcome(
        CheckStatus.FAIL,
        SpecRole.PRE,
        CallableIdentity("pkg.f"),
        detail="check(x > 0) failed",
        location="mod.py:9",
    )

    error = ContractViolation(outcome, shape="(int)")

    assert isinstance(error, SpecFailure)
    assert isinstance(error, AssertionError)
    assert error.role is SpecRole.PRE
    assert error.identity == CallableIdentity("pkg.f")
    assert str(error) == "pre-check failed for pkg.f(int): check(x > 0) failed (at mod.py:9)"


def test_fault_during_check_names_the_exception() -> None:
    outcome = CheckOutcome(
        CheckStatus.ERROR,
        SpecRole.POST,
        CallableIdentity("pkg.f"),
        detail="KeyError: 'x'",
        cause=KeyError("x"),
    )

    error = FaultDuringCheck(outcome)

    assert not isinstance(error, AssertionError)
    assert str(error) == "post-check raised KeyError for pkg.f: KeyError: 'x'"

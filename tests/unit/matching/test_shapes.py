"""
callspec — unit tests for argument shapes

File: tests/unit/matching/test_shapes.py

Purpose
- Validate slot translation from annotations, positional matching and the
  specificity partial order used to pick between check variants.

What this test file should cover
- Annotation kinds: plain classes, unions, literals, containers, type variables.
- Arity handling: defaults, variadic tails.
- Order properties: reflexive and transitive over generated shapes.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Literal, Optional, Protocol, TypeVar, runtime_checkable

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from callspec.domain.errors import SpecRegistrationError
from callspec.matching.shapes import (
    ANY,
    ArgumentShape,
    LiteralSlot,
    ParametricSlot,
    TypeSlot,
    TypeVarSlot,
    UnionSlot,
    slot_for,
    slot_le,
)

T = TypeVar("T")
N = TypeVar("N", bound=float)


@runtime_checkable
class SupportsClose(Protocol):
    def close(self) -> None: ...


class NotRuntime(Protocol):
    def close(self) -> None: ...


class _Closeable:
    def close(self) -> None:
        return None


def test_slot_for_translates_common_annotations() -> None:
    assert slot_for(Any) is ANY
    assert slot_for(object) is ANY
    assert slot_for(int) == TypeSlot(int)
    assert slot_for(None) == TypeSlot(type(None))
    assert slot_for(int | str) == UnionSlot((TypeSlot(int), TypeSlot(str)))
    optional = Optional[int]  # noqa: UP007
    assert slot_for(optional) == UnionSlot((TypeSlot(int), TypeSlot(type(None))))
    assert slot_for(Literal["a", 1]) == LiteralSlot(("a", 1))
    assert slot_for(list[int]) == ParametricSlot(list, (TypeSlot(int),), "elements")
    assert slot_for(tuple[int, str]) == ParametricSlot(
        tuple, (TypeSlot(int), TypeSlot(str)), "fixed"
    )
    assert slot_for(dict[str, float]) == ParametricSlot(
        dict, (TypeSlot(str), TypeSlot(float)), "mapping"
    )
    assert slot_for(T) == TypeVarSlot("T")
    assert slot_for(N) == TypeVarSlot("N", TypeSlot(float))


def test_union_containing_any_collapses_to_any() -> None:
    assert slot_for(int | Any) is ANY


def test_protocols_must_be_runtime_checkable() -> None:
    assert slot_for(SupportsClose).accepts(_Closeable(), {})
    with pytest.raises(SpecRegistrationError, match="runtime_checkable"):
        slot_for(NotRuntime)


def test_container_slots_check_elements() -> None:
    shape = ArgumentShape.of(list[int])

    assert shape.matches(([1, 2, 3],))
    assert shape.matches(([],))
    assert not shape.matches(([1, "x"],))
    assert not shape.matches(((1, 2),))


def test_fixed_tuple_and_mapping_slots() -> None:
    pair = ArgumentShape.of(tuple[int, str])
    table = ArgumentShape.of(dict[str, float])

    assert pair.matches(((1, "a"),))
    assert not pair.matches(((1, "a", 2),))
    assert table.matches(({"a": 1.0},))
    assert not table.matches(({1: 1.0},))


def test_empty_tuple_annotation_accepts_only_empty_tuples() -> None:
    empty = ArgumentShape.of(tuple[()])

    assert empty.matches(((),))
    assert not empty.matches(((1, 2),))
    assert str(empty) == "(tuple[()])"
    assert slot_for(tuple) == TypeSlot(tuple)


def test_literal_slot_distinguishes_bool_from_int() -> None:
    shape = ArgumentShape.of(Literal[1])

    assert shape.matches((1,))
    assert not shape.matches((True,))


def test_arity_is_enforced() -> None:
    shape = ArgumentShape.of(int, str, required=1)

    assert shape.matches((1,))
    assert shape.matches((1, "a"))
    assert not shape.matches(())
    assert not shape.matches((1, "a", "b"))


def test_variadic_tail_constrains_extra_arguments() -> None:
    shape = ArgumentShape.of(str, rest=int)

    assert shape.matches(("a",))
    assert shape.matches(("a", 1, 2, 3))
    assert not shape.matches(("a", 1, "b"))


def test_type_variable_binds_one_concrete_type() -> None:
    shape = ArgumentShape.of(T, T)

    assert shape.matches((1, 2))
    assert shape.matches(("a", "b"))
    assert not shape.matches((1, "b"))
    # Binding is by exact type, not by common ancestor.
    assert not shape.matches((1, True))


def test_from_procedure_infers_positional_shape() -> None:
    def procedure(x: int, y: list[str], z=None, *rest: float, flag: bool = False) -> None:
        return None

    shape = ArgumentShape.from_procedure(procedure)

    assert shape.slots == (TypeSlot(int), ParametricSlot(list, (TypeSlot(str),)), ANY)
    assert shape.required == 2
    assert shape.rest == TypeSlot(float)


def test_from_procedure_skips_excluded_names() -> None:
    def post(x: int, *, result: float) -> None:
        return None

    shape = ArgumentShape.from_procedure(post, exclude=("result",))

    assert shape == ArgumentShape.of(int)


def test_from_procedure_rejects_unresolvable_annotations() -> None:
    def procedure(x: Missing) -> None:  # noqa: F821
        return None

    with pytest.raises(SpecRegistrationError, match="cannot resolve annotations"):
        ArgumentShape.from_procedure(procedure)


def test_coerce_rejects_strings() -> None:
    with pytest.raises(SpecRegistrationError):
        ArgumentShape.coerce("int")
    assert ArgumentShape.coerce([int, str]) == ArgumentShape.of(int, str)


def test_required_cannot_exceed_slots() -> None:
    with pytest.raises(SpecRegistrationError, match="exceeds"):
        ArgumentShape.of(int, required=2)


def test_describe_renders_optional_and_variadic_positions() -> None:
    shape = ArgumentShape.of(int, str, required=1, rest=Any)

    assert str(shape) == "(int, str?, *Any)"


@pytest.mark.parametrize(
    ("narrow", "wide"),
    [
        (TypeSlot(bool), TypeSlot(int)),
        (TypeSlot(int), ANY),
        (TypeSlot(int), slot_for(int | str)),
        (slot_for(Literal[1, 2]), TypeSlot(int)),
        (slot_for(list[bool]), slot_for(list[int])),
        (slot_for(list[int]), TypeSlot(list)),
        (slot_for(list[int]), slot_for(Sequence[int])),
        (slot_for(tuple[int, int]), slot_for(tuple[int, ...])),
    ],
)
def test_slot_le_orders_narrow_below_wide(narrow: object, wide: object) -> None:
    assert slot_le(narrow, wide)  # type: ignore[arg-type]
    assert not slot_le(wide, narrow)  # type: ignore[arg-type]


def test_concrete_shape_is_more_specific_than_unconstrained() -> None:
    concrete = ArgumentShape.of(int)
    loose = ArgumentShape.of(Any)

    assert concrete.is_more_specific_than(loose)
    assert not loose.is_more_specific_than(concrete)
    assert concrete.is_more_specific_than(ArgumentShape.UNCONSTRAINED)


def test_fixed_arity_is_more_specific_than_variadic() -> None:
    fixed = ArgumentShape.of(int, int)
    variadic = ArgumentShape.of(int, rest=int)

    assert fixed.is_more_specific_than(variadic)
    assert not variadic.is_at_least_as_specific_as(fixed)


def test_tied_type_variables_are_more_specific_than_untied() -> None:
    tied = ArgumentShape.of(T, T)
    untied = ArgumentShape.of(Any, Any)

    assert tied.is_more_specific_than(untied)


def test_incomparable_shapes_are_neither_more_specific() -> None:
    left = ArgumentShape.of(int, Any)
    right = ArgumentShape.of(Any, int)

    assert not left.is_at_least_as_specific_as(right)
    assert not right.is_at_least_as_specific_as(left)


_ANNOTATIONS = st.sampled_from(
    [Any, int, bool, str, float, int | str, list[int], list[bool], Sequence[int], Literal[1]]
)


@st.composite
def shapes(draw: st.DrawFn) -> ArgumentShape:
    annotations = draw(st.lists(_ANNOTATIONS, max_size=3))
    required = draw(st.integers(min_value=0, max_value=len(annotations)))
    rest = draw(st.one_of(st.none(), _ANNOTATIONS))
    return ArgumentShape.of(*annotations, required=required, rest=rest)


@settings(max_examples=200, deadline=None)
@given(shape=shapes())
def test_specificity_is_reflexive(shape: ArgumentShape) -> None:
    assert shape.is_at_least_as_specific_as(shape)
    assert not shape.is_more_specific_than(shape)


@settings(max_examples=300, deadline=None)
@given(a=shapes(), b=shapes(), c=shapes())
def test_specificity_is_transitive(a: ArgumentShape, b: ArgumentShape, c: ArgumentShape) -> None:
    if a.is_at_least_as_specific_as(b) and b.is_at_least_as_specific_as(c):
        assert a.is_at_least_as_specific_as(c)

"""
callspec — argument shapes and specificity ordering

File: src/callspec/matching/shapes.py

Purpose
- Describe which positional arguments a check variant applies to, and order
  variants by specificity the way multiple-dispatch overload resolution does.

What is defined here
- Slot kinds: ``AnySlot``, ``TypeSlot``, ``ParametricSlot``, ``UnionSlot``,
  ``LiteralSlot`` and ``TypeVarSlot``.
- ``ArgumentShape``: ordered slots, a minimum arity and an optional variadic tail.
- ``slot_for``: translate a typing annotation into a slot.
- ``ArgumentShape.from_procedure``: infer a shape from a procedure's annotations.

Specificity
- ``a`` is at least as specific as ``b`` when every value accepted by ``a`` is
  also accepted by ``b``. For shapes this must hold for the arity range and for
  every position, variadic tails included. A shape whose positions are tied
  together by a shared type variable is narrower than the same shape without
  the tie.
- Only positional values are matched. Callers bind keyword-passed positional
  parameters to their positions first; keyword-only arguments are never matched.

Non-functional requirements
- Matching must not consume iterators; element checks only run on sized,
  re-iterable collections.
"""

from __future__ import annotations

import collections.abc
import inspect
import types
import typing
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, ClassVar, Final, Literal

from callspec.domain.errors import SpecRegistrationError

Bindings = dict[str, type]
ContainerKind = Literal["elements", "fixed", "mapping"]

_NONE_TYPE: Final[type] = type(None)
_UNION_ORIGINS: Final[tuple[object, ...]] = (typing.Union, types.UnionType)
# Both spellings of the empty-tuple annotation report no type arguments at all.
_EMPTY_TUPLES: Final[tuple[object, ...]] = (tuple[()], typing.Tuple[()])  # noqa: UP006


class Slot:
    """One positional constraint of an ``ArgumentShape``."""

    __slots__ = ()

    def accepts(self, value: object, bindings: Bindings) -> bool:
        raise NotImplementedError

    def describe(self) -> str:
        raise NotImplementedError

    def __str__(self) -> str:
        return self.describe()


@dataclass(frozen=True, slots=True)
class AnySlot(Slot):
    """Unconstrained slot."""

    def accepts(self, value: object, bindings: Bindings) -> bool:
        return True

    def describe(self) -> str:
        return "Any"


ANY: Final[AnySlot] = AnySlot()


@dataclass(frozen=True, slots=True)
class TypeSlot(Slot):
    """Accepts instances of ``cls`` (runtime-checkable protocols included)."""

    cls: type

    def accepts(self, value: object, bindings: Bindings) -> bool:
        return isinstance(value, self.cls)

    def describe(self) -> str:
        if self.cls is _NONE_TYPE:
            return "None"
        return self.cls.__qualname__


@dataclass(frozen=True, slots=True)
class ParametricSlot(Slot):
    """Container slot constraining its elements, e.g. ``list[int]`` or ``dict[str, float]``.

    ``kind`` selects how ``args`` apply: ``elements`` checks every element against
    ``args[0]``, ``fixed`` checks a fixed-length tuple position by position and
    ``mapping`` checks every key against ``args[0]`` and value against ``args[1]``.
    """

    origin: type
    args: tuple[Slot, ...]
    kind: ContainerKind = "elements"

    def accepts(self, value: object, bindings: Bindings) -> bool:
        if not isinstance(value, self.origin):
            return False
        if self.kind == "fixed":
            items = tuple(value)  # type: ignore[call-overload]
            if len(items) != len(self.args):
                return False
            return all(
                slot.accepts(item, bindings) for slot, item in zip(self.args, items, strict=True)
            )
        if not isinstance(value, collections.abc.Collection):
            return True
        if self.kind == "mapping":
            if not isinstance(value, Mapping):
                return False
            key_slot, value_slot = self.args
            return all(
                key_slot.accepts(key, bindings) and value_slot.accepts(item, bindings)
                for key, item in value.items()
            )
        element_slot = self.args[0]
        return all(element_slot.accepts(item, bindings) for item in value)

    def describe(self) -> str:
        rendered = [slot.describe() for slot in self.args]
        if self.kind == "fixed" and not rendered:
            rendered.append("()")
        if self.kind == "elements" and self.origin is tuple:
            rendered.append("...")
        return f"{self.origin.__qualname__}[{', '.join(rendered)}]"


@dataclass(frozen=True, slots=True)
class UnionSlot(Slot):
    """Accepts a value when any member does."""

    members: tuple[Slot, ...]

    def accepts(self, value: object, bindings: Bindings) -> bool:
        for member in self.members:
            attempt = dict(bindings)
            if member.accepts(value, attempt):
                bindings.update(attempt)
                return True
        return False

    def describe(self) -> str:
        return " | ".join(member.describe() for member in self.members)


@dataclass(frozen=True, slots=True)
class LiteralSlot(Slot):
    """Accepts exactly the listed values (compared by type and equality)."""

    values: tuple[object, ...]

    def accepts(self, value: object, bindings: Bindings) -> bool:
        return any(type(value) is type(item) and value == item for item in self.values)

    def describe(self) -> str:
        return f"Literal[{', '.join(repr(item) for item in self.values)}]"


@dataclass(frozen=True, slots=True)
class TypeVarSlot(Slot):
    """Type-variable slot: satisfies ``bound`` and binds one concrete type per name."""

    name: str
    bound: Slot = ANY

    def accepts(self, value: object, bindings: Bindings) -> bool:
        if not self.bound.accepts(value, bindings):
            return False
        concrete = type(value)
        previous = bindings.setdefault(self.name, concrete)
        return previous is concrete

    def describe(self) -> str:
        if isinstance(self.bound, AnySlot):
            return self.name
        return f"{self.name}<:{self.bound.describe()}"


def slot_for(annotation: object) -> Slot:
    """Translate a typing annotation (or an existing ``Slot``) into a slot."""

    if isinstance(annotation, Slot):
        return annotation
    if annotation is inspect.Parameter.empty or annotation is Any or annotation is object:
        return ANY
    if annotation is None or annotation is _NONE_TYPE:
        return TypeSlot(_NONE_TYPE)
    if isinstance(annotation, typing.TypeVar):
        return _typevar_slot(annotation)

    origin = typing.get_origin(annotation)
    args = typing.get_args(annotation)
    if origin is typing.Annotated:
        return slot_for(args[0])
    if origin in _UNION_ORIGINS:
        return _union_of(slot_for(arg) for arg in args)
    if origin is Literal:
        return LiteralSlot(tuple(args))
    if isinstance(origin, type):
        if annotation in _EMPTY_TUPLES:
            return ParametricSlot(origin, (), "fixed")
        return _parametric_slot(origin, args)
    if isinstance(annotation, type):
        _ensure_runtime_checkable(annotation)
        return TypeSlot(annotation)
    raise SpecRegistrationError(f"unsupported annotation in argument shape: {annotation!r}")


def slot_le(narrow: Slot, wide: Slot) -> bool:
    """Return whether every value accepted by ``narrow`` is accepted by ``wide``."""

    if isinstance(wide, AnySlot):
        return True
    if isinstance(narrow, TypeVarSlot):
        return slot_le(narrow.bound, wide)
    if isinstance(wide, TypeVarSlot):
        return slot_le(narrow, wide.bound)
    if isinstance(narrow, UnionSlot):
        return all(slot_le(member, wide) for member in narrow.members)
    if isinstance(narrow, LiteralSlot):
        return all(wide.accepts(item, {}) for item in narrow.values)
    if isinstance(wide, UnionSlot):
        return any(slot_le(narrow, member) for member in wide.members)
    if isinstance(narrow, AnySlot) or isinstance(wide, LiteralSlot):
        return False
    if isinstance(wide, TypeSlot):
        narrow_origin = narrow.cls if isinstance(narrow, TypeSlot) else _origin_of(narrow)
        return narrow_origin is not None and _is_subclass(narrow_origin, wide.cls)
    if isinstance(wide, ParametricSlot) and isinstance(narrow, ParametricSlot):
        return _is_subclass(narrow.origin, wide.origin) and _container_args_le(narrow, wide)
    return False


@dataclass(frozen=True, slots=True)
class ArgumentShape:
    """Ordered positional constraints deciding whether a check variant applies.

    ``required`` is the minimum number of positional arguments (defaults to
    ``len(slots)``); ``rest`` constrains any positional arguments beyond
    ``slots`` and, when ``None``, makes the shape fixed-arity.
    """

    slots: tuple[Slot, ...] = ()
    required: int = -1
    rest: Slot | None = None

    UNCONSTRAINED: ClassVar[ArgumentShape]

    def __post_init__(self) -> None:
        slots = tuple(slot_for(slot) for slot in self.slots)
        object.__setattr__(self, "slots", slots)
        if self.rest is not None:
            object.__setattr__(self, "rest", slot_for(self.rest))
        required = len(slots) if self.required < 0 else self.required
        if required > len(slots):
            raise SpecRegistrationError(
                f"required arity {required} exceeds the {len(slots)} declared slot(s)"
            )
        object.__setattr__(self, "required", required)

    @classmethod
    def of(
        cls,
        *annotations: object,
        rest: object | None = None,
        required: int = -1,
    ) -> ArgumentShape:
        """Build a shape from annotations, e.g. ``ArgumentShape.of(int, list[float])``."""

        return cls(
            tuple(slot_for(item) for item in annotations),
            required=required,
            rest=None if rest is None else slot_for(rest),
        )

    @classmethod
    def coerce(cls, value: ArgumentShape | Sequence[object]) -> ArgumentShape:
        if isinstance(value, ArgumentShape):
            return value
        if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
            raise SpecRegistrationError(
                f"shape must be an ArgumentShape or a sequence of annotations, got {value!r}"
            )
        return cls.of(*value)

    @classmethod
    def from_procedure(
        cls,
        procedure: Callable[..., object],
        *,
        exclude: Iterable[str] = (),
    ) -> ArgumentShape:
        """Infer a shape from the positional parameters of ``procedure``.

        Unannotated parameters are unconstrained, parameters with defaults lower
        the required arity and ``*args: T`` becomes the variadic tail. Names in
        ``exclude`` (the post-check result binding) are skipped.
        """

        try:
            signature = inspect.signature(procedure)
        except (TypeError, ValueError) as exc:
            raise SpecRegistrationError(f"cannot inspect check procedure {procedure!r}") from exc
        hints = _resolve_hints(procedure)
        skipped = frozenset(exclude)

        slots: list[Slot] = []
        required = 0
        rest: Slot | None = None
        for parameter in signature.parameters.values():
            if parameter.name in skipped:
                continue
            if parameter.kind in (
                inspect.Parameter.POSITIONAL_ONLY,
                inspect.Parameter.POSITIONAL_OR_KEYWORD,
            ):
                slots.append(slot_for(hints.get(parameter.name, parameter.annotation)))
                if parameter.default is inspect.Parameter.empty:
                    required = len(slots)
            elif parameter.kind is inspect.Parameter.VAR_POSITIONAL:
                rest = slot_for(hints.get(parameter.name, parameter.annotation))
        return cls(tuple(slots), required=required, rest=rest)

    @property
    def max_arity(self) -> int | None:
        return None if self.rest is not None else len(self.slots)

    def slot_at(self, position: int) -> Slot | None:
        if position < len(self.slots):
            return self.slots[position]
        return self.rest

    def matches(self, args: Sequence[object]) -> bool:
        """Return whether the positional ``args`` satisfy this shape."""

        count = len(args)
        if count < self.required:
            return False
        if self.rest is None and count > len(self.slots):
            return False
        bindings: Bindings = {}
        for position, value in enumerate(args):
            slot = self.slot_at(position)
            if slot is None or not slot.accepts(value, bindings):
                return False
        return True

    def is_at_least_as_specific_as(self, other: ArgumentShape) -> bool:
        """Return whether every argument list matching ``self`` also matches ``other``."""

        if self.required < other.required:
            return False
        if other.max_arity is not None and (
            self.max_arity is None or self.max_arity > other.max_arity
        ):
            return False
        limit = (
            self.max_arity
            if self.max_arity is not None
            else max(len(self.slots), len(other.slots)) + 1
        )
        for position in range(limit):
            narrow = self.slot_at(position)
            wide = other.slot_at(position)
            if narrow is None or wide is None or not slot_le(narrow, wide):
                return False
        own_groups = self._typevar_groups(limit)
        return all(
            any(group <= own for own in own_groups)
            for group in other._typevar_groups(limit)
            if len(group) > 1
        )

    def is_more_specific_than(self, other: ArgumentShape) -> bool:
        return self.is_at_least_as_specific_as(other) and not other.is_at_least_as_specific_as(
            self
        )

    def describe(self) -> str:
        rendered: list[str] = []
        for position, slot in enumerate(self.slots):
            text = slot.describe()
            rendered.append(text if position < self.required else f"{text}?")
        if self.rest is not None:
            rendered.append(f"*{self.rest.describe()}")
        return f"({', '.join(rendered)})"

    def __str__(self) -> str:
        return self.describe()

    def _typevar_groups(self, limit: int) -> list[frozenset[int]]:
        positions: dict[str, set[int]] = {}
        for position in range(limit):
            slot = self.slot_at(position)
            if isinstance(slot, TypeVarSlot):
                positions.setdefault(slot.name, set()).add(position)
        return [frozenset(group) for group in positions.values()]


ArgumentShape.UNCONSTRAINED = ArgumentShape((), required=0, rest=ANY)


def _typevar_slot(variable: typing.TypeVar) -> TypeVarSlot:
    bound: Slot = ANY
    if variable.__bound__ is not None:
        bound = slot_for(_evaluate_forward_ref(variable.__bound__))
    elif variable.__constraints__:
        bound = _union_of(slot_for(item) for item in variable.__constraints__)
    return TypeVarSlot(variable.__name__, bound)


def _parametric_slot(origin: type, args: tuple[object, ...]) -> Slot:
    if not args or not issubclass(origin, collections.abc.Iterable):
        return TypeSlot(origin)
    if issubclass(origin, tuple):
        if len(args) == 2 and args[1] is Ellipsis:
            return ParametricSlot(origin, (slot_for(args[0]),), "elements")
        return ParametricSlot(origin, tuple(slot_for(arg) for arg in args), "fixed")
    if issubclass(origin, collections.abc.Mapping):
        if len(args) != 2:
            raise SpecRegistrationError(f"mapping annotation needs key and value types: {origin}")
        return ParametricSlot(origin, (slot_for(args[0]), slot_for(args[1])), "mapping")
    if len(args) != 1:
        return TypeSlot(origin)
    return ParametricSlot(origin, (slot_for(args[0]),), "elements")


def _union_of(members: Iterable[Slot]) -> Slot:
    flattened: list[Slot] = []
    for member in members:
        candidates = member.members if isinstance(member, UnionSlot) else (member,)
        for candidate in candidates:
            if isinstance(candidate, AnySlot):
                return ANY
            if candidate not in flattened:
                flattened.append(candidate)
    if len(flattened) == 1:
        return flattened[0]
    return UnionSlot(tuple(flattened))


def _container_args_le(narrow: ParametricSlot, wide: ParametricSlot) -> bool:
    if wide.kind == "elements":
        if narrow.kind == "mapping":
            return False
        return all(slot_le(arg, wide.args[0]) for arg in narrow.args)
    if narrow.kind != wide.kind or len(narrow.args) != len(wide.args):
        return False
    return all(slot_le(a, b) for a, b in zip(narrow.args, wide.args, strict=True))


def _origin_of(slot: Slot) -> type | None:
    if isinstance(slot, ParametricSlot):
        return slot.origin
    return None


def _is_subclass(narrow: type, wide: type) -> bool:
    try:
        return issubclass(narrow, wide)
    except TypeError:
        return narrow is wide


def _ensure_runtime_checkable(annotation: type) -> None:
    if getattr(annotation, "_is_protocol", False) and not getattr(
        annotation, "_is_runtime_protocol", False
    ):
        raise SpecRegistrationError(
            f"protocol {annotation.__qualname__} must be @runtime_checkable to be used in a shape"
        )


def _resolve_hints(procedure: Callable[..., object]) -> dict[str, object]:
    target = inspect.unwrap(procedure)
    if not (inspect.isfunction(target) or inspect.ismethod(target)):
        return {}
    try:
        return typing.get_type_hints(target)
    except (NameError, TypeError) as exc:
        raise SpecRegistrationError(
            f"cannot resolve annotations of check procedure {target.__qualname__}: {exc}"
        ) from exc


def _evaluate_forward_ref(value: object) -> object:
    if isinstance(value, typing.ForwardRef):
        raise SpecRegistrationError(f"unresolved forward reference in type variable bound: {value}")
    return value


__all__ = [
    "ANY",
    "AnySlot",
    "ArgumentShape",
    "Bindings",
    "LiteralSlot",
    "ParametricSlot",
    "Slot",
    "TypeSlot",
    "TypeVarSlot",
    "UnionSlot",
    "slot_for",
    "slot_le",
]

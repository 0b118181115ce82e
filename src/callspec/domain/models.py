"""
callspec — core domain records

File: src/callspec/domain/models.py

Purpose
- Immutable records shared by the registry, the interceptor and the reporter.

What is defined here
- ``CallableIdentity``: stable handle naming a target callable.
- ``SpecRole`` / ``SpecEntry``: one registered pre- or post-check variant.
- ``InvocationRecord``: per-call arguments (and result) handed to procedures.
- ``CheckStatus`` / ``CheckOutcome``: tri-state verdict of one evaluated check.

Functional requirements
- Records must be hashable where they participate in registry keys.
- JSON export must be deterministic (stable key order).
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from callspec.constants import IDENTITY_ATTRIBUTE

if TYPE_CHECKING:
    from callspec.matching.shapes import ArgumentShape

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

CheckProcedure = Callable[..., object]

_MODULE_SEPARATOR: Final[str] = ":"


class SpecRole(StrEnum):
    """When a check runs relative to the target body."""

    PRE = "pre"
    POST = "post"


class CheckStatus(StrEnum):
    """Canonical check statuses, mirroring unit-test pass/fail/error reporting."""

    PASS = "pass"
    FAIL = "fail"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class CallableIdentity:
    """Qualified name of a target callable, independent of its check variants."""

    name: str

    def __post_init__(self) -> None:
        if not isinstance(self.name, str):
            raise TypeError(
                f"CallableIdentity.name must be a string, got {type(self.name).__name__}"
            )
        normalized = self.name.strip().replace(_MODULE_SEPARATOR, ".")
        if not normalized or normalized.startswith(".") or normalized.endswith("."):
            raise ValueError(f"invalid callable identity {self.name!r}")
        object.__setattr__(self, "name", normalized)

    def __str__(self) -> str:
        return self.name

    @classmethod
    def parse(cls, text: str) -> CallableIdentity:
        """Build an identity from ``pkg.mod:Cls.meth`` or ``pkg.mod.func`` text."""

        return cls(text)

    @classmethod
    def of(cls, target: object) -> CallableIdentity:
        """Derive the identity of ``target``.

        Instrumented wrappers report the identity stamped on them; anything else
        is unwrapped through ``functools.wraps`` chains and named by
        ``__module__`` + ``__qualname__``.
        """

        stamped = getattr(target, IDENTITY_ATTRIBUTE, None)
        if isinstance(stamped, CallableIdentity):
            return stamped
        if isinstance(target, (staticmethod, classmethod)):
            target = target.__func__
        if not callable(target):
            raise TypeError(f"expected a callable, got {type(target).__name__}")
        unwrapped = inspect.unwrap(target)
        module = getattr(unwrapped, "__module__", None)
        qualname = getattr(unwrapped, "__qualname__", None)
        if not isinstance(module, str) or not isinstance(qualname, str):
            raise TypeError(
                f"cannot derive an identity for {target!r}; register it by qualified name instead"
            )
        return cls(f"{module}.{qualname}")

    @classmethod
    def coerce(cls, value: CallableIdentity | str | Callable[..., object]) -> CallableIdentity:
        if isinstance(value, CallableIdentity):
            return value
        if isinstance(value, str):
            return cls.parse(value)
        return cls.of(value)


@dataclass(frozen=True, slots=True)
class SpecEntry:
    """One registered check variant for a callable and role."""

    identity: CallableIdentity
    shape: ArgumentShape
    role: SpecRole
    procedure: CheckProcedure
    sequence: int

    @property
    def key(self) -> tuple[CallableIdentity, ArgumentShape, SpecRole]:
        return (self.identity, self.shape, self.role)

    def describe(self) -> str:
        return f"{self.role.value}-check {self.identity}{self.shape}"

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "identity": str(self.identity),
            "role": self.role.value,
            "shape": str(self.shape),
            "procedure": _procedure_name(self.procedure),
            "sequence": self.sequence,
        }


@dataclass(frozen=True, slots=True)
class InvocationRecord:
    """Arguments (and, after the body ran, the result) of one intercepted call."""

    identity: CallableIdentity
    args: tuple[object, ...]
    kwargs: Mapping[str, object] = field(default_factory=dict)
    result: object = None
    has_result: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "kwargs", MappingProxyType(dict(self.kwargs)))

    def with_result(self, result: object) -> InvocationRecord:
        return InvocationRecord(
            identity=self.identity,
            args=self.args,
            kwargs=self.kwargs,
            result=result,
            has_result=True,
        )


@dataclass(frozen=True, slots=True)
class CheckOutcome:
    """Verdict of one evaluated check procedure."""

    status: CheckStatus
    role: SpecRole
    identity: CallableIdentity
    detail: str = ""
    location: str | None = None
    cause: BaseException | None = field(default=None, compare=False)

    @property
    def passed(self) -> bool:
        return self.status is CheckStatus.PASS

    def to_dict(self) -> dict[str, JSONValue]:
        """Stable-key JSON-safe export used by report writers."""

        return {
            "status": self.status.value,
            "role": self.role.value,
            "identity": str(self.identity),
            "detail": self.detail,
            "location": self.location,
            "cause": None if self.cause is None else type(self.cause).__name__,
        }


def _procedure_name(procedure: CheckProcedure) -> str:
    module = getattr(procedure, "__module__", None) or "?"
    qualname = getattr(procedure, "__qualname__", None) or repr(procedure)
    return f"{module}.{qualname}"


__all__ = [
    "CallableIdentity",
    "CheckOutcome",
    "CheckProcedure",
    "CheckStatus",
    "InvocationRecord",
    "JSONScalar",
    "JSONValue",
    "SpecEntry",
    "SpecRole",
]

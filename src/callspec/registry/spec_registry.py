"""
callspec — process-wide check registry

File: src/callspec/registry/spec_registry.py

Purpose
- Hold every registered pre-/post-check keyed by callable identity, role and
  argument shape, and select the variant that applies to a concrete call.

Selection rule
- Among the entries for ``(identity, role)`` whose shape matches the positional
  arguments, keep those no other match is strictly more specific than.
- If several remain (equivalent or incomparable shapes) the most recently
  registered one wins. Replacing an entry counts as registering it again.

Concurrency
- Writers serialize on a lock and swap in whole tuples; readers take no lock and
  always observe either the previous or the next complete table.
"""

from __future__ import annotations

import inspect
import itertools
import logging
import threading
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, Final

from callspec.constants import RESULT_BINDING
from callspec.domain.errors import SpecRegistrationError
from callspec.domain.models import CallableIdentity, SpecEntry, SpecRole
from callspec.matching.shapes import ArgumentShape

if TYPE_CHECKING:
    from callspec.domain.models import CheckProcedure, JSONValue

logger = logging.getLogger(__name__)

IdentityLike = CallableIdentity | str | Callable[..., object]
ShapeLike = ArgumentShape | Sequence[object] | None

_RegistryKey = tuple[CallableIdentity, SpecRole]
_EMPTY: Final[tuple[SpecEntry, ...]] = ()


class SpecRegistry:
    """Append/replace-only table of check variants."""

    __slots__ = ("_entries", "_lock", "_sequence")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[_RegistryKey, tuple[SpecEntry, ...]] = {}
        self._sequence = itertools.count(1)

    def register_pre(
        self,
        identity: IdentityLike,
        shape: ShapeLike,
        procedure: CheckProcedure,
    ) -> SpecEntry:
        """Register a check run with the call's arguments before the body."""

        return self.register(identity, shape, SpecRole.PRE, procedure)

    def register_post(
        self,
        identity: IdentityLike,
        shape: ShapeLike,
        procedure: CheckProcedure,
    ) -> SpecEntry:
        """Register a check run with the call's arguments plus ``result=`` after the body."""

        return self.register(identity, shape, SpecRole.POST, procedure)

    def register(
        self,
        identity: IdentityLike,
        shape: ShapeLike,
        role: SpecRole | str,
        procedure: CheckProcedure,
    ) -> SpecEntry:
        resolved_role = _coerce_role(role)
        resolved_identity = coerce_identity(identity)
        if not callable(procedure):
            raise SpecRegistrationError(
                f"check procedure for {resolved_identity} must be callable, "
                f"got {type(procedure).__name__}"
            )
        if resolved_role is SpecRole.POST:
            _ensure_accepts_result(procedure, resolved_identity)
        resolved_shape = _resolve_shape(shape, procedure, resolved_role)

        key = (resolved_identity, resolved_role)
        with self._lock:
            entry = SpecEntry(
                identity=resolved_identity,
                shape=resolved_shape,
                role=resolved_role,
                procedure=procedure,
                sequence=next(self._sequence),
            )
            current = self._entries.get(key, _EMPTY)
            retained = tuple(item for item in current if item.shape != resolved_shape)
            self._entries[key] = (*retained, entry)
            replaced = len(retained) != len(current)

        logger.debug(
            "registered %s%s",
            entry.describe(),
            " (replaced previous entry)" if replaced else "",
            extra={"identity": str(resolved_identity), "role": resolved_role.value},
        )
        return entry

    def lookup(
        self,
        identity: CallableIdentity,
        role: SpecRole,
        args: Sequence[object],
    ) -> SpecEntry | None:
        """Return the most specific entry matching ``args``, or ``None``."""

        entries = self._entries.get((identity, role), _EMPTY)
        if not entries:
            return None
        candidates = [entry for entry in entries if entry.shape.matches(args)]
        if len(candidates) <= 1:
            return candidates[0] if candidates else None

        maximal = [
            entry
            for entry in candidates
            if not any(
                other is not entry and other.shape.is_more_specific_than(entry.shape)
                for other in candidates
            )
        ]
        return max(maximal, key=lambda entry: entry.sequence)

    def unregister(
        self,
        identity: IdentityLike,
        shape: ArgumentShape | Sequence[object],
        role: SpecRole | str,
    ) -> bool:
        """Remove one entry. Returns ``True`` when it existed."""

        key = (coerce_identity(identity), _coerce_role(role))
        resolved_shape = ArgumentShape.coerce(shape)
        with self._lock:
            current = self._entries.get(key, _EMPTY)
            retained = tuple(item for item in current if item.shape != resolved_shape)
            if len(retained) == len(current):
                return False
            if retained:
                self._entries[key] = retained
            else:
                del self._entries[key]
        return True

    def clear(self) -> None:
        with self._lock:
            self._entries = {}

    def entries(
        self,
        identity: IdentityLike | None = None,
        role: SpecRole | str | None = None,
    ) -> tuple[SpecEntry, ...]:
        """Return registered entries in registration order, optionally filtered."""

        resolved_identity = None if identity is None else coerce_identity(identity)
        resolved_role = None if role is None else _coerce_role(role)
        with self._lock:
            snapshot = tuple(itertools.chain.from_iterable(self._entries.values()))
        selected = (
            entry
            for entry in snapshot
            if (resolved_identity is None or entry.identity == resolved_identity)
            and (resolved_role is None or entry.role is resolved_role)
        )
        return tuple(sorted(selected, key=lambda entry: entry.sequence))

    def identities(self) -> tuple[CallableIdentity, ...]:
        with self._lock:
            keys = tuple(self._entries)
        return tuple(sorted({identity for identity, _ in keys}, key=str))

    def snapshot(self) -> list[JSONValue]:
        """JSON-safe listing of every entry in registration order."""

        return [entry.to_dict() for entry in self.entries()]

    def __len__(self) -> int:
        with self._lock:
            return sum(len(items) for items in self._entries.values())

    def __contains__(self, identity: object) -> bool:
        if not isinstance(identity, (CallableIdentity, str)) and not callable(identity):
            return False
        resolved = coerce_identity(identity)
        with self._lock:
            return any(key[0] == resolved for key in self._entries)


_DEFAULT_REGISTRY: Final[SpecRegistry] = SpecRegistry()


def default_registry() -> SpecRegistry:
    """Return the process-wide registry used by the public API."""

    return _DEFAULT_REGISTRY


def coerce_identity(value: IdentityLike) -> CallableIdentity:
    try:
        return CallableIdentity.coerce(value)
    except (TypeError, ValueError) as exc:
        raise SpecRegistrationError(str(exc)) from exc


def _coerce_role(value: SpecRole | str) -> SpecRole:
    try:
        return SpecRole(value)
    except ValueError as exc:
        raise SpecRegistrationError(f"unknown check role {value!r}") from exc


def _resolve_shape(
    shape: ShapeLike,
    procedure: CheckProcedure,
    role: SpecRole,
) -> ArgumentShape:
    if shape is None:
        exclude = (RESULT_BINDING,) if role is SpecRole.POST else ()
        return ArgumentShape.from_procedure(procedure, exclude=exclude)
    return ArgumentShape.coerce(shape)


def _ensure_accepts_result(procedure: CheckProcedure, identity: CallableIdentity) -> None:
    try:
        parameters = inspect.signature(procedure).parameters
    except (TypeError, ValueError):
        return
    accepted = parameters.get(RESULT_BINDING)
    if accepted is not None and accepted.kind in (
        inspect.Parameter.KEYWORD_ONLY,
        inspect.Parameter.POSITIONAL_OR_KEYWORD,
    ):
        return
    if any(item.kind is inspect.Parameter.VAR_KEYWORD for item in parameters.values()):
        return
    raise SpecRegistrationError(
        f"post-check procedure for {identity} must accept the keyword argument "
        f"{RESULT_BINDING!r}"
    )


__all__ = [
    "IdentityLike",
    "ShapeLike",
    "SpecRegistry",
    "coerce_identity",
    "default_registry",
]

"""
callspec — call interception around instrumented callables

File: src/callspec/runtime/interceptor.py

Purpose
- Wrap callables so that, while a validation scope is active, the matching
  pre-check runs before the body and the matching post-check runs after it.

Call contract
- Scope inactive: the wrapper calls the body directly and never touches the
  registry.
- Scope active: pre-check, body, post-check. A failing check raises
  ``ContractViolation`` (false expression) or ``FaultDuringCheck`` (procedure
  raised); a failing pre-check means the body never runs. Exceptions from the
  body propagate untouched.
- Calls made from bodies and from check procedures go through the same path,
  so interception is transitive. A check never re-enters itself: while an
  entry is being evaluated, nested calls that select the same entry skip it,
  which is what lets a post-check call the function it validates.
- Arguments passed by keyword to positional parameters are bound to their
  positions before lookup, so ``f(x=-1)`` selects the same check as ``f(-1)``.
  Keyword-only arguments are passed through but never matched on.
"""

from __future__ import annotations

import contextvars
import functools
import inspect
import logging
from collections.abc import Callable, Mapping
from typing import Any, Final, TypeVar, overload

from callspec.constants import (
    IDENTITY_ATTRIBUTE,
    INSTRUMENTED_ATTRIBUTE,
    RESULT_BINDING,
    WRAPPED_ATTRIBUTE,
)
from callspec.domain.errors import ContractViolation, FaultDuringCheck
from callspec.domain.models import (
    CallableIdentity,
    CheckStatus,
    InvocationRecord,
    SpecEntry,
    SpecRole,
)
from callspec.registry.spec_registry import (
    IdentityLike,
    SpecRegistry,
    coerce_identity,
    default_registry,
)
from callspec.reporting.reporter import AssertionReporter, default_reporter
from callspec.runtime.scope import VALIDATION_ACTIVE

F = TypeVar("F", bound=Callable[..., Any])

logger = logging.getLogger(__name__)

_EntryKey = tuple[CallableIdentity, Any, SpecRole]

# Entries whose procedure is currently running in this thread/task.
_EVALUATING: Final[contextvars.ContextVar[frozenset[_EntryKey]]] = contextvars.ContextVar(
    "callspec_evaluating_entries", default=frozenset()
)


class CallInterceptor:
    """Runs registered checks around instrumented calls inside a validation scope."""

    __slots__ = ("_registry", "_reporter")

    def __init__(
        self,
        registry: SpecRegistry | None = None,
        reporter: AssertionReporter | None = None,
    ) -> None:
        self._registry = registry if registry is not None else default_registry()
        self._reporter = reporter if reporter is not None else default_reporter()

    @property
    def registry(self) -> SpecRegistry:
        return self._registry

    @property
    def reporter(self) -> AssertionReporter:
        return self._reporter

    @overload
    def instrument(self, fn: F, *, identity: IdentityLike | None = None) -> F: ...

    @overload
    def instrument(
        self, fn: None = None, *, identity: IdentityLike | None = None
    ) -> Callable[[F], F]: ...

    def instrument(
        self,
        fn: F | None = None,
        *,
        identity: IdentityLike | None = None,
    ) -> F | Callable[[F], F]:
        """Wrap ``fn`` so its registered checks run inside validation scopes.

        Usable as ``@instrument`` or ``@instrument(identity="pkg.mod.name")``.
        Already-instrumented callables are returned unchanged.
        """

        if fn is None:
            return functools.partial(self.instrument, identity=identity)
        if isinstance(fn, (staticmethod, classmethod)):
            descriptor = type(fn)
            return descriptor(self.instrument(fn.__func__, identity=identity))
        if is_instrumented(fn):
            return fn
        if not callable(fn):
            raise TypeError(f"cannot instrument non-callable {type(fn).__name__}")

        resolved = coerce_identity(fn if identity is None else identity)
        body: Callable[..., Any] = fn
        signature = _signature_of(fn)
        intercept = self.intercept
        active = VALIDATION_ACTIVE

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            if not active.get():
                return body(*args, **kwargs)
            return intercept(resolved, body, args, kwargs, signature=signature)

        setattr(wrapper, IDENTITY_ATTRIBUTE, resolved)
        setattr(wrapper, WRAPPED_ATTRIBUTE, fn)
        # Self-reference: copies made by functools.wraps onto outer wrappers never match.
        setattr(wrapper, INSTRUMENTED_ATTRIBUTE, wrapper)
        return wrapper  # type: ignore[return-value]

    def intercept(
        self,
        identity: CallableIdentity,
        body: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: Mapping[str, Any],
        *,
        signature: inspect.Signature | None = None,
    ) -> Any:
        """Run the pre-check, the body and the post-check for one call.

        With a ``signature``, keyword arguments naming positional parameters are
        moved into ``args`` before lookup.
        """

        if signature is not None:
            args, kwargs = _positional_form(signature, args, kwargs)
        record = InvocationRecord(identity=identity, args=args, kwargs=kwargs)

        pre = self._registry.lookup(identity, SpecRole.PRE, record.args)
        if pre is not None:
            self._run_check(pre, lambda: pre.procedure(*record.args, **record.kwargs))
        elif logger.isEnabledFor(logging.DEBUG):
            logger.debug("no pre-check matched %s", identity)

        result = body(*record.args, **record.kwargs)
        record = record.with_result(result)

        post = self._registry.lookup(identity, SpecRole.POST, record.args)
        if post is not None:
            bound = {**record.kwargs, RESULT_BINDING: record.result}
            self._run_check(post, lambda: post.procedure(*record.args, **bound))
        elif logger.isEnabledFor(logging.DEBUG):
            logger.debug("no post-check matched %s", identity)

        return result

    def _run_check(self, entry: SpecEntry, thunk: Callable[[], object]) -> None:
        evaluating = _EVALUATING.get()
        if entry.key in evaluating:
            logger.debug("skipping re-entrant %s", entry.describe())
            return
        token = _EVALUATING.set(evaluating | {entry.key})
        try:
            outcome = self._reporter.evaluate(thunk, role=entry.role, identity=entry.identity)
        finally:
            _EVALUATING.reset(token)
        if outcome.status is CheckStatus.FAIL:
            raise ContractViolation(outcome, shape=str(entry.shape))
        if outcome.status is CheckStatus.ERROR:
            raise FaultDuringCheck(outcome, shape=str(entry.shape)) from outcome.cause


_DEFAULT_INTERCEPTOR: Final[CallInterceptor] = CallInterceptor()


def default_interceptor() -> CallInterceptor:
    """Return the interceptor bound to the default registry and reporter."""

    return _DEFAULT_INTERCEPTOR


def is_instrumented(target: object) -> bool:
    """Return whether ``target`` (or the function under a method) is an instrument wrapper."""

    function = getattr(target, "__func__", target)
    return getattr(function, INSTRUMENTED_ATTRIBUTE, None) is function


def _signature_of(fn: Callable[..., Any]) -> inspect.Signature | None:
    try:
        return inspect.signature(fn)
    except (TypeError, ValueError):
        return None


def _positional_form(
    signature: inspect.Signature,
    args: tuple[Any, ...],
    kwargs: Mapping[str, Any],
) -> tuple[tuple[Any, ...], Mapping[str, Any]]:
    if not kwargs:
        return args, kwargs
    try:
        bound = signature.bind(*args, **kwargs)
    except TypeError:
        # The body raises the same error when called with the original arguments.
        return args, kwargs
    return bound.args, bound.kwargs


__all__ = [
    "CallInterceptor",
    "default_interceptor",
    "is_instrumented",
]

"""
callspec — public registration and invocation API

File: src/callspec/api.py

Purpose
- Thin functions over the default registry, reporter and interceptor:
  ``instrument``, ``register_pre``/``register_post``, the ``pre_spec``/``post_spec``
  decorators, ``run_validated`` and the ``validated`` context manager.

Example
    @instrument
    def f(x):
        return math.sqrt(x) + 1

    @pre_spec(f)
    def _(x):
        check(x >= 0)

    run_validated(f, -1)   # raises ContractViolation citing the pre-check
    f(-1)                  # ValueError from math.sqrt, no checks involved
"""

from __future__ import annotations

import functools
import logging
import secrets
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any, TypeVar

from callspec.config.schema import reporting_options
from callspec.domain.models import SpecEntry, SpecRole
from callspec.observability.logging import configure_from_mapping, correlation_scope
from callspec.registry.spec_registry import (
    IdentityLike,
    ShapeLike,
    SpecRegistry,
    default_registry,
)
from callspec.reporting.reporter import default_reporter
from callspec.runtime.interceptor import default_interceptor, is_instrumented
from callspec.runtime.scope import enter_root, is_active, validation_scope

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])
P = TypeVar("P", bound=Callable[..., Any])

logger = logging.getLogger(__name__)


def instrument(fn: F | None = None, *, identity: IdentityLike | None = None) -> Any:
    """Instrument ``fn`` with the default interceptor."""

    return default_interceptor().instrument(fn, identity=identity)


specced = instrument


def register_pre(
    identity: IdentityLike,
    shape: ShapeLike,
    procedure: Callable[..., object],
    *,
    registry: SpecRegistry | None = None,
) -> SpecEntry:
    """Register ``procedure`` as a pre-check for calls to ``identity`` matching ``shape``."""

    return _registry(registry).register_pre(identity, shape, procedure)


def register_post(
    identity: IdentityLike,
    shape: ShapeLike,
    procedure: Callable[..., object],
    *,
    registry: SpecRegistry | None = None,
) -> SpecEntry:
    """Register ``procedure`` as a post-check; it receives the result as ``result=``."""

    return _registry(registry).register_post(identity, shape, procedure)


def pre_spec(
    target: IdentityLike,
    *,
    shape: ShapeLike = None,
    registry: SpecRegistry | None = None,
) -> Callable[[P], P]:
    """Decorator form of ``register_pre``; the shape defaults to the procedure's annotations."""

    return _spec_decorator(target, SpecRole.PRE, shape, registry)


def post_spec(
    target: IdentityLike,
    *,
    shape: ShapeLike = None,
    registry: SpecRegistry | None = None,
) -> Callable[[P], P]:
    """Decorator form of ``register_post``; the shape defaults to the procedure's annotations."""

    return _spec_decorator(target, SpecRole.POST, shape, registry)


def run_validated(thunk: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
    """Call ``thunk(*args, **kwargs)`` with interception active for its whole extent.

    Returns the thunk's value, or propagates the first check or target failure.
    """

    call: Callable[[], T] = thunk
    if args or kwargs:
        call = functools.partial(thunk, *args, **kwargs)
    if is_active():
        return enter_root(call)
    with correlation_scope(validation_id=_new_validation_id()):
        return enter_root(call)


@contextmanager
def validated() -> Iterator[None]:
    """Context-manager form of ``run_validated`` for a block of statements."""

    with validation_scope() as is_root:
        if not is_root:
            yield
            return
        with correlation_scope(validation_id=_new_validation_id()):
            yield


def configure(config: Mapping[str, Any]) -> None:
    """Apply a loaded config mapping to the default reporter and to logging."""

    default_reporter().configure(**reporting_options(config))
    configure_from_mapping(config.get("observability", {}))


def _spec_decorator(
    target: IdentityLike,
    role: SpecRole,
    shape: ShapeLike,
    registry: SpecRegistry | None,
) -> Callable[[P], P]:
    if callable(target) and not is_instrumented(target):
        logger.warning(
            "%s-check registered for %r, which is not instrumented; "
            "its checks only run where the instrumented callable is called",
            role.value,
            getattr(target, "__qualname__", target),
        )

    def decorator(procedure: P) -> P:
        _registry(registry).register(target, shape, role, procedure)
        return procedure

    return decorator


def _registry(registry: SpecRegistry | None) -> SpecRegistry:
    return registry if registry is not None else default_registry()


def _new_validation_id() -> str:
    return f"val-{secrets.token_hex(8)}"


__all__ = [
    "configure",
    "instrument",
    "post_spec",
    "pre_spec",
    "register_post",
    "register_pre",
    "run_validated",
    "specced",
    "validated",
]

"""Ambient "validation active" flag scoped to one thread or asyncio task."""

from __future__ import annotations

import contextvars
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Final, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Read directly by instrumented wrappers on every call.
VALIDATION_ACTIVE: Final[contextvars.ContextVar[bool]] = contextvars.ContextVar(
    "callspec_validation_active", default=False
)


def is_active() -> bool:
    """Return whether the current thread/task is inside a validated extent."""

    return VALIDATION_ACTIVE.get()


@contextmanager
def validation_scope() -> Iterator[bool]:
    """Activate validation for the enclosed block.

    Yields ``True`` when this block is the root of the validated extent. On every
    exit path the previous state is restored, so a nested scope leaves its
    enclosing scope active and only the root deactivates.
    """

    is_root = not VALIDATION_ACTIVE.get()
    token = VALIDATION_ACTIVE.set(True)
    if is_root:
        logger.debug("validation scope entered")
    try:
        yield is_root
    finally:
        VALIDATION_ACTIVE.reset(token)
        if is_root:
            logger.debug("validation scope exited")


def enter_root(thunk: Callable[[], T]) -> T:
    """Run ``thunk`` with validation active and return (or propagate) its outcome."""

    with validation_scope():
        return thunk()


__all__ = [
    "VALIDATION_ACTIVE",
    "enter_root",
    "is_active",
    "validation_scope",
]

"""Validation scope and call interception."""

from callspec.runtime.interceptor import CallInterceptor, default_interceptor, is_instrumented
from callspec.runtime.scope import VALIDATION_ACTIVE, enter_root, is_active, validation_scope

__all__ = [
    "VALIDATION_ACTIVE",
    "CallInterceptor",
    "default_interceptor",
    "enter_root",
    "is_active",
    "is_instrumented",
    "validation_scope",
]

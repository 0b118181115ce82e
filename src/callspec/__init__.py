"""
callspec — runtime pre/post checks for instrumented callables.

Checks are attached to callables with ``pre_spec``/``post_spec`` (or
``register_pre``/``register_post``) and only run inside ``run_validated`` or a
``validated()`` block, for every instrumented callable reached transitively.
Outside such an extent instrumented callables behave exactly like the
functions they wrap.
"""

from __future__ import annotations

import logging

from callspec.api import (
    configure,
    instrument,
    post_spec,
    pre_spec,
    register_post,
    register_pre,
    run_validated,
    specced,
    validated,
)
from callspec.domain.errors import (
    CallspecError,
    CheckFailed,
    ContractViolation,
    FaultDuringCheck,
    SpecFailure,
    SpecRegistrationError,
)
from callspec.domain.models import CallableIdentity, CheckOutcome, CheckStatus, SpecEntry, SpecRole
from callspec.matching.shapes import ArgumentShape
from callspec.registry.spec_registry import SpecRegistry, default_registry
from callspec.reporting.reporter import AssertionReporter, check, default_reporter
from callspec.runtime.interceptor import CallInterceptor, default_interceptor, is_instrumented
from callspec.runtime.scope import is_active

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ArgumentShape",
    "AssertionReporter",
    "CallInterceptor",
    "CallableIdentity",
    "CallspecError",
    "CheckFailed",
    "CheckOutcome",
    "CheckStatus",
    "ContractViolation",
    "FaultDuringCheck",
    "SpecEntry",
    "SpecFailure",
    "SpecRegistrationError",
    "SpecRegistry",
    "SpecRole",
    "__version__",
    "check",
    "configure",
    "default_interceptor",
    "default_registry",
    "default_reporter",
    "instrument",
    "is_active",
    "is_instrumented",
    "post_spec",
    "pre_spec",
    "register_post",
    "register_pre",
    "run_validated",
    "specced",
    "validated",
]

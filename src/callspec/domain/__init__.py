"""Domain records and error types shared across callspec components."""

from callspec.domain.errors import (
    CallspecError,
    CheckFailed,
    ContractViolation,
    FaultDuringCheck,
    SpecFailure,
    SpecRegistrationError,
)
from callspec.domain.models import (
    CallableIdentity,
    CheckOutcome,
    CheckProcedure,
    CheckStatus,
    InvocationRecord,
    SpecEntry,
    SpecRole,
)

__all__ = [
    "CallableIdentity",
    "CallspecError",
    "CheckFailed",
    "CheckOutcome",
    "CheckProcedure",
    "CheckStatus",
    "ContractViolation",
    "FaultDuringCheck",
    "InvocationRecord",
    "SpecEntry",
    "SpecFailure",
    "SpecRegistrationError",
    "SpecRole",
]

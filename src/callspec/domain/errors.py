"""Exception hierarchy raised by registration and validated execution."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from callspec.domain.models import CallableIdentity, CheckOutcome, SpecRole


class CallspecError(Exception):
    """Root of every error raised by callspec itself."""


class SpecRegistrationError(CallspecError, ValueError):
    """Raised when an identity, shape or check procedure cannot be registered."""


class SpecFailure(CallspecError):
    """A pre- or post-check aborted an intercepted call."""

    def __init__(self, outcome: CheckOutcome, *, shape: str = "") -> None:
        self.outcome = outcome
        self.shape = shape
        super().__init__(self._render())

    @property
    def identity(self) -> CallableIdentity:
        return self.outcome.identity

    @property
    def role(self) -> SpecRole:
        return self.outcome.role

    def _render(self) -> str:
        message = f"{self.outcome.role.value}-check failed for {self.outcome.identity}{self.shape}"
        if self.outcome.detail:
            message += f": {self.outcome.detail}"
        if self.outcome.location:
            message += f" (at {self.outcome.location})"
        return message


class ContractViolation(SpecFailure, AssertionError):
    """A check's boolean expression evaluated false."""


class FaultDuringCheck(SpecFailure):
    """A check procedure raised an unrelated exception while evaluating.

    The original exception is chained as ``__cause__``.
    """

    def _render(self) -> str:
        cause = self.outcome.cause
        kind = type(cause).__name__ if cause is not None else "error"
        return (
            f"{self.outcome.role.value}-check raised {kind} for "
            f"{self.outcome.identity}{self.shape}: {self.outcome.detail}"
        )


class CheckFailed(AssertionError):
    """Signal raised by ``check`` inside a procedure when its condition is false."""

    def __init__(self, message: str, *, expression: str | None, location: str | None) -> None:
        self.message = message
        self.expression = expression
        self.location = location
        super().__init__(message)


__all__ = [
    "CallspecError",
    "CheckFailed",
    "ContractViolation",
    "FaultDuringCheck",
    "SpecFailure",
    "SpecRegistrationError",
]

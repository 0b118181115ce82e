"""
callspec — assertion evaluation and pass/fail/error aggregation

File: src/callspec/reporting/reporter.py

Purpose
- Execute one check procedure and classify it as pass, fail or error, the way
  a unit-test harness reports assertions.
- Keep thread-safe aggregate counts and a bounded outcome history that can be
  exported for a test run.

Classification
- ``check(...)`` with a false condition, a bare ``assert`` and a procedure that
  returns ``False`` are failures.
- Any other ``Exception`` is an error; the exception is kept as the cause.
- ``SpecFailure`` raised by a nested intercepted call is not classified here: it
  already belongs to the nested check and propagates unchanged.
"""

from __future__ import annotations

import json
import logging
import threading
import traceback
from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

import yaml

from callspec.constants import (
    DEFAULT_MAX_DETAIL_LENGTH,
    DEFAULT_MAX_HISTORY,
    REPORT_SCHEMA_VERSION,
)
from callspec.domain.errors import CheckFailed, SpecFailure
from callspec.domain.models import (
    CallableIdentity,
    CheckOutcome,
    CheckStatus,
    JSONValue,
    SpecRole,
)

logger = logging.getLogger(__name__)

_YAML_SUFFIXES: Final[frozenset[str]] = frozenset({".yaml", ".yml"})
_TRUNCATION_MARKER: Final[str] = "...[truncated]"


def check(condition: object, message: str | None = None) -> None:
    """Assert ``condition`` inside a check procedure.

    On failure the calling source line is recorded as the cited expression.
    """

    if condition:
        return
    caller = traceback.extract_stack(limit=2)[0]
    expression = (caller.line or "").strip() or None
    location = f"{caller.filename}:{caller.lineno}"
    if message is None:
        message = f"expression evaluated false: {expression}" if expression else "check failed"
    raise CheckFailed(message, expression=expression, location=location)


class AssertionReporter:
    """Evaluate check procedures and aggregate their outcomes."""

    def __init__(
        self,
        *,
        record_passes: bool = False,
        max_history: int = DEFAULT_MAX_HISTORY,
        max_detail_length: int = DEFAULT_MAX_DETAIL_LENGTH,
    ) -> None:
        self._lock = threading.Lock()
        self._counts: dict[CheckStatus, int] = dict.fromkeys(CheckStatus, 0)
        self._record_passes = record_passes
        self._max_detail_length = _positive(max_detail_length, "max_detail_length")
        self._history: deque[CheckOutcome] = deque(
            maxlen=_positive(max_history, "max_history")
        )

    def configure(
        self,
        *,
        record_passes: bool | None = None,
        max_history: int | None = None,
        max_detail_length: int | None = None,
    ) -> None:
        with self._lock:
            if record_passes is not None:
                self._record_passes = record_passes
            if max_detail_length is not None:
                self._max_detail_length = _positive(max_detail_length, "max_detail_length")
            if max_history is not None:
                self._history = deque(self._history, maxlen=_positive(max_history, "max_history"))

    def evaluate(
        self,
        thunk: Callable[[], object],
        *,
        role: SpecRole,
        identity: CallableIdentity,
    ) -> CheckOutcome:
        """Run ``thunk`` and return its classified outcome."""

        try:
            returned = thunk()
        except SpecFailure:
            raise
        except CheckFailed as exc:
            outcome = self._outcome(
                CheckStatus.FAIL, role, identity, exc.message, location=exc.location
            )
        except AssertionError as exc:
            source = _failing_frame(exc)
            source_line = source.line if source is not None else None
            detail = str(exc) or source_line or "assertion failed"
            outcome = self._outcome(
                CheckStatus.FAIL, role, identity, detail, location=_location(source)
            )
        except Exception as exc:
            outcome = self._outcome(
                CheckStatus.ERROR,
                role,
                identity,
                f"{type(exc).__name__}: {exc}",
                location=_location(_failing_frame(exc)),
                cause=exc,
            )
        else:
            if isinstance(returned, bool) and not returned:
                outcome = self._outcome(
                    CheckStatus.FAIL, role, identity, "check procedure returned False"
                )
            else:
                outcome = CheckOutcome(CheckStatus.PASS, role, identity)

        self._record(outcome)
        return outcome

    def counts(self) -> dict[str, int]:
        with self._lock:
            return {status.value: self._counts[status] for status in CheckStatus}

    def outcomes(self) -> tuple[CheckOutcome, ...]:
        with self._lock:
            return tuple(self._history)

    def reset(self) -> None:
        with self._lock:
            self._counts = dict.fromkeys(CheckStatus, 0)
            self._history.clear()

    def summary(self) -> str:
        counts = self.counts()
        return f"{counts['pass']} passed, {counts['fail']} failed, {counts['error']} errored"

    def to_dict(self) -> dict[str, JSONValue]:
        counts = self.counts()
        return {
            "schema_version": REPORT_SCHEMA_VERSION,
            "generated_at": datetime.now(tz=UTC).isoformat(timespec="seconds").replace(
                "+00:00", "Z"
            ),
            "counts": {**counts, "total": sum(counts.values())},
            "outcomes": [outcome.to_dict() for outcome in self.outcomes()],
        }

    def export(self, path: Path | str) -> Path:
        """Write the report as JSON, or YAML for ``.yaml``/``.yml`` paths."""

        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        payload = self.to_dict()
        if target.suffix.lower() in _YAML_SUFFIXES:
            rendered = yaml.safe_dump(payload, sort_keys=True, default_flow_style=False)
        else:
            rendered = json.dumps(payload, sort_keys=True, indent=2, ensure_ascii=False) + "\n"
        target.write_text(rendered, encoding="utf-8")
        return target

    def _outcome(
        self,
        status: CheckStatus,
        role: SpecRole,
        identity: CallableIdentity,
        detail: str,
        *,
        location: str | None = None,
        cause: BaseException | None = None,
    ) -> CheckOutcome:
        return CheckOutcome(
            status=status,
            role=role,
            identity=identity,
            detail=self._clip(detail),
            location=location,
            cause=cause,
        )

    def _clip(self, text: str) -> str:
        limit = self._max_detail_length
        if len(text) <= limit:
            return text
        return text[: max(0, limit - len(_TRUNCATION_MARKER))] + _TRUNCATION_MARKER

    def _record(self, outcome: CheckOutcome) -> None:
        with self._lock:
            self._counts[outcome.status] += 1
            if outcome.passed and not self._record_passes:
                return
            self._history.append(outcome)
        if not outcome.passed:
            logger.warning(
                "%s-check %s for %s: %s",
                outcome.role.value,
                outcome.status.value,
                outcome.identity,
                outcome.detail,
                extra={
                    "identity": str(outcome.identity),
                    "role": outcome.role.value,
                    "status": outcome.status.value,
                    "location": outcome.location,
                },
            )


def _failing_frame(exc: BaseException) -> traceback.FrameSummary | None:
    frames = traceback.extract_tb(exc.__traceback__)
    return frames[-1] if frames else None


def _location(frame: traceback.FrameSummary | None) -> str | None:
    if frame is None:
        return None
    return f"{frame.filename}:{frame.lineno}"


def _positive(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {value!r}")
    return value


_DEFAULT_REPORTER: Final[AssertionReporter] = AssertionReporter()


def default_reporter() -> AssertionReporter:
    """Return the process-wide reporter used by the public API."""

    return _DEFAULT_REPORTER


__all__ = [
    "AssertionReporter",
    "check",
    "default_reporter",
]

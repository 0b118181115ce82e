"""Process entrypoint for ``callspec``: runs the CLI and owns the exit-code contract."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    """Exit status of a ``callspec`` invocation."""

    SUCCESS = 0
    CONTRACT_VIOLATION = 1
    CONFIG_ERROR = 2
    TARGET_FAILURE = 3
    INTERNAL_ERROR = 4


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and map whatever escapes it onto an ``ExitCode``.

    Used by ``python -m callspec`` and the ``callspec`` console script.
    """

    try:
        from callspec.ui.cli import run_cli

        return _as_exit_code(run_cli(argv))
    except SystemExit as exc:
        # argparse exits with 2 on usage errors and 0 after --help.
        return _as_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - last line before the process exits.
        code = exit_code_for(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(str(exc).strip() or type(exc).__name__, file=sys.stderr)
        return int(code)


def exit_code_for(exc: BaseException) -> ExitCode:
    """Classify ``exc`` by the first recognised error in its cause/context chain."""

    from callspec.config.loader import ConfigLoadError
    from callspec.config.schema import ConfigValidationError
    from callspec.domain.errors import ContractViolation, FaultDuringCheck

    routes: tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...] = (
        ((ContractViolation,), ExitCode.CONTRACT_VIOLATION),
        ((FaultDuringCheck,), ExitCode.TARGET_FAILURE),
        ((ConfigLoadError, ConfigValidationError), ExitCode.CONFIG_ERROR),
    )
    for link in _chain(exc):
        for kinds, code in routes:
            if isinstance(link, kinds):
                return code
    return ExitCode.INTERNAL_ERROR


def _chain(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif current.__suppress_context__:
            current = None
        else:
            current = current.__context__


def _as_exit_code(raw: object) -> int:
    if raw is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw, int):
        try:
            return int(ExitCode(raw))
        except ValueError:
            return int(ExitCode.INTERNAL_ERROR)
    if isinstance(raw, str) and raw.strip():
        print(raw.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


__all__ = ["ExitCode", "cli_entrypoint", "exit_code_for"]

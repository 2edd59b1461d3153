"""Process entrypoint: run the CLI and translate its outcome into an exit status.

Exit status contract:

- ``0``: the command succeeded.
- ``1``: the database reported an error code.
- ``2``: configuration could not be loaded or validated, or the command line was wrong.
- ``4``: anything else; a traceback is printed.
"""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    SUCCESS = 0
    DATABASE_ERROR = 1
    CONFIG_ERROR = 2
    INTERNAL_ERROR = 4


_CONFIG_OS_ERRORS = (FileNotFoundError, NotADirectoryError, PermissionError)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    # Imported lazily so a broken install still reaches the error routing below.
    try:
        from serial_sqlite.ui.cli import run_cli

        status: object = run_cli(argv)
    except SystemExit as exc:
        status = exc.code
    except Exception as exc:
        code = _exit_code_for(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(str(exc).strip() or type(exc).__name__, file=sys.stderr)
        return int(code)
    return _as_exit_status(status)


def _as_exit_status(status: object) -> int:
    if status is None:
        return int(ExitCode.SUCCESS)
    if isinstance(status, int) and status in {code.value for code in ExitCode}:
        return status
    if isinstance(status, str) and status.strip():
        print(status.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


def _exit_code_for(exc: BaseException) -> ExitCode:
    from serial_sqlite.config import ConfigLoadError, ConfigValidationError

    config_errors = (ConfigLoadError, ConfigValidationError, *_CONFIG_OS_ERRORS)
    if any(isinstance(link, config_errors) for link in _causes(exc)):
        return ExitCode.CONFIG_ERROR
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` and the exceptions it was raised from or while handling."""

    seen: set[int] = set()
    link: BaseException | None = exc
    while link is not None and id(link) not in seen:
        seen.add(id(link))
        yield link
        if link.__cause__ is not None:
            link = link.__cause__
        elif not link.__suppress_context__:
            link = link.__context__
        else:
            link = None


__all__ = ["ExitCode", "cli_entrypoint"]

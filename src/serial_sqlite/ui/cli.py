"""Command-line interface router for serial-sqlite."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Final

import yaml

from serial_sqlite.config import load_config
from serial_sqlite.domain.errors import error_message_for_code
from serial_sqlite.domain.values import TIMESTAMP_FORMAT, Identifier, Row
from serial_sqlite.observability import setup_logging, shutdown_logging
from serial_sqlite.persistence import Database

IDENTIFIER_PREFIX: Final[str] = "ident:"


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="serial-sqlite",
        description=(
            "serial-sqlite: serialized access to a SQLite database.\n\n"
            "Common workflows:\n"
            "  serial-sqlite tables                         List tables\n"
            "  serial-sqlite exec 'DELETE FROM i?' --arg ident:Cities\n"
            "  serial-sqlite query 'SELECT * FROM t WHERE a = ?' --arg 5 --format yaml\n"
            "  serial-sqlite explain 19                     Describe an error code\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to serial_sqlite.toml (default: ./serial_sqlite.toml if present).",
    )
    common.add_argument(
        "--database",
        dest="database_path",
        default=None,
        help="Database file to use instead of the configured one.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    path_parser = subparsers.add_parser(
        "path", parents=[common], help="Print the database file path"
    )
    path_parser.set_defaults(handler=_cmd_path)

    tables_parser = subparsers.add_parser(
        "tables", parents=[common], help="List tables in the database"
    )
    tables_parser.set_defaults(handler=_cmd_tables)

    indexes_parser = subparsers.add_parser(
        "indexes", parents=[common], help="List indexes, optionally for one table"
    )
    indexes_parser.add_argument("--table", default=None, help="Only indexes on this table")
    indexes_parser.set_defaults(handler=_cmd_indexes)

    exec_parser = subparsers.add_parser(
        "exec", parents=[common], help="Execute a non-query statement"
    )
    exec_parser.add_argument("sql", help="Statement with optional ? and i? placeholders")
    _add_arg_option(exec_parser)
    exec_parser.set_defaults(handler=_cmd_exec)

    query_parser = subparsers.add_parser("query", parents=[common], help="Run a query")
    query_parser.add_argument("sql", help="Query with optional ? and i? placeholders")
    _add_arg_option(query_parser)
    query_parser.add_argument(
        "--format",
        dest="output_format",
        choices=("json", "yaml"),
        default="json",
        help="Output format for rows (default: json).",
    )
    query_parser.set_defaults(handler=_cmd_query)

    explain_parser = subparsers.add_parser(
        "explain", help="Print the message for an error code"
    )
    explain_parser.add_argument("code", type=int, help="Numeric error code")
    explain_parser.set_defaults(handler=_cmd_explain)

    return parser


def _add_arg_option(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--arg",
        dest="bind_args",
        action="append",
        default=None,
        help=(
            "Value to bind, in order. JSON scalars (5, 1.5, true, null, \"x\") keep their "
            f"type; other text binds as text; {IDENTIFIER_PREFIX}NAME binds an identifier."
        ),
    )


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_path(args: argparse.Namespace) -> int:
    config = load_config(args.config_path)
    with _open_database(args, config) as database:
        print(database.database_path)
    return 0


def _cmd_tables(args: argparse.Namespace) -> int:
    config = load_config(args.config_path)
    with _logging(config), _open_database(args, config) as database:
        result = database.existing_tables()
    _raise_for_code(result.error)
    for name in result.names:
        print(name)
    return 0


def _cmd_indexes(args: argparse.Namespace) -> int:
    config = load_config(args.config_path)
    with _logging(config), _open_database(args, config) as database:
        if args.table is None:
            result = database.existing_indexes()
        else:
            result = database.existing_indexes_for_table(args.table)
    _raise_for_code(result.error)
    for name in result.names:
        print(name)
    return 0


def _cmd_exec(args: argparse.Namespace) -> int:
    config = load_config(args.config_path)
    bound = _parse_bind_args(args.bind_args)
    with _logging(config), _open_database(args, config) as database:
        error = database.execute_change(args.sql, bound)
    _raise_for_code(error)
    return 0


def _cmd_query(args: argparse.Namespace) -> int:
    config = load_config(args.config_path)
    bound = _parse_bind_args(args.bind_args)
    with _logging(config), _open_database(args, config) as database:
        result = database.execute_query(args.sql, bound)
    _raise_for_code(result.error)
    rows = [_row_payload(row) for row in result.rows]
    if args.output_format == "yaml":
        sys.stdout.write(yaml.safe_dump(rows, sort_keys=False, allow_unicode=True))
    else:
        print(json.dumps(rows, ensure_ascii=False))
    return 0


def _cmd_explain(args: argparse.Namespace) -> int:
    print(error_message_for_code(args.code))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _open_database(args: argparse.Namespace, config: Mapping[str, Any]) -> Database:
    if args.database_path is None:
        return Database.from_config(config)
    return Database(
        args.database_path,
        busy_timeout_ms=int(config["database"]["busy_timeout_ms"]),
        binding_mode=config["binding"]["mode"],
    )


@contextmanager
def _logging(config: Mapping[str, Any]) -> Iterator[None]:
    """Structured logging for the duration of one command."""

    setup_logging(config["observability"])
    try:
        yield
    finally:
        shutdown_logging()


def _parse_bind_args(raw_args: Sequence[str] | None) -> list[object] | None:
    if raw_args is None:
        return None
    return [_parse_bind_arg(raw) for raw in raw_args]


def _parse_bind_arg(raw: str) -> object:
    if raw.startswith(IDENTIFIER_PREFIX):
        return Identifier(raw[len(IDENTIFIER_PREFIX) :])
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return raw
    if parsed is None or isinstance(parsed, (bool, int, float, str)):
        return parsed
    return raw


def _row_payload(row: Row) -> dict[str, object]:
    return {name: _plain(value) for name, value in row.to_dict().items()}


def _plain(value: object) -> object:
    if isinstance(value, bytes):
        return value.hex().upper()
    if isinstance(value, datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    return value


def _raise_for_code(code: int | None) -> None:
    if code is None:
        return
    raise CLIError(f"code {code}: {error_message_for_code(code)}", exit_code=1)


__all__ = ["CLIError", "build_parser", "run_cli"]

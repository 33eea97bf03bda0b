"""Command line interface for the arcwire utilities."""

from __future__ import annotations

import argparse
import logging
import math
import sys
from pathlib import Path
from typing import Iterable, Sequence

from .core.adapters.registry import list_providers
from .saved_query import ParamValue, compile_sql, extract_params


def _coerce_value(raw: str) -> ParamValue:
    lowered = raw.strip().lower()
    if lowered == "null":
        return None
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    try:
        return int(raw)
    except ValueError:
        pass
    try:
        number = float(raw)
    except ValueError:
        return raw
    return number if math.isfinite(number) else raw


def _parse_key_value_pairs(pairs: Iterable[str]) -> dict[str, ParamValue]:
    params: dict[str, ParamValue] = {}
    for pair in pairs:
        if "=" not in pair:
            raise argparse.ArgumentTypeError(
                f"invalid key/value pair '{pair}'. Expected KEY=VALUE syntax."
            )
        key, value = pair.split("=", 1)
        key = key.strip()
        if not key:
            raise argparse.ArgumentTypeError("keys must not be empty")
        params[key] = _coerce_value(value)
    return params


def _read_sql(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Provider adapter and saved-query utilities")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("providers", help="list the supported AI providers")

    params_parser = subparsers.add_parser(
        "params", help="print the parameter names referenced by a SQL template"
    )
    params_parser.add_argument("sql", help="Path to the SQL file, or '-' for stdin")

    compile_parser = subparsers.add_parser(
        "compile", help="substitute parameter values into a SQL template"
    )
    compile_parser.add_argument("sql", help="Path to the SQL file, or '-' for stdin")
    compile_parser.add_argument(
        "-p",
        "--param",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Parameter value; null, true, false and numbers are typed",
    )

    return parser


def _handle_providers(args: argparse.Namespace) -> int:
    for provider in list_providers():
        print(f"{provider.id}\t{provider.format.value}\t{provider.default_model}")
    return 0


def _handle_params(args: argparse.Namespace) -> int:
    for name in extract_params(_read_sql(args.sql)):
        print(name)
    return 0


def _handle_compile(args: argparse.Namespace) -> int:
    params = _parse_key_value_pairs(args.param)
    compiled = compile_sql(_read_sql(args.sql), params)
    sys.stdout.write(compiled.sql)
    if not compiled.sql.endswith("\n"):
        sys.stdout.write("\n")
    if compiled.missing:
        sys.stderr.write(f"missing parameters: {', '.join(compiled.missing)}\n")
        return 1
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level))
    if args.command == "providers":
        return _handle_providers(args)
    if args.command == "params":
        return _handle_params(args)
    if args.command == "compile":
        try:
            return _handle_compile(args)
        except argparse.ArgumentTypeError as exc:
            parser.error(str(exc))
    parser.error("no command provided")
    return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

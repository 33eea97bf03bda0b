"""Saved-query templates: parameter discovery and literal substitution.

Five placeholder syntaxes are recognised in the same SQL text:

``{{name}}``
    Mustache style, whitespace inside the braces is allowed.
``:name``
    Colon style. A colon preceded by another colon is a type cast
    (``value::text``) and never a parameter.
``$name``
    Dollar-named.
``$1``, ``$2``, ...
    Dollar-positional, exposed as ``param1``, ``param2``, ...
``?``
    Bare positional. Occurrences are numbered left to right and exposed as
    ``param1``, ``param2``, ...

Substitution happens in a single left-to-right scan, so text inserted for
one placeholder is never re-read as another placeholder.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Optional, Union

__all__ = [
    "CompiledQuery",
    "ParamValue",
    "SavedQuery",
    "SavedQueryError",
    "SavedQueryLibrary",
    "compile_sql",
    "extract_params",
    "find_saved_query",
    "normalize_query_ref",
    "slash_alias",
    "sql_literal",
]

ParamValue = Union[str, int, float, bool, None]

_IDENT = r"[A-Za-z_][A-Za-z0-9_]*"

_PLACEHOLDER_PATTERN = re.compile(
    rf"\{{\{{\s*(?P<template>{_IDENT})\s*\}}\}}"
    rf"|(?<!:):(?P<colon>{_IDENT})"
    rf"|\$(?P<dollar>{_IDENT})"
    r"|\$(?P<position>[1-9][0-9]*)"
    r"|(?P<question>\?)"
)

# Names are reported grouped by syntax, in this order.
_SYNTAX_ORDER = ("template", "colon", "dollar", "position", "question")

_MISSING = object()


class SavedQueryError(ValueError):
    """Raised when a saved query reference cannot be resolved."""


@dataclass(frozen=True, slots=True)
class CompiledQuery:
    """Result of :func:`compile_sql`."""

    sql: str
    missing: tuple[str, ...] = ()

    @property
    def complete(self) -> bool:
        return not self.missing


def extract_params(sql: str) -> list[str]:
    """Return the distinct parameter names referenced by ``sql``."""

    grouped: dict[str, list[str]] = {syntax: [] for syntax in _SYNTAX_ORDER}
    question_index = 0
    for match in _PLACEHOLDER_PATTERN.finditer(sql):
        syntax = match.lastgroup
        if syntax == "question":
            question_index += 1
        grouped[syntax].append(_param_name(match, question_index))
    return _ordered_union(grouped)


def compile_sql(sql: str, params: Mapping[str, ParamValue]) -> CompiledQuery:
    """Substitute SQL literals from ``params`` into ``sql``.

    Placeholders without a value are left byte-for-byte unchanged and their
    names are reported in :attr:`CompiledQuery.missing`. Lookups try the exact
    name first, then a trimmed case-insensitive match.
    """

    missing: dict[str, list[str]] = {syntax: [] for syntax in _SYNTAX_ORDER}
    question_index = 0

    def substitute(match: re.Match[str]) -> str:
        nonlocal question_index
        syntax = match.lastgroup
        if syntax == "question":
            question_index += 1
        name = _param_name(match, question_index)
        value = _lookup(params, name)
        if value is _MISSING:
            missing[syntax].append(name)
            return match.group(0)
        return sql_literal(value)

    compiled = _PLACEHOLDER_PATTERN.sub(substitute, sql)
    return CompiledQuery(sql=compiled, missing=tuple(_ordered_union(missing)))


def sql_literal(value: ParamValue) -> str:
    """Render ``value`` as a SQL literal."""

    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return "NULL"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return "'" + str(value).replace("'", "''") + "'"


def _param_name(match: re.Match[str], question_index: int) -> str:
    syntax = match.lastgroup
    if syntax == "position":
        return f"param{match.group('position')}"
    if syntax == "question":
        return f"param{question_index}"
    return match.group(syntax)


def _ordered_union(grouped: Mapping[str, Sequence[str]]) -> list[str]:
    names: dict[str, None] = {}
    for syntax in _SYNTAX_ORDER:
        for name in grouped[syntax]:
            names.setdefault(name, None)
    return list(names)


def _normalize_key(key: str) -> str:
    return key.strip().lower()


def _lookup(params: Mapping[str, ParamValue], name: str) -> object:
    if name in params:
        return params[name]
    wanted = _normalize_key(name)
    for key, value in params.items():
        if isinstance(key, str) and _normalize_key(key) == wanted:
            return value
    return _MISSING


# -- saved query records -----------------------------------------------------

_LEADING_SLASHES = re.compile(r"^/+")
_SEPARATOR_RUN = re.compile(r"[_\s]+")
_DISALLOWED_REF_CHARS = re.compile(r"[^a-z0-9-]")


@dataclass(frozen=True, slots=True)
class SavedQuery:
    """A stored SQL template bound to a connection."""

    id: str
    name: str
    sql: str
    connection_ref: str
    description: str = ""

    @property
    def params(self) -> list[str]:
        return extract_params(self.sql)

    @property
    def slash_alias(self) -> str:
        return slash_alias(self)

    def compile(self, params: Mapping[str, ParamValue]) -> CompiledQuery:
        return compile_sql(self.sql, params)


def normalize_query_ref(reference: str) -> str:
    """Normalise a name or ``/alias`` into the slash-command form."""

    stripped = _LEADING_SLASHES.sub("", reference.strip()).lower()
    return _DISALLOWED_REF_CHARS.sub("", _SEPARATOR_RUN.sub("-", stripped))


def slash_alias(query: SavedQuery) -> str:
    return normalize_query_ref(query.name) or query.id


def find_saved_query(queries: Iterable[SavedQuery], reference: str) -> Optional[SavedQuery]:
    """Return the first query matching ``reference`` by id or name."""

    raw = _LEADING_SLASHES.sub("", reference.strip())
    if not raw:
        return None
    raw_lower = raw.lower()
    normalized = normalize_query_ref(raw)

    for query in queries:
        if query.id.lower() == raw_lower or query.name.lower() == raw_lower:
            return query
        if normalized and normalize_query_ref(query.name) == normalized:
            return query
    return None


@dataclass(slots=True)
class SavedQueryLibrary:
    """In-memory collection of saved queries addressable by id or alias."""

    queries: list[SavedQuery] = field(default_factory=list)

    def add(self, query: SavedQuery) -> None:
        self.queries.append(query)

    def find(self, reference: str) -> Optional[SavedQuery]:
        return find_saved_query(self.queries, reference)

    def get(self, reference: str) -> SavedQuery:
        query = self.find(reference)
        if query is None:
            raise SavedQueryError(f"no saved query matches '{reference}'")
        return query

    def compile(
        self,
        reference: str,
        params: Mapping[str, ParamValue],
    ) -> tuple[SavedQuery, CompiledQuery]:
        query = self.get(reference)
        return query, query.compile(params)

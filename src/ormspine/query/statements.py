"""INSERT / UPDATE / DELETE statement generation from registry metadata.

Values are passed as ``{column: value}`` mappings.  ``record_values()``
produces such a mapping from a record instance through its descriptor.

Insert rules, per insertable column in declaration order:

1. a supplied value binds a ``$n`` placeholder; dicts and pydantic models
   are JSON-encoded and cast ``$n::jsonb``
2. otherwise a default literal from ``NOW() NULL true false DEFAULT`` is
   spliced in verbatim; any other default literal is bound as a parameter
3. columns with neither are left out of the statement
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel

from ormspine.core.errors import InvalidRecordError
from ormspine.models.registry import ModelRegistry

from .compiler import CompiledQuery

_PLACEHOLDER = re.compile(r"\$(\d+)")


def is_json_value(value: Any) -> bool:
    return isinstance(value, (dict, BaseModel))


def encode_json(value: Any) -> str:
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    return json.dumps(value, default=str)


def _bind(registry: ModelRegistry, value: Any, index: int) -> tuple[str, Any]:
    placeholder = registry.dialect.placeholder(index)
    if is_json_value(value):
        return registry.dialect.jsonb_cast(placeholder), encode_json(value)
    return placeholder, value


def insert_statement(
    registry: ModelRegistry,
    table: str,
    values: Mapping[str, Any],
    returning: str | None = None,
) -> CompiledQuery:
    """``INSERT INTO "table" (...) VALUES (...) [RETURNING "table".col]``."""
    dialect = registry.dialect
    metadata = registry.metadata(table)
    defaults = metadata.default_expression

    columns: list[str] = []
    placeholders: list[str] = []
    args: list[Any] = []

    for column in metadata.insert_columns:
        if column in values:
            placeholder, arg = _bind(registry, values[column], len(args) + 1)
            args.append(arg)
        elif column in defaults:
            literal = defaults[column]
            if dialect.is_inline_default(literal):
                placeholder = literal
            else:
                args.append(literal)
                placeholder = dialect.placeholder(len(args))
        else:
            continue
        columns.append(dialect.quote(column))
        placeholders.append(placeholder)

    if columns:
        sql = (
            f"INSERT INTO {dialect.quote(table)} ({', '.join(columns)}) "
            f"VALUES ({', '.join(placeholders)})"
        )
    else:
        sql = f"INSERT INTO {dialect.quote(table)} DEFAULT VALUES"

    if returning:
        sql += f" RETURNING {dialect.column_ref(table, returning)}"
    return CompiledQuery(sql, args)


def _set_clause(
    registry: ModelRegistry, table: str, values: Mapping[str, Any]
) -> tuple[list[str], list[Any]]:
    assignments: list[str] = []
    args: list[Any] = []
    for column in registry.metadata(table).update_columns:
        if column not in values:
            continue
        placeholder, arg = _bind(registry, values[column], len(args) + 1)
        assignments.append(f"{column} = {placeholder}")
        args.append(arg)

    if not assignments:
        raise InvalidRecordError(
            "no updatable column supplied"
        ).with_context(table=table, operation="update")
    return assignments, args


def update_statement(
    registry: ModelRegistry,
    table: str,
    values: Mapping[str, Any],
    key: str,
) -> CompiledQuery:
    """``UPDATE "table" SET ... WHERE "table"."key" = $m RETURNING "table".key``.

    Raises:
        InvalidRecordError: ``values`` has no entry for ``key`` or no
            updatable column
    """
    dialect = registry.dialect
    registry.metadata(table)

    if key not in values:
        raise InvalidRecordError(
            f"key column {key!r} missing from update values"
        ).with_context(table=table, operation="update")

    assignments, args = _set_clause(registry, table, values)
    args.append(values[key])
    sql = (
        f"UPDATE {dialect.quote(table)} SET {', '.join(assignments)} "
        f"WHERE {dialect.qualified(table, key)} = {dialect.placeholder(len(args))} "
        f"RETURNING {dialect.column_ref(table, key)}"
    )
    return CompiledQuery(sql, args)


def update_where_statement(
    registry: ModelRegistry,
    table: str,
    values: Mapping[str, Any],
    where: str,
    where_args: Sequence[Any] | None = None,
) -> CompiledQuery:
    """``UPDATE "table" SET ... WHERE <where>``.

    ``where`` is written with its own ``$1..$k`` placeholders; they are
    renumbered to follow the SET arguments.
    """
    registry.metadata(table)
    if not where.strip():
        raise InvalidRecordError(
            "refusing to update without a WHERE clause"
        ).with_context(table=table, operation="update")

    assignments, args = _set_clause(registry, table, values)
    offset = len(args)
    renumbered = _PLACEHOLDER.sub(lambda m: f"${int(m.group(1)) + offset}", where)
    args.extend(where_args or [])
    sql = f"UPDATE {registry.dialect.quote(table)} SET {', '.join(assignments)} WHERE {renumbered}"
    return CompiledQuery(sql, args)


def delete_statement(
    registry: ModelRegistry,
    table: str,
    where: str,
    args: Sequence[Any] | None = None,
) -> CompiledQuery:
    """``DELETE FROM "table" WHERE <where>``; ``where`` uses ``$n`` placeholders."""
    registry.metadata(table)
    if not where.strip():
        raise InvalidRecordError(
            "refusing to delete without a WHERE clause"
        ).with_context(table=table, operation="delete")
    return CompiledQuery(
        f"DELETE FROM {registry.dialect.quote(table)} WHERE {where}", list(args or [])
    )


def record_values(registry: ModelRegistry, record: Any, mode: str = "i") -> dict[str, Any]:
    """``{column: value}`` of a record's insertable (``"i"``) or updatable (``"u"``) fields.

    In insert mode ``None`` values are left out so insert defaults apply to
    them. In update mode every updatable field is kept, ``None`` included, so
    an update can set a column back to NULL.
    """
    if mode not in ("i", "u"):
        raise InvalidRecordError(f"unsupported mode for record values: {mode!r}")
    descriptor = registry.describe(type(record))
    values: dict[str, Any] = {}
    for accessor in descriptor.fields:
        if accessor.is_linked:
            continue
        wanted = accessor.insertable if mode == "i" else accessor.updatable
        if not wanted:
            continue
        value = accessor.getter(record)
        if value is None and mode == "i":
            continue
        values[accessor.column or accessor.name] = value
    return values


__all__ = [
    "delete_statement",
    "encode_json",
    "insert_statement",
    "is_json_value",
    "record_values",
    "update_statement",
    "update_where_statement",
]

"""
Result Mapper: cursor rows to record instances.

``ResultMapper`` reads a cursor's column list, fetches the cached
``ColumnTraversal`` for the destination type and walks it once per row.
Columns without a matching field are discarded; dotted ``prefix.column``
names fill linked nested records; fields whose type decodes itself from
JSON go through the decode adapter.

Architecture:
    ::

        cursor.description ──► column names ──► column_signature()
                                                     │
                            TraversalCache[(type, signature)]
                                                     │ miss: build_traversal()
                                                     ▼
        for row in cursor:  obj = descriptor.new_instance()
                            for value, target in zip(row, traversal.targets):
                                target.assign(obj, value)   # None -> discarded

    Destinations that are not dataclasses (``int``, ``str``, ``uuid.UUID``...)
    take the first column of each row.

Examples:
    >>> mapper = ResultMapper(registry)
    >>> cursor = conn.execute('SELECT "ai_model"."uuid", "ai_model"."key" FROM "ai_model"')
    >>> models = mapper.scan_all(cursor, AIModel)
    >>> mapper.scan_scalar(conn.execute("SELECT COUNT(*) FROM ai_model"))
    3

Tags:
    mapping, scanner, rows, records, ormspine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence
from typing import Any, TypeVar

from ormspine.core.errors import MappingError, MultipleRowsError, NoRowsError
from ormspine.core.protocols import Cursor, column_names
from ormspine.models.registry import ModelRegistry

from .traversal import ColumnTraversal, TraversalCache

T = TypeVar("T")


def is_record_type(record_type: Any) -> bool:
    return isinstance(record_type, type) and dataclasses.is_dataclass(record_type)


class ResultMapper:
    """Maps cursor rows onto dataclass records using cached traversals."""

    def __init__(self, registry: ModelRegistry, cache: TraversalCache | None = None):
        self.registry = registry
        self.cache = cache or TraversalCache()

    def traversal(self, record_type: type, columns: Sequence[str]) -> ColumnTraversal:
        descriptor = self.registry.describe(record_type)
        return self.cache.get(descriptor, columns, self.registry.describe)

    # -- Single destination -------------------------------------------------

    def scan_one(self, cursor: Cursor, record_type: type[T]) -> T:
        """Exactly one row as a ``record_type``.

        Raises:
            NoRowsError: the result is empty
            MultipleRowsError: the result has more than one row
        """
        row = self._single_row(cursor)
        if not is_record_type(record_type):
            return row[0]
        traversal = self.traversal(record_type, column_names(cursor))
        return self._materialize(traversal, row)

    def scan_scalar(self, cursor: Cursor) -> Any:
        """First column of exactly one row."""
        return self._single_row(cursor)[0]

    def scan_into(self, cursor: Cursor, dest: Any) -> Any:
        """Fill an existing record instance in place from exactly one row."""
        row = self._single_row(cursor)
        traversal = self.traversal(type(dest), column_names(cursor))
        self._apply(traversal, row, dest)
        return dest

    # -- Many -------------------------------------------------------------------

    def scan_all(self, cursor: Cursor, record_type: type[T]) -> list[T]:
        """Every remaining row, one ``record_type`` instance (or scalar) each."""
        rows = cursor.fetchall()
        if not is_record_type(record_type):
            return [row[0] for row in rows]
        traversal = self.traversal(record_type, column_names(cursor))
        return [self._materialize(traversal, row) for row in rows]

    def scan(self, cursor: Cursor, dest: Any, record_type: type | None = None) -> Any:
        """Scan into ``dest``: a list (appended to) or a record (filled in place).

        For a list, ``record_type`` may be omitted when ``dest`` already holds
        an item to infer it from.
        """
        if isinstance(dest, list):
            if record_type is None:
                if not dest:
                    raise MappingError("record_type is required to scan into an empty list")
                record_type = type(dest[0])
            dest.extend(self.scan_all(cursor, record_type))
            return dest
        if is_record_type(type(dest)):
            return self.scan_into(cursor, dest)
        raise MappingError(
            f"cannot scan into {type(dest).__name__}: expected a list or a dataclass instance"
        )

    def reset_caches(self) -> None:
        self.cache.clear()

    # -- Internals --------------------------------------------------------------

    def _single_row(self, cursor: Cursor) -> Sequence[Any]:
        row = cursor.fetchone()
        if row is None:
            raise NoRowsError()
        if cursor.fetchone() is not None:
            raise MultipleRowsError()
        return row

    def _materialize(self, traversal: ColumnTraversal, row: Sequence[Any]) -> Any:
        obj = self.registry.describe(traversal.record_type).new_instance()
        self._apply(traversal, row, obj)
        return obj

    @staticmethod
    def _apply(traversal: ColumnTraversal, row: Sequence[Any], obj: Any) -> None:
        for value, target in zip(row, traversal.targets):
            if target is not None:
                target.assign(obj, value)


__all__ = [
    "ResultMapper",
    "is_record_type",
]

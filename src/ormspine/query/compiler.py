"""
Query Compiler: filter / sort / pagination specs to parameterised SQL.

``QueryCompiler.compile()`` appends a WHERE clause, an ORDER BY clause and
``LIMIT ... OFFSET ...`` to a caller-supplied base query.  Field names are
resolved through the Model Registry; placeholders are ``$1..$n`` in order
of use.  The compiler is a pure function of its inputs apart from debug
log events.

Architecture:
    ::

        {"Key[$like]": "%x%"}  ──parse_filters──►  [Condition(Key, LIKE, "%x%")]
        {"Key": "asc"}         ──parse_sort─────►  [SortTerm(Key, ASC)]
                                        │
                                        ▼
        QueryCompiler.compile(base, table, filters, sort, per_page, page)
                                        │
                                        ▼
        CompiledQuery(
            sql='SELECT ... WHERE "t".key LIKE $1 ORDER BY "t".key ASC LIMIT 10 OFFSET 10',
            args=["%x%"],
        )

    Count queries are derived textually (``build_filter_count``): the
    pagination and ordering tail is cut at the first matching marker and
    the rest wrapped in ``SELECT COUNT(*) FROM (...) AS count_subquery``.

Guardrails:
    ❌ DON'T: interpolate filter values into SQL
    ✅ DO: bind every value, including $in/$nin lists (one array parameter)

Tags:
    query, compiler, filters, pagination, sql, ormspine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from ormspine.core.dialect import POSTGRES, PostgreSQLDialect
from ormspine.core.logging import get_logger
from ormspine.models.registry import ModelRegistry

from .conditions import (
    FilterSpec,
    SortSpec,
    as_conditions,
    as_sort_terms,
)

logger = get_logger(__name__)

COUNT_PREFIX = "SELECT COUNT(*) FROM ("
COUNT_SUFFIX = ") AS count_subquery"

_LIMIT_MARKER = " LIMIT "
_OFFSET_MARKER = " OFFSET "
_ORDER_BY_MARKER = " ORDER BY "


@dataclass(frozen=True)
class CompiledQuery:
    """SQL text with its positional arguments."""

    sql: str
    args: list[Any] = field(default_factory=list)

    def __iter__(self):
        # Allows ``sql, args = compiler.compile(...)``
        yield self.sql
        yield self.args


class QueryCompiler:
    """Compiles filter/sort/pagination specs against a registry."""

    def __init__(self, registry: ModelRegistry, dialect: PostgreSQLDialect | None = None):
        self.registry = registry
        self.dialect = dialect or registry.dialect or POSTGRES

    def conditions(
        self,
        table: str,
        filters: FilterSpec,
        alias: str | None = None,
        start: int = 1,
    ) -> tuple[list[str], list[Any]]:
        """WHERE predicates and their arguments, placeholders from ``start``."""
        metadata = self.registry.metadata(table)
        ref_table = alias or table
        predicates: list[str] = []
        args: list[Any] = []
        index = start

        for condition in as_conditions(filters):
            column = metadata.resolve(condition.field)
            if column is None:
                logger.debug(
                    "filter_field_unresolved",
                    table=table,
                    field=condition.field,
                    operator=condition.operator.value,
                )
                continue

            reference = self.dialect.column_ref(ref_table, column)
            if condition.operator.case_insensitive:
                reference = self.dialect.lower(reference)
            predicates.append(
                f"{reference} {condition.operator.render(self.dialect.placeholder(index))}"
            )
            args.append(condition.bound_value())
            index += 1

        return predicates, args

    def order_terms(self, table: str, sort: SortSpec, alias: str | None = None) -> list[str]:
        """``"t".col DIR`` terms for resolvable sort fields.

        Directions are validated before fields are resolved, so an invalid
        direction fails even on a field that would have been dropped.
        """
        terms = as_sort_terms(sort)
        if not terms:
            return []
        metadata = self.registry.metadata(table)
        ref_table = alias or table
        rendered = []
        for term in terms:
            column = metadata.resolve(term.field)
            if column is None:
                logger.debug("sort_field_unresolved", table=table, field=term.field)
                continue
            rendered.append(f"{self.dialect.column_ref(ref_table, column)} {term.direction}")
        return rendered

    def sort_clause(self, table: str, sort: SortSpec, alias: str | None = None) -> str:
        """``" ORDER BY ..."`` or ``""`` when nothing resolves."""
        terms = self.order_terms(table, sort, alias)
        if not terms:
            return ""
        return _ORDER_BY_MARKER + ", ".join(terms)

    def compile(
        self,
        base_query: str,
        table: str,
        filters: FilterSpec = None,
        sort: SortSpec = None,
        per_page: int = 10,
        page: int = 1,
        alias: str | None = None,
    ) -> CompiledQuery:
        """Append WHERE / ORDER BY / LIMIT / OFFSET to ``base_query``.

        Args:
            base_query: SELECT ... FROM ... without a WHERE clause
            table: Registered table whose metadata resolves field names
            filters: ``{"Field[op]": value}`` mapping or ``Condition`` sequence
            sort: ``{"Field": "ASC"|"DESC"}`` mapping or ``SortTerm`` sequence
            per_page: LIMIT
            page: One-based page number
            alias: Table alias used in predicates (defaults to ``table``)

        Raises:
            UnregisteredModelError: ``table`` was never registered
            InvalidSortOrderError: a sort direction outside ASC/DESC
        """
        predicates, args = self.conditions(table, filters, alias)
        order_by = self.sort_clause(table, sort, alias)

        parts = [base_query]
        if predicates:
            parts.append(" WHERE " + " AND ".join(predicates))
        parts.append(order_by)
        parts.append(self.pagination(per_page, page))
        return CompiledQuery("".join(parts), args)

    def pagination(self, per_page: int, page: int) -> str:
        if page <= 0:
            logger.warning("non_positive_page", page=page, per_page=per_page)
        return f" LIMIT {per_page} OFFSET {(page - 1) * per_page}"

    def paginate_custom(
        self,
        base_query: str,
        order_by: str,
        args: Sequence[Any] | None = None,
        per_page: int = 10,
        page: int = 1,
    ) -> CompiledQuery:
        """Append a caller-written ORDER BY clause and pagination."""
        sql = f"{base_query}{_ORDER_BY_MARKER}{order_by}{self.pagination(per_page, page)}"
        return CompiledQuery(sql, list(args or []))


def _index_ci(text: str, marker: str) -> int:
    return text.upper().find(marker)


def build_filter_count(query: str) -> str:
    """COUNT(*) wrapper around ``query`` with LIMIT, OFFSET and ORDER BY cut off.

    Each marker is searched case-insensitively in the already shortened
    text, in the order LIMIT, OFFSET, ORDER BY, and only cut when found past
    position 0.
    """
    for marker in (_LIMIT_MARKER, _OFFSET_MARKER, _ORDER_BY_MARKER):
        index = _index_ci(query, marker)
        if index > 0:
            query = query[:index]
    return f"{COUNT_PREFIX}{query}{COUNT_SUFFIX}"


def build_filter_count_custom(query: str) -> str:
    """Like ``build_filter_count`` but cuts only at the first marker found."""
    for marker in (_LIMIT_MARKER, _OFFSET_MARKER, _ORDER_BY_MARKER):
        index = _index_ci(query, marker)
        if index > 0:
            query = query[:index]
            break
    return f"{COUNT_PREFIX}{query}{COUNT_SUFFIX}"


__all__ = [
    "COUNT_PREFIX",
    "COUNT_SUFFIX",
    "CompiledQuery",
    "QueryCompiler",
    "build_filter_count",
    "build_filter_count_custom",
]

"""Query Compiler and statement builders.

Modules
-------
conditions
    ``Operator``, ``Condition`` and ``SortTerm``; filter-key and sort parsing.
compiler
    ``QueryCompiler`` (WHERE / ORDER BY / LIMIT / OFFSET) and the textual
    count-query derivation.
statements
    INSERT / UPDATE / DELETE from registry metadata.
builder
    ``SelectBuilder`` with joins producing alias-qualified linked columns.

Tags:
    query, sql, compiler, ormspine

Doc-Types:
    package-overview, module-index
"""

from ormspine.query.builder import Join, SelectBuilder
from ormspine.query.compiler import (
    CompiledQuery,
    QueryCompiler,
    build_filter_count,
    build_filter_count_custom,
)
from ormspine.query.conditions import (
    Condition,
    Operator,
    SortTerm,
    parse_filter_key,
    parse_filters,
    parse_sort,
)
from ormspine.query.statements import (
    delete_statement,
    insert_statement,
    record_values,
    update_statement,
    update_where_statement,
)

__all__ = [
    "CompiledQuery",
    "Condition",
    "Join",
    "Operator",
    "QueryCompiler",
    "SelectBuilder",
    "SortTerm",
    "build_filter_count",
    "build_filter_count_custom",
    "delete_statement",
    "insert_statement",
    "parse_filter_key",
    "parse_filters",
    "parse_sort",
    "record_values",
    "update_statement",
    "update_where_statement",
]

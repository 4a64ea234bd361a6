"""SQL dialect for the single supported backend (PostgreSQL).

Every SQL fragment the Registry, Compiler and statement builders emit goes
through ``PostgreSQLDialect`` so that identifier quoting and placeholder
numbering follow one canonical convention.

Manifesto:
    ormspine targets exactly one relational backend.  Keeping the quoting
    and ``$n`` placeholder rules in one object means the compiler never
    hand-formats an identifier and tests can assert exact SQL text.

    - **One convention:** double-quoted identifiers, ``$1``-style placeholders
    - **No driver imports:** pure string helpers
    - **Inline literals:** a fixed allow-list of default expressions

Examples:
    >>> d = PostgreSQLDialect()
    >>> d.placeholder(1)
    '$1'
    >>> d.placeholders(3, 2)
    '$3, $4'
    >>> d.qualified("ai_model", "key")
    '"ai_model"."key"'
    >>> d.column_ref("ai_model", "key")
    '"ai_model".key'

Tags:
    dialect, sql, postgresql, placeholders, quoting, ormspine

Doc-Types:
    - API Reference
"""

from __future__ import annotations


class PostgreSQLDialect:
    """PostgreSQL dialect: ``$n`` placeholders, ``"ident"`` quoting."""

    # Default expressions that are spliced into INSERT statements verbatim
    # instead of being bound as parameters.
    INLINE_DEFAULTS = frozenset({"NOW()", "NULL", "true", "false", "DEFAULT"})

    @property
    def name(self) -> str:
        return "postgresql"

    # -- Identifiers -------------------------------------------------------

    def strip_quotes(self, identifier: str) -> str:
        """Remove embedded double quotes so an identifier can be re-quoted."""
        return identifier.replace('"', "")

    def quote(self, identifier: str) -> str:
        """``name`` -> ``"name"``."""
        return f'"{self.strip_quotes(identifier)}"'

    def qualified(self, table: str, column: str) -> str:
        """Fully quoted reference: ``"table"."column"``."""
        return f"{self.quote(table)}.{self.quote(column)}"

    def column_ref(self, table: str, column: str) -> str:
        """Reference used in WHERE / ORDER BY: ``"table".column``."""
        return f"{self.quote(table)}.{column}"

    def aliased(self, alias: str, column: str) -> str:
        """Select-list entry for a joined table: ``"a"."col" AS "a.col"``."""
        clean = self.strip_quotes(alias)
        return f'"{clean}".{self.quote(column)} AS "{clean}.{column}"'

    # -- Placeholders ------------------------------------------------------

    def placeholder(self, index: int) -> str:
        """One-based positional placeholder."""
        return f"${index}"

    def placeholders(self, start: int, count: int) -> str:
        """Comma-separated run of ``count`` placeholders beginning at ``start``."""
        return ", ".join(self.placeholder(start + i) for i in range(count))

    # -- Expressions -------------------------------------------------------

    def now(self) -> str:
        return "NOW()"

    def lower(self, expression: str) -> str:
        return f"LOWER({expression})"

    def jsonb_cast(self, placeholder: str) -> str:
        return f"{placeholder}::jsonb"

    def is_inline_default(self, literal: str) -> bool:
        return literal in self.INLINE_DEFAULTS


POSTGRES = PostgreSQLDialect()


__all__ = [
    "PostgreSQLDialect",
    "POSTGRES",
]

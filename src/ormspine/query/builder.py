"""SELECT builder with joins over registered tables.

The select list is the base table's fields followed by the fields of every
joined table, qualified by the join alias (``"r"."name" AS "r.name"``) so
the Result Mapper can route them into linked fields.

Where-clauses added before the first join filter the base table inside a
subquery; clauses added after a join go into the outer WHERE::

    SelectBuilder(registry, "website")
        .where('"website".deleted_at IS NULL')
        .left_join("realm", "r", '"r".uuid = "website".realm_uuid')
        .where('"r".name = $1')
        .build()

    SELECT "website"."uuid", ..., "r"."uuid" AS "r.uuid", ...
    FROM (SELECT "website"."uuid", ... FROM "website"
          WHERE "website".deleted_at IS NULL) AS "website"
    LEFT JOIN "realm" AS "r" ON "r".uuid = "website".realm_uuid
    WHERE "r".name = $1
"""

from __future__ import annotations

from dataclasses import dataclass

from ormspine.models.registry import ModelRegistry


@dataclass(frozen=True)
class Join:
    table: str
    alias: str
    on: str
    kind: str = "JOIN"


class SelectBuilder:
    """Fluent SELECT builder; ``build()`` renders the SQL text."""

    def __init__(self, registry: ModelRegistry, table: str):
        registry.metadata(table)
        self.registry = registry
        self.table = table
        self._steps: list[str | Join] = []

    def where(self, condition: str) -> SelectBuilder:
        self._steps.append(condition)
        return self

    def join(self, table: str, alias: str, on: str) -> SelectBuilder:
        self._steps.append(Join(table, alias, on, "JOIN"))
        return self

    def left_join(self, table: str, alias: str, on: str) -> SelectBuilder:
        self._steps.append(Join(table, alias, on, "LEFT JOIN"))
        return self

    def build(self) -> str:
        dialect = self.registry.dialect
        base_fields = self.registry.get_select_fields(self.table)
        fields = list(base_fields.references)
        base_wheres: list[str] = []
        outer_wheres: list[str] = []
        joins: list[Join] = []

        for step in self._steps:
            if isinstance(step, Join):
                fields.extend(self.registry.get_select_fields(step.table, step.alias).references)
                joins.append(step)
            elif joins:
                outer_wheres.append(step)
            else:
                base_wheres.append(step)

        table = dialect.quote(self.table)
        if base_wheres:
            source = (
                f"(SELECT {base_fields.sql()} FROM {table} "
                f"WHERE {' AND '.join(base_wheres)}) AS {table}"
            )
        else:
            source = table

        parts = [f"SELECT {', '.join(fields)} FROM {source}"]
        for join in joins:
            target = dialect.quote(join.table)
            if join.alias:
                target = f"{target} AS {dialect.quote(join.alias)}"
            parts.append(f"{join.kind} {target} ON {join.on}")
        if outer_wheres:
            parts.append("WHERE " + " AND ".join(outer_wheres))
        return " ".join(parts)


__all__ = [
    "Join",
    "SelectBuilder",
]

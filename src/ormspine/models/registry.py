"""
Model Registry: one ``ModelMetadata`` per table, built once and shared.

``ModelRegistry.register(record_type, table)`` parses the record's field
annotations into ordered column lists and insert-time defaults.  The result
is published once and never mutated afterwards; the only thing that grows
is the per-alias cache of select-list strings, which is append-only.

Manifesto:
    The registry is an explicit value created at start-up and handed to the
    compiler, the mapper and the database facade.  There is no module-level
    registry, so two registries (e.g. two test cases) never see each other.

    - **Idempotent:** re-registering a table returns the published metadata
    - **Fail fast:** accessors on unknown tables raise ``UnregisteredModelError``
    - **Lock on publish only:** reads are plain dict lookups

Architecture:
    ::

        ModelRegistry
        ├── _descriptors : {record_type -> ModelDescriptor}
        └── _tables      : {table -> ModelMetadata}
                              ├── column_of        {field -> column}
                              ├── insert_columns   ("uuid", "key", ...)
                              ├── update_columns
                              ├── select_columns
                              ├── default_expression {column -> literal}
                              ├── linked_fields    {field -> prefix}
                              └── _aliases         {alias -> FieldList}

Examples:
    >>> registry = ModelRegistry()
    >>> _ = registry.register(AIModel, "ai_model")
    >>> registry.get_select_fields("ai_model", "m").references[0]
    '"m"."uuid" AS "m.uuid"'

Tags:
    registry, metadata, models, columns, ormspine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ormspine.core.dialect import POSTGRES, PostgreSQLDialect
from ormspine.core.errors import UnregisteredModelError
from ormspine.core.logging import get_logger

from .fields import ModelDescriptor, describe

logger = get_logger(__name__)


@dataclass(frozen=True)
class FieldList:
    """Column references ready to splice into SQL, plus the bare column names."""

    references: tuple[str, ...]
    names: tuple[str, ...]

    def sql(self) -> str:
        return ", ".join(self.references)

    def __len__(self) -> int:
        return len(self.names)


@dataclass(frozen=True)
class ModelMetadata:
    """Registered metadata for one table."""

    table: str
    record_type: type
    descriptor: ModelDescriptor
    column_of: Mapping[str, str]
    insert_columns: tuple[str, ...]
    update_columns: tuple[str, ...]
    select_columns: tuple[str, ...]
    default_expression: Mapping[str, str]
    linked_fields: Mapping[str, str]
    dialect: PostgreSQLDialect = POSTGRES
    _aliases: dict[str, FieldList] = field(default_factory=dict, repr=False, compare=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)
    _lower_fields: dict[str, str] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._lower_fields.update({name.lower(): name for name in self.column_of})

    def select_fields(self, alias: str = "") -> FieldList:
        """Select-list references, unaliased or qualified by ``alias``."""
        cached = self._aliases.get(alias)
        if cached is not None:
            return cached

        if alias:
            references = tuple(self.dialect.aliased(alias, c) for c in self.select_columns)
        else:
            references = tuple(self.dialect.qualified(self.table, c) for c in self.select_columns)
        built = FieldList(references=references, names=self.select_columns)

        with self._lock:
            return self._aliases.setdefault(alias, built)

    def resolve(self, field_name: str) -> str | None:
        """Column behind a field name; falls back to a case-insensitive match."""
        column = self.column_of.get(field_name)
        if column is not None:
            return column
        name = self._lower_fields.get(field_name.lower())
        return self.column_of.get(name) if name is not None else None


def build_metadata(
    record_type: type,
    table: str,
    descriptor: ModelDescriptor,
    dialect: PostgreSQLDialect = POSTGRES,
) -> ModelMetadata:
    column_of: dict[str, str] = {}
    linked_fields: dict[str, str] = {}
    insert_columns: list[str] = []
    update_columns: list[str] = []
    select_columns: list[str] = []
    defaults: dict[str, str] = {}

    for accessor in descriptor.fields:
        if accessor.is_linked:
            linked_fields[accessor.name] = accessor.link_prefix or ""
            continue
        column = accessor.column or ""
        column_of[accessor.name] = column
        select_columns.append(column)
        if accessor.insertable:
            insert_columns.append(column)
            if accessor.default_value is not None:
                defaults[column] = accessor.default_value
        if accessor.updatable:
            update_columns.append(column)

    return ModelMetadata(
        table=table,
        record_type=record_type,
        descriptor=descriptor,
        column_of=MappingProxyType(column_of),
        insert_columns=tuple(insert_columns),
        update_columns=tuple(update_columns),
        select_columns=tuple(select_columns),
        default_expression=MappingProxyType(defaults),
        linked_fields=MappingProxyType(linked_fields),
        dialect=dialect,
    )


class ModelRegistry:
    """Explicit registry of record types and their tables."""

    def __init__(self, dialect: PostgreSQLDialect = POSTGRES):
        self.dialect = dialect
        self._tables: dict[str, ModelMetadata] = {}
        self._descriptors: dict[type, ModelDescriptor] = {}
        self._table_of: dict[type, str] = {}
        self._lock = threading.Lock()

    # -- Registration ------------------------------------------------------

    def register(self, record_type: type, table: str) -> ModelMetadata:
        """Register ``record_type`` under ``table``; a no-op if already registered."""
        existing = self._tables.get(table)
        if existing is not None:
            return existing

        metadata = build_metadata(record_type, table, self.describe(record_type), self.dialect)
        with self._lock:
            published = self._tables.setdefault(table, metadata)
            self._table_of.setdefault(record_type, table)

        if published is metadata:
            logger.debug(
                "model_registered",
                table=table,
                record_type=record_type.__name__,
                columns=len(metadata.select_columns),
                linked=len(metadata.linked_fields),
            )
        return published

    def model(self, table: str) -> Any:
        """Class decorator form of ``register``."""

        def decorator(record_type: type) -> type:
            self.register(record_type, table)
            return record_type

        return decorator

    def describe(self, record_type: type) -> ModelDescriptor:
        """Cached descriptor of any dataclass record type, registered or not."""
        cached = self._descriptors.get(record_type)
        if cached is not None:
            return cached
        descriptor = describe(record_type)
        with self._lock:
            return self._descriptors.setdefault(record_type, descriptor)

    # -- Lookup ------------------------------------------------------------

    def metadata(self, table: str) -> ModelMetadata:
        try:
            return self._tables[table]
        except KeyError:
            raise UnregisteredModelError(table) from None

    def is_registered(self, table: str) -> bool:
        return table in self._tables

    def table_for(self, record_type: type) -> str:
        """Table a record type was registered under."""
        try:
            return self._table_of[record_type]
        except KeyError:
            raise UnregisteredModelError(getattr(record_type, "__name__", str(record_type))) from None

    def tables(self) -> list[str]:
        return sorted(self._tables)

    # -- Accessors ---------------------------------------------------------

    def get_select_fields(self, table: str, alias: str = "") -> FieldList:
        return self.metadata(table).select_fields(alias)

    def get_insert_fields(self, table: str) -> FieldList:
        metadata = self.metadata(table)
        return FieldList(
            references=tuple(self.dialect.quote(c) for c in metadata.insert_columns),
            names=metadata.insert_columns,
        )

    def get_update_fields(self, table: str) -> FieldList:
        metadata = self.metadata(table)
        return FieldList(
            references=tuple(self.dialect.quote(c) for c in metadata.update_columns),
            names=metadata.update_columns,
        )

    def get_insert_defaults(self, table: str) -> Mapping[str, str]:
        return self.metadata(table).default_expression

    def resolve_column(self, table: str, field_name: str) -> str | None:
        return self.metadata(table).resolve(field_name)


__all__ = [
    "FieldList",
    "ModelMetadata",
    "ModelRegistry",
    "build_metadata",
]

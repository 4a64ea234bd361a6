"""Column-to-field traversals and their cache.

A traversal is built once per ``(record_type, column signature)``: for each
result column, either ``None`` (the value is discarded) or a
``ColumnTarget`` whose ``assign`` closure writes the value into a record,
creating linked nested records on the way.

Signatures are cheap: the ``|``-joined column names for fewer than five
columns, otherwise ``first|last|count``.  Two different column lists can
therefore share a signature; the cache keeps the full column tuple and
rebuilds the entry when it does not match.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from ormspine.core.errors import ScanError
from ormspine.core.logging import get_logger
from ormspine.models.fields import FieldAccessor, ModelDescriptor

logger = get_logger(__name__)

DescribeFn = Callable[[type], ModelDescriptor]

_FULL_SIGNATURE_LIMIT = 5


def column_signature(columns: Sequence[str]) -> str:
    if len(columns) < _FULL_SIGNATURE_LIMIT:
        return "|".join(columns)
    return f"{columns[0]}|{columns[-1]}|{len(columns)}"


def normalize_json(value: Any) -> Any:
    """Bring a JSON column to Python objects whatever its wire form."""
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray, memoryview)):
        value = bytes(value).decode("utf-8")
    if isinstance(value, str):
        return json.loads(value)
    return value


def decode_adapter(
    decoder: Callable[[Any], Any], column: str
) -> Callable[[Any], Any]:
    """Wrap a type's decode hook with wire normalisation and error mapping."""

    def decode(value: Any) -> Any:
        try:
            normalized = normalize_json(value)
            if normalized is None:
                return None
            return decoder(normalized)
        except (ValueError, TypeError, UnicodeDecodeError) as e:
            raise ScanError(
                f"cannot decode column {column!r}: {e}", cause=e
            ).with_context(operation="scan", column=column) from e

    return decode


@dataclass(frozen=True)
class ColumnTarget:
    """Where one result column goes."""

    column: str
    path: tuple[str, ...]
    assign: Callable[[Any, Any], None]
    decoded: bool = False


@dataclass(frozen=True)
class ColumnTraversal:
    record_type: type
    columns: tuple[str, ...]
    targets: tuple[ColumnTarget | None, ...]

    @property
    def mapped(self) -> int:
        return sum(1 for t in self.targets if t is not None)


def _leaf_assign(accessor: FieldAccessor, column: str) -> tuple[Callable[[Any, Any], None], bool]:
    setter = accessor.setter
    if accessor.decoder is None:
        return setter, False
    decode = decode_adapter(accessor.decoder, column)

    def assign(obj: Any, value: Any) -> None:
        setter(obj, decode(value))

    return assign, True


def _linked_assign(
    link: FieldAccessor,
    nested: ModelDescriptor,
    inner: Callable[[Any, Any], None],
) -> Callable[[Any, Any], None]:
    getter, setter, new_instance = link.getter, link.setter, nested.new_instance

    def assign(obj: Any, value: Any) -> None:
        child = getter(obj)
        if child is None:
            # NULLs from an unmatched outer join leave the link empty
            if value is None:
                return
            child = new_instance()
            setter(obj, child)
        inner(child, value)

    return assign


def resolve_target(
    descriptor: ModelDescriptor, column: str, describe: DescribeFn
) -> ColumnTarget | None:
    """Target for ``column`` (``name`` or dotted ``prefix.name``), or None."""
    accessor = descriptor.columns.get(column)
    if accessor is not None:
        assign, decoded = _leaf_assign(accessor, column)
        return ColumnTarget(column, (accessor.name,), assign, decoded)

    prefix, dot, rest = column.partition(".")
    if not dot:
        return None
    link = descriptor.links.get(prefix)
    if link is None or link.nested_type is None:
        return None
    nested = describe(link.nested_type)
    inner = resolve_target(nested, rest, describe)
    if inner is None:
        return None
    return ColumnTarget(
        column,
        (link.name, *inner.path),
        _linked_assign(link, nested, inner.assign),
        inner.decoded,
    )


def build_traversal(
    descriptor: ModelDescriptor, columns: Sequence[str], describe: DescribeFn
) -> ColumnTraversal:
    return ColumnTraversal(
        record_type=descriptor.record_type,
        columns=tuple(columns),
        targets=tuple(resolve_target(descriptor, c, describe) for c in columns),
    )


class TraversalCache:
    """Read-mostly cache of traversals keyed by record type and signature."""

    def __init__(self) -> None:
        self._entries: dict[tuple[type, str], ColumnTraversal] = {}
        self._lock = threading.Lock()

    def get(
        self, descriptor: ModelDescriptor, columns: Sequence[str], describe: DescribeFn
    ) -> ColumnTraversal:
        columns = tuple(columns)
        key = (descriptor.record_type, column_signature(columns))
        cached = self._entries.get(key)
        if cached is not None and cached.columns == columns:
            return cached

        traversal = build_traversal(descriptor, columns, describe)
        with self._lock:
            self._entries[key] = traversal
        logger.debug(
            "traversal_built",
            record_type=descriptor.record_type.__name__,
            columns=len(columns),
            mapped=traversal.mapped,
            collision=cached is not None,
        )
        return traversal

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


__all__ = [
    "ColumnTarget",
    "ColumnTraversal",
    "TraversalCache",
    "build_traversal",
    "column_signature",
    "decode_adapter",
    "normalize_json",
    "resolve_target",
]

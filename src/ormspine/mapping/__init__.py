"""Result Mapper: rows to records through cached column traversals.

Modules
-------
traversal
    Column signatures, ``ColumnTraversal`` construction, the JSON decode
    adapter and the ``TraversalCache``.
mapper
    ``ResultMapper`` (scan_one, scan_all, scan, scan_scalar).

Tags:
    mapping, scanner, ormspine

Doc-Types:
    package-overview, module-index
"""

from ormspine.mapping.mapper import ResultMapper, is_record_type
from ormspine.mapping.traversal import (
    ColumnTarget,
    ColumnTraversal,
    TraversalCache,
    build_traversal,
    column_signature,
    decode_adapter,
    normalize_json,
)

__all__ = [
    "ColumnTarget",
    "ColumnTraversal",
    "ResultMapper",
    "TraversalCache",
    "build_traversal",
    "column_signature",
    "decode_adapter",
    "is_record_type",
    "normalize_json",
]

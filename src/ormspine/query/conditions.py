"""Structured filter conditions and sort terms.

Callers describe a query with string keys (``"Key[$like]"``) and a sort
mapping (``{"Key": "asc"}``).  Both are parsed once here, at the API
boundary, into ``Condition`` and ``SortTerm`` values; the compiler never
looks at a raw key again.

Operator tokens:

    =========================  ======================
    token                      SQL shape
    =========================  ======================
    ``""`` / ``$eq``           ``= $n``
    ``$ne``                    ``!= $n``
    ``$gt`` ``$gte``           ``> $n`` ``>= $n``
    ``$lt`` ``$lte``           ``< $n`` ``<= $n``
    ``$in``                    ``= ANY($n)``
    ``$nin``                   ``!= ALL($n)``
    ``$like`` ``$prefix``      ``LIKE $n``
    ``$suffix``                ``LIKE $n``
    ``€eq`` ``€like``          case-insensitive variants,
    ``€prefix`` ``€suffix``    ``LOWER(col) ... $n``
    =========================  ======================

Unknown tokens fall back to equality.  ``$prefix``/``$suffix`` only pick the
SQL shape; wildcard placement is up to the caller.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from ormspine.core.errors import InvalidSortOrderError

CASE_INSENSITIVE_SENTINEL = "€"


class Operator(str, Enum):
    """Filter operators, valued by their wire token."""

    EQ = "$eq"
    NE = "$ne"
    GT = "$gt"
    GTE = "$gte"
    LT = "$lt"
    LTE = "$lte"
    IN = "$in"
    NIN = "$nin"
    LIKE = "$like"
    PREFIX = "$prefix"
    SUFFIX = "$suffix"
    IEQ = "€eq"
    ILIKE = "€like"
    IPREFIX = "€prefix"
    ISUFFIX = "€suffix"

    @property
    def case_insensitive(self) -> bool:
        return self.value.startswith(CASE_INSENSITIVE_SENTINEL)

    def render(self, placeholder: str) -> str:
        """SQL right-hand side for this operator, e.g. ``= ANY($2)``."""
        return _TEMPLATES[self].format(p=placeholder)

    @classmethod
    def from_token(cls, token: str) -> Operator:
        """Operator for a key suffix; empty or unknown tokens mean equality."""
        if not token:
            return cls.EQ
        try:
            return cls(token)
        except ValueError:
            return cls.EQ


_TEMPLATES = {
    Operator.EQ: "= {p}",
    Operator.IEQ: "= {p}",
    Operator.NE: "!= {p}",
    Operator.GT: "> {p}",
    Operator.GTE: ">= {p}",
    Operator.LT: "< {p}",
    Operator.LTE: "<= {p}",
    Operator.IN: "= ANY({p})",
    Operator.NIN: "!= ALL({p})",
    Operator.LIKE: "LIKE {p}",
    Operator.PREFIX: "LIKE {p}",
    Operator.SUFFIX: "LIKE {p}",
    Operator.ILIKE: "LIKE {p}",
    Operator.IPREFIX: "LIKE {p}",
    Operator.ISUFFIX: "LIKE {p}",
}


@dataclass(frozen=True)
class Condition:
    """One ``field <operator> value`` predicate."""

    field: str
    operator: Operator
    value: Any

    def bound_value(self) -> Any:
        """Value as bound to the placeholder (lower-cased for ``€`` operators)."""
        if self.operator.case_insensitive and isinstance(self.value, str):
            return self.value.lower()
        return self.value


@dataclass(frozen=True)
class SortTerm:
    field: str
    direction: str


def parse_filter_key(key: str) -> tuple[str, Operator]:
    """``"Key[$like]"`` -> ``("Key", Operator.LIKE)``; ``"Key"`` -> equality."""
    bracket = key.find("[")
    if bracket < 0:
        return key, Operator.EQ
    token = key[bracket + 1 :]
    if token.endswith("]"):
        token = token[:-1]
    return key[:bracket], Operator.from_token(token)


def parse_filters(filters: Mapping[str, Any] | None) -> list[Condition]:
    """Parse a ``{"Field[op]": value}`` mapping into conditions, keeping its order."""
    if not filters:
        return []
    conditions = []
    for key, value in filters.items():
        field_name, operator = parse_filter_key(key)
        conditions.append(Condition(field_name, operator, value))
    return conditions


def normalize_direction(direction: str, field_name: str | None = None) -> str:
    normalized = direction.upper()
    if normalized not in ("ASC", "DESC"):
        raise InvalidSortOrderError(normalized, field_name)
    return normalized


def parse_sort(sort: Mapping[str, str] | None) -> list[SortTerm]:
    """Parse ``{"Field": "asc"}`` into sort terms.

    Raises:
        InvalidSortOrderError: a direction other than ASC/DESC (any case)
    """
    if not sort:
        return []
    return [
        SortTerm(field_name, normalize_direction(direction, field_name))
        for field_name, direction in sort.items()
    ]


FilterSpec = Union[Mapping[str, Any], Iterable[Condition], None]
SortSpec = Union[Mapping[str, str], Iterable[SortTerm], None]


def as_conditions(filters: FilterSpec) -> list[Condition]:
    if filters is None:
        return []
    if isinstance(filters, Mapping):
        return parse_filters(filters)
    return list(filters)


def as_sort_terms(sort: SortSpec) -> list[SortTerm]:
    if sort is None:
        return []
    if isinstance(sort, Mapping):
        return parse_sort(sort)
    return [SortTerm(t.field, normalize_direction(t.direction, t.field)) for t in sort]


__all__ = [
    "CASE_INSENSITIVE_SENTINEL",
    "Condition",
    "FilterSpec",
    "Operator",
    "SortSpec",
    "SortTerm",
    "as_conditions",
    "as_sort_terms",
    "normalize_direction",
    "parse_filter_key",
    "parse_filters",
    "parse_sort",
]

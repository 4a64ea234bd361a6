"""Field annotations and per-type descriptors.

Record types are plain dataclasses.  A field joins the ORM by carrying
column metadata, attached with ``column()`` or ``linked()``::

    @dataclass
    class Website:
        uuid: str | None = column("uuid", mode="i")
        name: str = column("name", mode="i,u", default="")
        realm_uuid: str | None = column("realm_uuid", mode="i")
        realm: Realm | None = linked("r")

``describe()`` turns such a type into a ``ModelDescriptor`` once: a tuple of
``FieldAccessor`` objects with precomputed getter/setter closures, the
nested type of every linked field, and the decode hook of fields whose
type knows how to read itself from JSON.  The Result Mapper and the
statement builders only ever go through the descriptor.

Mode flags (comma separated):

    ====  =====================================================
    i     insertable
    u     updatable
    s     select-only (never inserted or updated)
    l     linked nested record (``link`` is accepted as well)
    ====  =====================================================

Tags:
    models, dataclasses, descriptors, annotations, ormspine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import dataclasses
import types
import typing
from collections.abc import Callable, Mapping
from dataclasses import MISSING, dataclass
from typing import Any

from pydantic import BaseModel

from ormspine.core.errors import ModelDefinitionError

COLUMN_KEY = "ormspine.column"
MODE_KEY = "ormspine.mode"
DEFAULT_KEY = "ormspine.default_value"

MODE_INSERT = "i"
MODE_UPDATE = "u"
MODE_SELECT_ONLY = "s"
MODE_LINK = "l"

_MODE_ALIASES = {
    "i": MODE_INSERT,
    "u": MODE_UPDATE,
    "s": MODE_SELECT_ONLY,
    "l": MODE_LINK,
    "link": MODE_LINK,
}


def column(
    name: str,
    mode: str = "",
    default_value: str | None = None,
    *,
    default: Any = MISSING,
    default_factory: Any = MISSING,
) -> Any:
    """Declare a dataclass field mapped to ``name``.

    Args:
        name: Physical column name (or the prefix, when ``mode`` contains ``l``)
        mode: Comma-separated mode flags
        default_value: SQL literal used on insert when no value is supplied
        default: Python default of the field (``None`` when omitted)
        default_factory: Python default factory of the field
    """
    metadata = {COLUMN_KEY: name, MODE_KEY: mode, DEFAULT_KEY: default_value}
    if default_factory is not MISSING:
        return dataclasses.field(default_factory=default_factory, metadata=metadata)
    return dataclasses.field(
        default=None if default is MISSING else default, metadata=metadata
    )


def linked(prefix: str) -> Any:
    """Declare a nested record populated from ``prefix.<column>`` result columns."""
    return column(prefix, mode=MODE_LINK)


def parse_mode(mode: str) -> frozenset[str]:
    """``"i,u"`` -> ``frozenset({"i", "u"})``."""
    flags = set()
    for token in mode.split(","):
        token = token.strip().lower()
        if not token:
            continue
        if token not in _MODE_ALIASES:
            raise ModelDefinitionError(f"unknown mode flag: {token!r}")
        flags.add(_MODE_ALIASES[token])
    return frozenset(flags)


@dataclass(frozen=True)
class FieldAccessor:
    """Everything the ORM needs to know about one annotated field."""

    name: str
    column: str | None
    modes: frozenset[str]
    default_value: str | None
    getter: Callable[[Any], Any]
    setter: Callable[[Any, Any], None]
    link_prefix: str | None = None
    nested_type: type | None = None
    decoder: Callable[[Any], Any] | None = None

    @property
    def is_linked(self) -> bool:
        return self.link_prefix is not None

    @property
    def insertable(self) -> bool:
        return MODE_INSERT in self.modes and MODE_SELECT_ONLY not in self.modes

    @property
    def updatable(self) -> bool:
        return MODE_UPDATE in self.modes and MODE_SELECT_ONLY not in self.modes


@dataclass(frozen=True)
class ModelDescriptor:
    """Precomputed accessors for one record type."""

    record_type: type
    fields: tuple[FieldAccessor, ...]
    new_instance: Callable[[], Any]
    _by_name: dict[str, FieldAccessor] = dataclasses.field(init=False, repr=False, compare=False)
    _by_column: dict[str, FieldAccessor] = dataclasses.field(init=False, repr=False, compare=False)
    _by_prefix: dict[str, FieldAccessor] = dataclasses.field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_by_name", {f.name: f for f in self.fields})
        object.__setattr__(
            self, "_by_column", {f.column: f for f in self.fields if f.column is not None}
        )
        object.__setattr__(
            self, "_by_prefix", {f.link_prefix: f for f in self.fields if f.is_linked}
        )

    @property
    def columns(self) -> Mapping[str, FieldAccessor]:
        return self._by_column

    @property
    def links(self) -> Mapping[str, FieldAccessor]:
        return self._by_prefix

    def field(self, name: str) -> FieldAccessor | None:
        return self._by_name.get(name)


def _make_getter(name: str) -> Callable[[Any], Any]:
    def getter(obj: Any) -> Any:
        return getattr(obj, name)

    return getter


def _make_setter(name: str) -> Callable[[Any, Any], None]:
    # object.__setattr__ so frozen dataclasses can be materialised too
    def setter(obj: Any, value: Any) -> None:
        object.__setattr__(obj, name, value)

    return setter


def _make_factory(record_type: type, dc_fields: tuple[dataclasses.Field, ...]) -> Callable[[], Any]:
    defaults = [(f.name, f.default, f.default_factory) for f in dc_fields]

    def new_instance() -> Any:
        obj = record_type.__new__(record_type)
        for name, default, factory in defaults:
            if factory is not MISSING:
                value = factory()
            elif default is not MISSING:
                value = default
            else:
                value = None
            object.__setattr__(obj, name, value)
        return obj

    return new_instance


def _unwrap_optional(hint: Any) -> Any:
    origin = typing.get_origin(hint)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return hint


def decoder_for(hint: Any) -> Callable[[Any], Any] | None:
    """The JSON decode hook of a field type, if it has one.

    A type decodes itself when it defines a ``scan_json`` classmethod or is a
    pydantic model (``model_validate``).
    """
    target = _unwrap_optional(hint)
    if not isinstance(target, type):
        return None
    scan_json = getattr(target, "scan_json", None)
    if callable(scan_json):
        return scan_json
    if issubclass(target, BaseModel):
        return target.model_validate
    return None


def describe(record_type: type) -> ModelDescriptor:
    """Build the descriptor of a dataclass record type.

    Raises:
        ModelDefinitionError: not a dataclass, unresolvable annotations, or a
            linked field whose type is not itself a dataclass
    """
    if not (isinstance(record_type, type) and dataclasses.is_dataclass(record_type)):
        raise ModelDefinitionError(f"{record_type!r} is not a dataclass type")

    try:
        hints = typing.get_type_hints(record_type)
    except (NameError, TypeError) as e:
        raise ModelDefinitionError(
            f"cannot resolve annotations of {record_type.__name__}: {e}", cause=e
        ) from e

    dc_fields = dataclasses.fields(record_type)
    accessors: list[FieldAccessor] = []
    for f in dc_fields:
        if COLUMN_KEY not in f.metadata:
            continue
        name = f.metadata[COLUMN_KEY]
        if not name:
            raise ModelDefinitionError(
                f"{record_type.__name__}.{f.name}: empty column name"
            )
        modes = parse_mode(f.metadata.get(MODE_KEY) or "")
        hint = hints.get(f.name, Any)

        if MODE_LINK in modes:
            nested = _unwrap_optional(hint)
            if not (isinstance(nested, type) and dataclasses.is_dataclass(nested)):
                raise ModelDefinitionError(
                    f"{record_type.__name__}.{f.name}: linked field must be a dataclass type"
                )
            accessors.append(
                FieldAccessor(
                    name=f.name,
                    column=None,
                    modes=modes,
                    default_value=None,
                    getter=_make_getter(f.name),
                    setter=_make_setter(f.name),
                    link_prefix=name,
                    nested_type=nested,
                )
            )
            continue

        accessors.append(
            FieldAccessor(
                name=f.name,
                column=name,
                modes=modes,
                default_value=f.metadata.get(DEFAULT_KEY),
                getter=_make_getter(f.name),
                setter=_make_setter(f.name),
                decoder=decoder_for(hint),
            )
        )

    return ModelDescriptor(
        record_type=record_type,
        fields=tuple(accessors),
        new_instance=_make_factory(record_type, dc_fields),
    )


__all__ = [
    "column",
    "linked",
    "parse_mode",
    "decoder_for",
    "describe",
    "FieldAccessor",
    "ModelDescriptor",
    "MODE_INSERT",
    "MODE_UPDATE",
    "MODE_SELECT_ONLY",
    "MODE_LINK",
]

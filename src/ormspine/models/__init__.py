"""Model Registry: dataclass record types mapped to tables.

Modules
-------
fields
    ``column()`` / ``linked()`` annotations, ``describe()`` and the
    ``ModelDescriptor`` of precomputed field accessors.
registry
    ``ModelRegistry`` and the immutable ``ModelMetadata`` it publishes.

Tags:
    models, registry, ormspine

Doc-Types:
    package-overview, module-index
"""

from ormspine.models.fields import (
    FieldAccessor,
    ModelDescriptor,
    column,
    decoder_for,
    describe,
    linked,
    parse_mode,
)
from ormspine.models.registry import (
    FieldList,
    ModelMetadata,
    ModelRegistry,
    build_metadata,
)

__all__ = [
    "FieldAccessor",
    "FieldList",
    "ModelDescriptor",
    "ModelMetadata",
    "ModelRegistry",
    "build_metadata",
    "column",
    "decoder_for",
    "describe",
    "linked",
    "parse_mode",
]

"""
Identifier remapping services.

Old fixed-width text identifiers are replaced by new numeric ids across
line-oriented SQL dumps, in three steps:

1. Mapping generation: every column whose type can hold an old identifier is
   discovered and each distinct value gets a new id in the mapping table.

2. Dump transform: each dump file is streamed line by line and every mapped
   identifier found in a quoted literal, an entity path or a query string is
   rewritten.

3. Patch: transformed files are rewritten in place with a reloaded mapping,
   to catch identifiers that had no mapping during the first transform.
"""

from idremap.services.remapping.generator import (
    GenerationReport,
    MappingGenerator,
    SourceColumn,
)
from idremap.services.remapping.main import (
    PhaseReport,
    reconcile_transformed,
    transform_dumps,
)
from idremap.services.remapping.matchers import (
    EntityPathMatcher,
    Matcher,
    QueryStringMatcher,
    QuotedLiteralMatcher,
    default_matchers,
)
from idremap.services.remapping.reconciliation import reconcile_file
from idremap.services.remapping.settings import RemapSettings
from idremap.services.remapping.store import (
    DatabaseMappingSource,
    IdMappingStore,
    TsvMappingSource,
    export_mapping,
)
from idremap.services.remapping.transformer import (
    StreamTransformer,
    TransformationRun,
    transform_file,
)

__all__ = [
    "DatabaseMappingSource",
    "EntityPathMatcher",
    "GenerationReport",
    "IdMappingStore",
    "MappingGenerator",
    "Matcher",
    "PhaseReport",
    "QueryStringMatcher",
    "QuotedLiteralMatcher",
    "RemapSettings",
    "SourceColumn",
    "StreamTransformer",
    "TransformationRun",
    "TsvMappingSource",
    "default_matchers",
    "export_mapping",
    "reconcile_file",
    "reconcile_transformed",
    "transform_dumps",
    "transform_file",
]

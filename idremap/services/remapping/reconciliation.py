"""
In-place patch of already transformed files.

Identifiers that had no mapping when a file was first transformed are still
present verbatim in its output. Once the store has been reloaded with the
mappings added since, running the same matchers over the transformed file
again rewrites them. A pass that finds nothing to replace leaves the file
untouched, so reconciling any number of times gives the same bytes as
reconciling once.

Tokens made only of decimal digits and missing from the store are counted
apart as numeric: they are the new ids written by the first pass, not
identifiers still waiting for a mapping.
"""

import logging

from idremap.services.remapping.settings import RemapSettings
from idremap.services.remapping.store import IdMappingStore
from idremap.services.remapping.transformer import (
    ProgressCallback,
    StreamTransformer,
    TransformationRun,
)

logger = logging.getLogger(__name__)


def reconcile_file(
    path,
    store: IdMappingStore,
    settings: RemapSettings,
    matchers=None,
    on_progress: ProgressCallback = None,
) -> TransformationRun:
    transformer = StreamTransformer(
        store,
        settings,
        matchers=matchers,
        on_progress=on_progress,
        numeric_is_unmapped=False,
    )
    run = transformer.transform(path, path, keep_unchanged=False)
    if not run.committed:
        logger.info(f"{run.input_path.name}: nothing left to patch")
    return run

"""
Phase orchestration: transform every raw dump of the output directory, or
patch every already transformed file, and report per-file results.

Files are independent. A failure on one file is recorded in the phase report
and the remaining files are still processed. With several workers, files are
spread over a process pool; each worker receives the loaded mapping once,
through the pool initializer, and only ever reads it.
"""

import logging
from dataclasses import dataclass, field
from multiprocessing import Pool
from pathlib import Path
from typing import List, Optional

from idremap.helpers.errors import IdRemapError, NoDumpFilesError
from idremap.services.remapping.reconciliation import reconcile_file
from idremap.services.remapping.settings import (
    DUMP_PREFIX,
    TRANSFORMED_PREFIX,
    TRANSFORMED_SUFFIX,
    RemapSettings,
)
from idremap.services.remapping.store import IdMappingStore
from idremap.services.remapping.transformer import (
    RunStatus,
    StreamTransformer,
    TransformationRun,
)

logger = logging.getLogger(__name__)

TRANSFORM_PHASE = "transform"
RECONCILE_PHASE = "patch"


@dataclass
class PhaseReport:
    phase: str
    runs: List[TransformationRun] = field(default_factory=list)

    @property
    def failed_runs(self) -> List[TransformationRun]:
        return [r for r in self.runs if r.status != RunStatus.COMPLETE]

    @property
    def succeeded(self) -> bool:
        return not self.failed_runs

    @property
    def replaced_count(self) -> int:
        return sum(r.replaced_count for r in self.runs)

    @property
    def unmapped_count(self) -> int:
        return sum(r.unmapped_count for r in self.runs)

    @property
    def numeric_count(self) -> int:
        return sum(r.numeric_count for r in self.runs)

    def log(self):
        for run in self.runs:
            if run.status == RunStatus.COMPLETE:
                logger.info(run.summary())
            else:
                logger.error(
                    f"{run.input_path.name}: {run.status.value} ({run.error})",
                    extra={"phase": self.phase},
                )
        logger.info(
            f"Phase {self.phase} done: {len(self.runs) - len(self.failed_runs)}/{len(self.runs)} files, "
            f"{self.replaced_count:,} replaced, {self.unmapped_count:,} unmapped, "
            f"{self.numeric_count:,} numeric",
            extra={"phase": self.phase},
        )


def transformed_path_for(dump_path, settings: RemapSettings) -> Path:
    """``03_note.sql`` -> ``04_note.transformed.sql``"""
    dump_path = Path(dump_path)
    name = dump_path.name
    if name.startswith(DUMP_PREFIX):
        name = TRANSFORMED_PREFIX + name[len(DUMP_PREFIX) :]
    if name.endswith(".sql"):
        name = name[: -len(".sql")]
    return settings.output_path / f"{name}{TRANSFORMED_SUFFIX}"


def find_dump_files(settings: RemapSettings) -> List[Path]:
    return sorted(
        p
        for p in settings.output_path.glob(f"{DUMP_PREFIX}*.sql")
        if not p.name.endswith(TRANSFORMED_SUFFIX)
    )


def find_transformed_files(settings: RemapSettings) -> List[Path]:
    return sorted(
        settings.output_path.glob(f"{TRANSFORMED_PREFIX}*{TRANSFORMED_SUFFIX}")
    )


_worker_store: Optional[IdMappingStore] = None
_worker_settings: Optional[RemapSettings] = None


def _init_worker(mapping, settings):
    global _worker_store, _worker_settings
    _worker_store = IdMappingStore.wrap(mapping)
    _worker_settings = settings


def _run_task(phase, input_path, output_path, store, settings):
    try:
        if phase == RECONCILE_PHASE:
            return reconcile_file(input_path, store, settings)
        return StreamTransformer(store, settings).transform(
            input_path, output_path
        )
    except IdRemapError as e:
        error = e.message
    except Exception as e:
        logger.exception(f"Unexpected error on {Path(input_path).name}")
        error = f"{e.__class__.__name__}: {e}"
    return TransformationRun(
        Path(input_path),
        Path(output_path),
        status=RunStatus.FAILED,
        error=error,
    )


def _run_worker_task(task):
    phase, input_path, output_path = task
    return _run_task(
        phase, input_path, output_path, _worker_store, _worker_settings
    )


def run_phase(
    phase: str,
    tasks: List[tuple],
    store: IdMappingStore,
    settings: RemapSettings,
    workers: int = 1,
) -> PhaseReport:
    report = PhaseReport(phase)
    logger.info(
        f"Phase {phase}: {len(tasks)} files with {workers} worker(s)"
    )

    if workers <= 1 or len(tasks) <= 1:
        for input_path, output_path in tasks:
            report.runs.append(
                _run_task(phase, input_path, output_path, store, settings)
            )
    else:
        with Pool(
            min(workers, len(tasks)),
            initializer=_init_worker,
            initargs=(store.as_dict(), settings),
        ) as pool:
            report.runs.extend(
                pool.imap_unordered(
                    _run_worker_task,
                    [(phase, i, o) for i, o in tasks],
                )
            )
        report.runs.sort(key=lambda r: str(r.input_path))

    report.log()
    return report


def transform_dumps(
    settings: RemapSettings,
    store: IdMappingStore,
    workers: int = 1,
    files: List[Path] = None,
) -> PhaseReport:
    dump_files = files if files is not None else find_dump_files(settings)
    if not dump_files:
        raise NoDumpFilesError(
            f"No dump files found in {settings.output_path}. Dump the data first."
        )
    tasks = [(p, transformed_path_for(p, settings)) for p in dump_files]
    return run_phase(TRANSFORM_PHASE, tasks, store, settings, workers)


def reconcile_transformed(
    settings: RemapSettings,
    store: IdMappingStore,
    workers: int = 1,
    files: List[Path] = None,
) -> PhaseReport:
    transformed_files = (
        files if files is not None else find_transformed_files(settings)
    )
    if not transformed_files:
        raise NoDumpFilesError(
            f"No transformed files found in {settings.output_path}. Transform the dumps first."
        )
    tasks = [(p, p) for p in transformed_files]
    return run_phase(RECONCILE_PHASE, tasks, store, settings, workers)

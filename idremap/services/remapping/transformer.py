import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from idremap.helpers.errors import TransformError
from idremap.helpers.files import AtomicFileWriter, count_lines, open_dump
from idremap.services.remapping.matchers import Matcher, default_matchers
from idremap.services.remapping.settings import RemapSettings
from idremap.services.remapping.store import IdMappingStore

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class TransformationRun:
    input_path: Path
    output_path: Path
    total_lines: int = 0
    lines_processed: int = 0
    replaced: Counter = field(default_factory=Counter)
    unmapped: Counter = field(default_factory=Counter)
    numeric: Counter = field(default_factory=Counter)
    status: RunStatus = RunStatus.PENDING
    error: Optional[str] = None
    committed: bool = False

    @property
    def replaced_count(self) -> int:
        return sum(self.replaced.values())

    @property
    def unmapped_count(self) -> int:
        return sum(self.unmapped.values())

    @property
    def numeric_count(self) -> int:
        return sum(self.numeric.values())

    @property
    def progress_percent(self) -> int:
        if not self.total_lines:
            return 100
        return min(100, self.lines_processed * 100 // self.total_lines)

    def summary(self) -> str:
        details = ", ".join(
            f"{name}={self.replaced[name]}/{self.unmapped[name]}"
            for name in sorted(set(self.replaced) | set(self.unmapped))
        )
        return (
            f"{Path(self.input_path).name}: {self.status.value}, "
            f"{self.lines_processed:,} lines, "
            f"{self.replaced_count:,} replaced, {self.unmapped_count:,} unmapped"
            + (f", {self.numeric_count:,} numeric" if self.numeric_count else "")
            + (f" ({details})" if details else "")
        )


ProgressCallback = Callable[[TransformationRun, int], None]


class StreamTransformer:
    """
    Rewrites a dump file line by line, applying the matchers in order.

    Peak memory is one line plus the store. The output is only published
    once the whole input has been written, so an interrupted or failed run
    never leaves an output file that looks complete.

    With ``numeric_is_unmapped=False``, unmapped tokens made only of decimal
    digits are counted apart as ``numeric`` instead of unmapped: in a file
    that was already transformed they are most likely new ids.
    """

    def __init__(
        self,
        store: IdMappingStore,
        settings: RemapSettings,
        matchers: List[Matcher] = None,
        on_progress: ProgressCallback = None,
        numeric_is_unmapped: bool = True,
    ):
        self.store = store
        self.settings = settings
        self.matchers = (
            matchers if matchers is not None else default_matchers(settings)
        )
        self.on_progress = on_progress
        self.numeric_is_unmapped = numeric_is_unmapped

    def transform_line(self, line: str, run: TransformationRun) -> str:
        for matcher in self.matchers:
            result = matcher.find_and_replace(line, self.store)
            line = result.line
            unmapped = result.unmapped
            if self.numeric_is_unmapped:
                unmapped += result.numeric
            elif result.numeric:
                run.numeric[matcher.name] += result.numeric
            if result.replaced:
                run.replaced[matcher.name] += result.replaced
            if unmapped:
                run.unmapped[matcher.name] += unmapped
        return line

    def transform(
        self, input_path, output_path, keep_unchanged: bool = True
    ) -> TransformationRun:
        """
        Transform ``input_path`` into ``output_path``.

        With ``keep_unchanged=False`` an output identical to the input is not
        written at all, which lets an in-place pass leave the file untouched.
        """
        run = TransformationRun(Path(input_path), Path(output_path))
        logger.info(f"Transforming {run.input_path.name}")
        try:
            run.total_lines = count_lines(input_path)
            logger.info(f"{run.input_path.name}: {run.total_lines:,} lines")

            with AtomicFileWriter(output_path) as out, open_dump(
                input_path
            ) as source:
                self._report_progress(run, 0)
                last_reported = 0
                for line in source:
                    out.write(self.transform_line(line, run))
                    run.lines_processed += 1
                    percent = run.progress_percent
                    if (
                        percent - last_reported
                        >= self.settings.progress_step_percent
                    ):
                        last_reported = percent
                        self._report_progress(run, percent)

                if not keep_unchanged and run.replaced_count == 0:
                    out.discard()
                else:
                    run.committed = True
        except OSError as e:
            run.status = RunStatus.FAILED
            run.error = str(e)
            run.committed = False
            logger.error(f"Transform of {run.input_path.name} failed: {e}")
            raise TransformError(
                f"Transform of {run.input_path} failed: {e}",
                path=run.input_path,
            ) from e

        if last_reported < 100:
            self._report_progress(run, 100)
        run.status = RunStatus.COMPLETE
        logger.info(run.summary())
        return run

    def _report_progress(self, run: TransformationRun, percent: int):
        logger.info(
            f"{run.input_path.name}: [{run.lines_processed:,} / {run.total_lines:,}] {percent}%"
        )
        if self.on_progress:
            self.on_progress(run, percent)


def transform_file(
    input_path,
    output_path,
    store: IdMappingStore,
    settings: RemapSettings,
    on_progress: ProgressCallback = None,
) -> TransformationRun:
    return StreamTransformer(
        store, settings, on_progress=on_progress
    ).transform(input_path, output_path)

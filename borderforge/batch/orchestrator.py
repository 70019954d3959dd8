"""Batch orchestrator: drives the file list through the pipeline with crash-safe progress."""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from tqdm import tqdm

from borderforge.logger import LOGGER
from borderforge.options import BatchOptions
from borderforge.processing.engine import ImageEngine
from borderforge.processing.errors import ErrorKind, ProcessingError, classify
from borderforge.processing.pipeline import process_one
from borderforge.state.run_state import RunState, RunStateStore

from .addressing import output_path_for
from .cleanup import ResourceReclaimer, sleep_ms
from .enumerator import FileTask


ProcessFn = Callable[[ImageEngine, Path, Path, BatchOptions], object]


@dataclass
class BatchResult:
    """Outcome of one orchestrator run."""

    finished_normally: bool
    total: int
    processed: int = 0
    skipped: int = 0
    failed: int = 0
    aborted_reason: Optional[str] = None
    failed_files: List[str] = field(default_factory=list)

    @property
    def return_to_config(self) -> bool:
        """True when the run stopped early and the caller should go back to configuration."""
        return not self.finished_normally


class BatchAborted(Exception):
    """Stops the run while leaving the run-state in place for a later resume."""

    def __init__(self, reason: str, error: Optional[ProcessingError] = None):
        super().__init__(reason)
        self.reason = reason
        self.error = error


def clamp(value: int, low: int, high: int) -> int:
    """Limit value to the closed range [low, high]."""
    return max(low, min(high, value))


def _process_with_retries(
    task: FileTask,
    target: Path,
    options: BatchOptions,
    engine: ImageEngine,
    reclaimer: ResourceReclaimer,
    sleep: Callable[[float], None],
    process: ProcessFn,
) -> Optional[ProcessingError]:
    """Process one file, retrying scratch-resource exhaustion.

    Returns:
        None on success, or the error for a recoverable per-file failure

    Raises:
        BatchAborted: retries exhausted, fatal error, or any failure outside silent mode
    """
    scratch_attempts = 0
    while True:
        try:
            process(engine, task.path, target, options)
            LOGGER.info(f"OK {task.name}")
            return None
        except Exception as e:
            error = classify(e)
            LOGGER.error(f"ERR {task.name} :: {error}")

            if error.kind is ErrorKind.RESOURCE_EXHAUSTED:
                scratch_attempts += 1
                if scratch_attempts <= options.scratch_max_retries:
                    LOGGER.warning(
                        f"Scratch resources exhausted on {task.name}, "
                        f"retry {scratch_attempts}/{options.scratch_max_retries}"
                    )
                    reclaimer.deep()
                    sleep_ms(options.scratch_retry_cooldown_ms, sleep)
                    continue
                raise BatchAborted(
                    "Scratch resources could not be recovered. Relaunch and run again; "
                    f"the interrupted run will be offered for resume. Last file attempted: {task.name}",
                    error,
                )

            if error.kind is ErrorKind.FATAL:
                raise BatchAborted(f"Fatal error while processing {task.name}: {error}", error)
            if not options.silent_mode:
                raise BatchAborted(f"Error while processing {task.name}: {error}", error)
            return error
        finally:
            reclaimer.light()


def run_batch(
    tasks: Sequence[FileTask],
    start_index: int,
    output_dir: Path,
    options: BatchOptions,
    force_redo_index: int = -1,
    *,
    engine: ImageEngine,
    store: RunStateStore,
    input_dir: Optional[Path] = None,
    reclaimer: Optional[ResourceReclaimer] = None,
    sleep: Callable[[float], None] = time.sleep,
    process: ProcessFn = process_one,
    show_progress: bool = False,
) -> BatchResult:
    """Process tasks from start_index to the end of the list.

    The run-state is written before each file starts and after it is done
    or skipped, so an interrupted run always leaves the in-flight file on
    record. force_redo_index names a file to reprocess even when its output
    exists; it only applies the first time that index is reached.

    Returns:
        BatchResult; finished_normally is False when the run was aborted
    """
    output_dir = Path(output_dir)
    total = len(tasks)
    result = BatchResult(finished_normally=True, total=total)
    if total == 0:
        store.clear()
        return result

    reclaimer = reclaimer or ResourceReclaimer(engine)
    idx = clamp(start_index, 0, total - 1)

    LOGGER.info("----- RUN -----")
    LOGGER.info(f"Input: {input_dir or ''}")
    LOGGER.info(f"Output: {output_dir}")
    LOGGER.info(f"Start index: {idx}")
    LOGGER.info(f"Force redo idx: {force_redo_index}")

    state = RunState.begin(input_dir, output_dir, idx, total)
    store.save(state)

    progress = tqdm(total=total, initial=idx, unit="img", disable=not show_progress)
    try:
        while idx < total:
            in_chunk = 0
            while idx < total and in_chunk < options.chunk_size:
                task = tasks[idx]
                target = output_path_for(output_dir, task.path, options.suffix)

                state.mark_started(idx, task.name)
                store.save(state)
                progress.set_postfix_str(task.name)

                if options.skip_existing and target.exists() and idx != force_redo_index:
                    result.skipped += 1
                    LOGGER.info(f"SKIP (exists) {task.name}")
                    reclaimer.light()
                    state.mark_done(idx, task.name)
                    store.save(state)
                    idx += 1
                    in_chunk += 1
                    progress.update(1)
                    continue

                error = _process_with_retries(task, target, options, engine, reclaimer, sleep, process)
                if error is None:
                    result.processed += 1
                    state.mark_done(idx, task.name)
                    store.save(state)
                else:
                    result.skipped += 1
                    result.failed += 1
                    result.failed_files.append(task.name)

                if force_redo_index == idx:
                    force_redo_index = -1
                idx += 1
                in_chunk += 1
                progress.update(1)

            reclaimer.deep()
            sleep_ms(options.cooldown_ms, sleep)
    except BatchAborted as e:
        LOGGER.error(f"ABORT {e.reason}")
        result.finished_normally = False
        result.aborted_reason = e.reason
        return result
    finally:
        progress.close()

    store.finish(state)
    LOGGER.info(
        f"Completed. Processed: {result.processed} Skipped: {result.skipped} "
        f"Failed: {result.failed} Output: {output_dir}"
    )
    return result

"""Dry run: process one random file into a hidden temp folder to preview settings."""

import random
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from borderforge.logger import LOGGER
from borderforge.options import BatchOptions
from borderforge.processing.engine import ImageEngine
from borderforge.processing.errors import classify
from borderforge.processing.pipeline import process_one

from .addressing import output_path_for
from .enumerator import FileTask


@dataclass
class DryRunReport:
    original_name: str
    original_size: int
    export_name: str
    export_size: int
    export_quality: Optional[int]
    border_mode: str
    temp_folder: Path
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def format_bytes(size: int) -> str:
    if not size or size <= 0:
        return "0 B"
    kb = size / 1024.0
    if kb < 1024:
        return f"{round(kb, 1)} KB"
    return f"{round(kb / 1024.0, 1)} MB"


def pick_random_index(total: int, rng: random.Random) -> int:
    if total <= 1:
        return 0
    return rng.randrange(total)


def dry_run_once(
    tasks: Sequence[FileTask],
    options: BatchOptions,
    engine: ImageEngine,
    temp_folder: Path,
    rng: Optional[random.Random] = None,
    keep_output: bool = False,
) -> DryRunReport:
    """Run the pipeline on one random file without touching the batch output or run-state."""
    rng = rng or random.Random()
    task = tasks[pick_random_index(len(tasks), rng)]
    temp_folder = Path(temp_folder)
    temp_folder.mkdir(parents=True, exist_ok=True)

    batch_name = output_path_for(temp_folder, task.path, options.suffix).name
    target = temp_folder / f"bf_test_{int(time.time() * 1000)}_{task.index}.jpg"

    try:
        original_size = task.path.stat().st_size
    except OSError:
        original_size = 0

    report = DryRunReport(
        original_name=task.name,
        original_size=original_size,
        export_name=batch_name,
        export_size=0,
        export_quality=None,
        border_mode=options.border_mode.value,
        temp_folder=temp_folder,
    )

    try:
        encoded = process_one(engine, task.path, target, options)
        report.export_size = encoded.final_size
        report.export_quality = encoded.final_quality
    except Exception as e:
        error = classify(e)
        LOGGER.error(f"Dry run failed on {task.name}: {error}")
        report.error = str(error)
    finally:
        if not keep_output and target.exists():
            target.unlink()

    return report

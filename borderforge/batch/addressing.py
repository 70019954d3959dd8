"""Deterministic output naming, numbered output folders and their purge."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from borderforge.logger import LOGGER


OUTPUT_EXTENSION = ".jpg"
DEFAULT_OUTPUT_BASE = "With Borders"

# Leading filename tokens that override the border color for one file
DIRECTIVES = (
    ("-White-", "WHITE"),
    ("-Black-", "BLACK"),
    ("-Average-", "AVERAGE"),
    ("-Lum-", "LUM"),
)


def detect_directive(file_name: str) -> Optional[str]:
    """Return WHITE/BLACK/AVERAGE/LUM when the name starts with a directive."""
    for prefix, directive in DIRECTIVES:
        if file_name.startswith(prefix):
            return directive
    return None


def strip_directive(base_name: str) -> str:
    """Remove one recognized directive prefix; other names are returned unchanged."""
    for prefix, _ in DIRECTIVES:
        if base_name.startswith(prefix):
            return base_name[len(prefix):]
    return base_name


def output_path_for(output_dir: Path, input_file: Path, suffix: str) -> Path:
    """Return the deterministic JPEG path for an input file."""
    base = strip_directive(Path(input_file).stem)
    return Path(output_dir) / f"{base}{suffix}{OUTPUT_EXTENSION}"


def numbered_folder_name(base_name: str, n: int) -> str:
    """Return Base for n == 1, otherwise "Base n"."""
    return base_name if n == 1 else f"{base_name} {n}"


def next_numbered_folder(parent: Path, base_name: str = DEFAULT_OUTPUT_BASE) -> Tuple[Path, int]:
    """Return the first missing folder of Base, Base 2, Base 3, ... and its number.

    Probing stops at the first gap: with Base, Base 2 and Base 4 present the
    answer is Base 3.
    """
    n = 1
    while True:
        candidate = Path(parent) / numbered_folder_name(base_name, n)
        if not candidate.exists():
            return candidate, n
        n += 1


@dataclass
class DeleteReport:
    files_deleted: int = 0
    dirs_deleted: int = 0
    failures: List[Tuple[Path, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def delete_tree(root: Path) -> DeleteReport:
    """Delete a folder and its contents with an explicit stack instead of recursion.

    Per-item failures are collected in the report; the walk carries on past them.
    """
    report = DeleteReport()
    root = Path(root)
    if not root.is_dir():
        return report

    # Post-order walk: a directory is removed after everything it contains
    stack: List[Tuple[Path, bool]] = [(root, False)]
    while stack:
        path, expanded = stack.pop()
        if expanded:
            try:
                path.rmdir()
                report.dirs_deleted += 1
            except OSError as e:
                report.failures.append((path, str(e)))
            continue

        stack.append((path, True))
        try:
            entries = list(os.scandir(path))
        except OSError as e:
            report.failures.append((path, str(e)))
            continue

        for entry in entries:
            entry_path = Path(entry.path)
            if entry.is_dir(follow_symlinks=False):
                stack.append((entry_path, False))
                continue
            try:
                entry_path.unlink()
                report.files_deleted += 1
            except OSError as e:
                report.failures.append((entry_path, str(e)))

    return report


@dataclass
class PurgeReport:
    deleted: List[Path] = field(default_factory=list)
    missing: List[Path] = field(default_factory=list)
    failed: List[Path] = field(default_factory=list)
    item_failures: int = 0


def purge_numbered_folders(parent: Path, base_name: str, next_index: int) -> PurgeReport:
    """Delete Base and Base 2 .. Base (next_index - 1).

    This is an index-driven sweep, not a directory scan: it assumes the
    sequence had no gaps, so folders past a gap in the numbering are not
    touched (next_numbered_folder stops at the same gap).
    """
    report = PurgeReport()
    parent = Path(parent)
    max_n = next_index - 1
    if not parent.is_dir() or max_n < 1:
        return report

    LOGGER.info(f"PURGE parent={parent} base={base_name} maxN={max_n}")

    for n in range(1, max_n + 1):
        folder = parent / numbered_folder_name(base_name, n)
        if not folder.exists():
            LOGGER.info(f"PURGE missing: {folder}")
            report.missing.append(folder)
            continue

        LOGGER.info(f"PURGE deleting: {folder}")
        result = delete_tree(folder)
        report.item_failures += len(result.failures)
        for path, error in result.failures:
            LOGGER.warning(f"PURGE could not delete {path}: {error}")
        if folder.exists():
            report.failed.append(folder)
        else:
            report.deleted.append(folder)

    LOGGER.info(f"PURGE done. Deleted {len(report.deleted)} folder(s).")
    return report

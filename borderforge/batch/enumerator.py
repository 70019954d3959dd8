"""Deterministic discovery of input images."""

from dataclasses import dataclass
from pathlib import Path
from typing import List


SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".tif", ".tiff"}


class EnvironmentMissingError(Exception):
    """A folder or file the run depends on is not available."""


class InputFolderMissingError(EnvironmentMissingError):
    pass


class EmptyInputError(EnvironmentMissingError):
    """The input folder holds no supported images."""


@dataclass(frozen=True)
class FileTask:
    """An input file and its position in the sorted run order."""

    path: Path
    index: int

    @property
    def name(self) -> str:
        return self.path.name


def is_supported(path: Path) -> bool:
    """Check the file extension against the input whitelist."""
    return path.suffix.lower() in SUPPORTED_EXTENSIONS


def enumerate_files(directory: Path) -> List[FileTask]:
    """List supported images directly inside directory, sorted by lower-cased name.

    Resuming relies on this order being identical between runs, which holds as
    long as the folder's file set does not change.

    Raises:
        InputFolderMissingError: directory does not exist
        EmptyInputError: no supported files were found
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise InputFolderMissingError(f"Input folder does not exist: {directory}")

    files = [p for p in directory.iterdir() if p.is_file() and is_supported(p)]
    # Sorting by the exact name first makes ties between case variants stable
    files.sort(key=lambda p: p.name)
    files.sort(key=lambda p: p.name.lower())

    if not files:
        raise EmptyInputError(f"No image files found in {directory}")

    return [FileTask(path=path, index=i) for i, path in enumerate(files)]

"""Typed failures raised by the image engine and the per-file pipeline."""

import errno
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    RESOURCE_EXHAUSTED = "resource_exhausted"
    PROCESSING_FAILED = "processing_failed"
    FATAL = "fatal"


class ProcessingError(Exception):
    """A failure while processing one file, tagged with how the batch should react."""

    kind = ErrorKind.PROCESSING_FAILED

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class ResourceExhaustedError(ProcessingError):
    """Temporary working storage ran out; the same file may succeed after cleanup."""

    kind = ErrorKind.RESOURCE_EXHAUSTED


class FatalProcessingError(ProcessingError):
    """The batch cannot continue at all (e.g. the output folder vanished)."""

    kind = ErrorKind.FATAL


RESOURCE_ERRNOS = {errno.ENOSPC, errno.ENOMEM}


def classify(exc: BaseException) -> ProcessingError:
    """Wrap an arbitrary exception in a ProcessingError with the right kind."""
    if isinstance(exc, ProcessingError):
        return exc
    if isinstance(exc, MemoryError):
        error = ResourceExhaustedError(f"Out of memory: {exc}")
    elif isinstance(exc, OSError) and exc.errno in RESOURCE_ERRNOS:
        error = ResourceExhaustedError(str(exc))
    else:
        error = ProcessingError(str(exc) or exc.__class__.__name__)
    error.__cause__ = exc
    return error
